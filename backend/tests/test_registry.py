"""
apiforge — Endpoint Registry Tests
===================================

What we test:
    - (method, path, version) keys are unique unless overwrite is set
    - overwrite keeps the original insertion position
    - lookup raises NotFoundError for unknown keys
    - match() resolves :param templates and prefers static segments
"""

import pytest

from apiforge.exceptions import DuplicateEndpointError, NotFoundError
from apiforge.pipeline.outcome import HandlerResult
from apiforge.services.registry import EndpointDescriptor, EndpointRegistry


async def _ok(ctx):
    return HandlerResult({"data": None})


def _descriptor(method="GET", path="/foodEntry", version="v1", description=None):
    return EndpointDescriptor(method=method, path=path, version=version, handler=_ok, description=description)


class TestRegister:
    def setup_method(self):
        self.registry = EndpointRegistry()

    def test_duplicate_key_rejected(self):
        self.registry.register(_descriptor())
        with pytest.raises(DuplicateEndpointError) as exc_info:
            self.registry.register(_descriptor())
        assert exc_info.value.status == 409
        assert len(self.registry) == 1

    def test_same_path_different_version_allowed(self):
        self.registry.register(_descriptor(version="v1"))
        self.registry.register(_descriptor(version="v2"))
        self.registry.register(_descriptor(version=None))
        assert len(self.registry) == 3

    def test_overwrite_replaces_in_place(self):
        self.registry.register(_descriptor(path="/a"))
        self.registry.register(_descriptor(path="/b"))
        self.registry.register(_descriptor(path="/a", description="replaced"), overwrite=True)

        paths = [d.path for d in self.registry.all()]
        assert paths == ["/a", "/b"]
        assert self.registry.lookup("GET", "/a", "v1").description == "replaced"

    def test_paths_are_normalized(self):
        self.registry.register(_descriptor(method="get", path="foodEntry/"))
        assert ("GET", "/foodEntry", "v1") in self.registry
        assert self.registry.lookup("GET", "/foodEntry", "v1").method == "GET"

    def test_remove(self):
        self.registry.register(_descriptor())
        self.registry.remove("GET", "/foodEntry", "v1")
        assert len(self.registry) == 0
        assert self.registry.match("GET", "/foodEntry", "v1") is None


class TestLookupAndMatch:
    def setup_method(self):
        self.registry = EndpointRegistry()
        self.registry.register(_descriptor(path="/foodEntry"))
        self.registry.register(_descriptor(path="/foodEntry/:id"))
        self.registry.register(_descriptor(path="/foodEntry/summary"))

    def test_lookup_unknown_raises(self):
        with pytest.raises(NotFoundError):
            self.registry.lookup("DELETE", "/foodEntry", "v1")

    def test_match_extracts_params(self):
        descriptor, params = self.registry.match("GET", "/foodEntry/abc-123", "v1")
        assert descriptor.path == "/foodEntry/:id"
        assert params == {"id": "abc-123"}

    def test_static_segment_wins(self):
        descriptor, params = self.registry.match("GET", "/foodEntry/summary", "v1")
        assert descriptor.path == "/foodEntry/summary"
        assert params == {}

    def test_match_respects_method_and_version(self):
        assert self.registry.match("POST", "/foodEntry", "v1") is None
        assert self.registry.match("GET", "/foodEntry", "v2") is None

    def test_full_path(self):
        assert self.registry.lookup("GET", "/foodEntry/:id", "v1").full_path == "/api/v1/foodEntry/:id"
        assert _descriptor(version=None).full_path == "/api/foodEntry"
