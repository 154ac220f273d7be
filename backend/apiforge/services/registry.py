"""
apiforge — Endpoint Registry
=============================

What:  The authoritative set of endpoints the app serves.
How:   Descriptors are keyed by (METHOD, path, version) in an insertion
       ordered dict. A second index groups path templates by
       (METHOD, version, segment count) so request dispatch only scans
       templates of the right shape.
Who:   Filled by the CrudGenerator (and register_custom); read by the
       dispatcher, the RouteAnalyzer and the DocsGenerator.

Paths:
    Descriptor paths are relative to the version prefix and use `:name`
    placeholders, e.g. "/foodEntry/:id". The served URL is
    "/api/{version}{path}", or "/api{path}" for unversioned endpoints.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from apiforge.exceptions import DuplicateEndpointError, NotFoundError
from apiforge.pipeline.outcome import Handler, Stage
from apiforge.validation.rules import ValidationSchema

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

EndpointKey = Tuple[str, str, Optional[str]]


def _segments(path: str) -> Tuple[str, ...]:
    return tuple(s for s in path.strip("/").split("/") if s)


@dataclass(frozen=True, eq=False)
class EndpointDescriptor:
    """
    Attributes:
        method:             HTTP method (upper case)
        path:               Template relative to the version prefix
        version:            "v1", "v2", ... or None for unversioned
        handler:            Coroutine producing a HandlerResult
        middleware_chain:   Ordered stages run before the handler
        validation_schema:  Schema enforced by the "validate" stage, if any
        resource / operation:  Set for generated CRUD endpoints
    """

    method: str
    path: str
    version: Optional[str]
    handler: Handler
    middleware_chain: Tuple[Stage, ...] = ()
    validation_schema: Optional[ValidationSchema] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    resource: Optional[str] = None
    operation: Optional[str] = None

    @property
    def key(self) -> EndpointKey:
        return (self.method, self.path, self.version)

    @property
    def full_path(self) -> str:
        prefix = f"/api/{self.version}" if self.version else "/api"
        return prefix + self.path

    @property
    def stage_names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self.middleware_chain)

    @property
    def secured(self) -> bool:
        return "auth" in self.stage_names

    @property
    def validated(self) -> bool:
        return self.validation_schema is not None or "validate" in self.stage_names

    def stage(self, name: str) -> Optional[Stage]:
        for stage in self.middleware_chain:
            if stage.name == name:
                return stage
        return None


def normalize_path(path: str) -> str:
    return "/" + "/".join(_segments(path))


class EndpointRegistry:
    def __init__(self) -> None:
        self._endpoints: Dict[EndpointKey, EndpointDescriptor] = {}
        self._shapes: Dict[Tuple[str, Optional[str], int], List[EndpointKey]] = {}

    def _key(self, method: str, path: str, version: Optional[str]) -> EndpointKey:
        return (method.upper(), normalize_path(path), version)

    def register(self, descriptor: EndpointDescriptor, overwrite: bool = False) -> EndpointDescriptor:
        """
        Add `descriptor`.

        Raises:
            DuplicateEndpointError: key already registered and overwrite=False
        """
        key = self._key(descriptor.method, descriptor.path, descriptor.version)
        if key != descriptor.key:
            descriptor = replace(descriptor, method=key[0], path=key[1])
        if key in self._endpoints:
            if not overwrite:
                raise DuplicateEndpointError(*key)
            logger.info("Overwriting endpoint %s %s (%s)", key[0], key[1], key[2] or "unversioned")
        else:
            shape = (key[0], key[2], len(_segments(key[1])))
            self._shapes.setdefault(shape, []).append(key)
        # Assigning to an existing key keeps its insertion position
        self._endpoints[key] = descriptor
        logger.debug("Registered endpoint %s %s", key[0], descriptor.full_path)
        return descriptor

    def lookup(self, method: str, path: str, version: Optional[str]) -> EndpointDescriptor:
        key = self._key(method, path, version)
        try:
            return self._endpoints[key]
        except KeyError:
            raise NotFoundError(
                resource="Endpoint",
                message=f"Endpoint {key[0]} {key[1]} ({version or 'unversioned'}) not found",
            ) from None

    def match(self, method: str, path: str, version: Optional[str]) -> Optional[Tuple[EndpointDescriptor, Dict[str, str]]]:
        """
        Resolve a concrete path against registered templates.

        Static segments win over `:param` segments when both match.

        Returns:
            (descriptor, path_params) or None
        """
        method = method.upper()
        concrete = _segments(path)
        best: Optional[Tuple[int, EndpointDescriptor, Dict[str, str]]] = None
        for key in self._shapes.get((method, version, len(concrete)), ()):
            params: Dict[str, str] = {}
            static_hits = 0
            for template, actual in zip(_segments(key[1]), concrete):
                if template.startswith(":"):
                    params[template[1:]] = actual
                elif template == actual:
                    static_hits += 1
                else:
                    break
            else:
                if best is None or static_hits > best[0]:
                    best = (static_hits, self._endpoints[key], params)
        if best is None:
            return None
        return best[1], best[2]

    def remove(self, method: str, path: str, version: Optional[str]) -> EndpointDescriptor:
        key = self._key(method, path, version)
        descriptor = self.lookup(*key)
        del self._endpoints[key]
        self._shapes[(key[0], key[2], len(_segments(key[1])))].remove(key)
        return descriptor

    def all(self) -> Tuple[EndpointDescriptor, ...]:
        return tuple(self._endpoints.values())

    def for_resource(self, resource: str) -> Tuple[EndpointDescriptor, ...]:
        return tuple(d for d in self._endpoints.values() if d.resource == resource)

    def versions(self) -> Sequence[Optional[str]]:
        seen: Dict[Optional[str], None] = {}
        for key in self._endpoints:
            seen.setdefault(key[2], None)
        return list(seen)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 3:
            return False
        return self._key(*key) in self._endpoints

    def __iter__(self) -> Iterator[EndpointDescriptor]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._endpoints)
