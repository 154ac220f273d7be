"""
apiforge — CRUD Generator Tests
================================

What we test:
    - one registered descriptor per requested operation, with the right
      method / path / stage chain
    - list query parsing (limit clamp, offset, sort forms, filter JSON)
    - get / update / patch / delete existence policy and id validation
    - provider failures translated through the error taxonomy
"""

import pytest

from apiforge.exceptions import (
    ConfigurationError,
    ConflictError,
    DuplicateEndpointError,
    NotFoundError,
    ValidationError,
)
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import HandlerResult
from apiforge.providers.memory import InMemoryProvider
from apiforge.services.crud_generator import GenerateOptions, check_id, parse_sort


def _ctx(method="GET", path="/api/v1/widget", query=None, body=None, params=None):
    ctx = RequestContext.create(method, path, query=query, body=body)
    return ctx.evolve(path_params=params or {})


class TestGenerate:
    @pytest.fixture(autouse=True)
    def _setup(self, container):
        self.container = container
        self.provider = InMemoryProvider("widget")
        container.providers.register("widget", self.provider)
        self.generator = container.generator

    def test_one_descriptor_per_operation(self):
        descriptors = self.generator.generate("widget")
        routes = {(d.operation, d.method, d.path) for d in descriptors}
        assert routes == {
            ("list", "GET", "/widget"),
            ("get", "GET", "/widget/:id"),
            ("create", "POST", "/widget"),
            ("update", "PUT", "/widget/:id"),
            ("patch", "PATCH", "/widget/:id"),
            ("delete", "DELETE", "/widget/:id"),
        }
        for descriptor in descriptors:
            assert descriptor.key in self.container.registry

    def test_subset_of_operations(self):
        descriptors = self.generator.generate("widget", ["list", "get"])
        assert [d.operation for d in descriptors] == ["list", "get"]

    def test_unknown_operation_rejected(self):
        with pytest.raises(ValueError):
            self.generator.generate("widget", ["list", "explode"])

    def test_unbound_resource_rejected(self):
        with pytest.raises(ConfigurationError):
            self.generator.generate("gadget")

    def test_second_generation_conflicts_without_overwrite(self):
        self.generator.generate("widget", ["list"])
        with pytest.raises(DuplicateEndpointError):
            self.generator.generate("widget", ["list"])
        self.generator.generate("widget", ["list"], GenerateOptions(overwrite=True))

    def test_stage_chain_composition(self):
        self.container.validation.register_schema("widget", "create", {})
        create, = self.generator.generate("widget", ["create"])
        assert create.stage_names == ("rate_limit", "auth", "validate")

        public, = self.generator.generate(
            "widget", ["list"], GenerateOptions(auth_required=False, version="v2")
        )
        assert public.stage_names == ("rate_limit",)
        assert public.version == "v2"

    def test_builtin_schema_selection(self):
        registry = self.container.registry
        assert registry.lookup("POST", "/foodEntry", "v1").validation_schema is not None
        patch = registry.lookup("PATCH", "/foodEntry/:id", "v1").validation_schema
        assert patch is not None
        assert not any(rule.required for rule in patch.values())
        assert registry.lookup("GET", "/foodEntry", "v1").validation_schema is None

    def test_custom_handler_override(self):
        async def custom(ctx):
            return HandlerResult({"data": "custom"})

        get, = self.generator.generate("widget", ["get"], GenerateOptions(custom_handlers={"get": custom}))
        assert get.handler is custom

    def test_register_custom_follows_auth_default(self):
        async def handler(ctx):
            return HandlerResult({"ok": True})

        secured = self.generator.register_custom("GET", "/stats", handler, description="Stats")
        assert secured.secured
        assert secured.version is None

        public = self.generator.register_custom("GET", "/ping", handler, auth_required=False)
        assert not public.secured


class TestHandlers:
    @pytest.fixture(autouse=True)
    def _setup(self, container):
        self.provider = InMemoryProvider("widget", unique_fields=("slug",))
        container.providers.register("widget", self.provider)
        descriptors = container.generator.generate("widget")
        self.handlers = {d.operation: d.handler for d in descriptors}

    async def _seed(self, **fields):
        return await self.provider.create(fields)

    @pytest.mark.asyncio
    async def test_list_defaults_and_meta(self):
        for i in range(3):
            await self._seed(name=f"w{i}")
        result = await self.handlers["list"](_ctx())
        assert result.status == 200
        assert result.body["meta"] == {"total": 3, "limit": 20, "offset": 0}
        assert len(result.body["data"]) == 3

    @pytest.mark.asyncio
    async def test_list_limit_clamped(self):
        result = await self.handlers["list"](_ctx(query={"limit": "5000", "offset": "-3"}))
        assert result.body["meta"]["limit"] == 100
        assert result.body["meta"]["offset"] == 0

        result = await self.handlers["list"](_ctx(query={"limit": "0"}))
        assert result.body["meta"]["limit"] == 1

    @pytest.mark.asyncio
    async def test_list_invalid_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            await self.handlers["list"](_ctx(query={"limit": "ten"}))
        assert exc_info.value.field_errors[0]["field"] == "limit"

    @pytest.mark.asyncio
    async def test_list_sort_and_filter(self):
        await self._seed(name="b", kind="x", rank=2)
        await self._seed(name="a", kind="x", rank=1)
        await self._seed(name="c", kind="y", rank=3)

        result = await self.handlers["list"](
            _ctx(query={"sort": "-rank", "filter": '{"kind": "x"}'})
        )
        assert [r["name"] for r in result.body["data"]] == ["b", "a"]
        assert result.body["meta"]["total"] == 2

    @pytest.mark.asyncio
    async def test_list_filter_must_be_object(self):
        with pytest.raises(ValidationError):
            await self.handlers["list"](_ctx(query={"filter": "[1, 2]"}))
        with pytest.raises(ValidationError):
            await self.handlers["list"](_ctx(query={"filter": "{not json"}))

    @pytest.mark.asyncio
    async def test_get_malformed_id_is_422(self):
        with pytest.raises(ValidationError) as exc_info:
            await self.handlers["get"](_ctx(params={"id": "not-a-uuid"}))
        assert exc_info.value.status == 422

    @pytest.mark.asyncio
    async def test_get_missing_is_404(self):
        with pytest.raises(NotFoundError):
            await self.handlers["get"](_ctx(params={"id": "0b6f3c1e-6a63-4a53-9d2c-3f1f1f1f1f1f"}))

    @pytest.mark.asyncio
    async def test_create_returns_201_with_message(self):
        result = await self.handlers["create"](_ctx("POST", body={"name": "w"}))
        assert result.status == 201
        assert result.body["meta"]["message"] == "widget created successfully"
        assert result.body["data"]["id"]

    @pytest.mark.asyncio
    async def test_create_unique_violation_is_conflict(self):
        await self._seed(slug="taken")
        with pytest.raises(ConflictError) as exc_info:
            await self.handlers["create"](_ctx("POST", body={"slug": "taken"}))
        assert exc_info.value.status == 409

    @pytest.mark.asyncio
    async def test_update_replaces_and_patch_merges(self):
        record = await self._seed(name="w", color="red")
        params = {"id": record["id"]}

        patched = await self.handlers["patch"](_ctx("PATCH", body={"color": "blue"}, params=params))
        assert patched.body["data"]["name"] == "w"
        assert patched.body["data"]["color"] == "blue"
        assert patched.body["meta"]["message"] == "widget partially updated successfully"

        replaced = await self.handlers["update"](_ctx("PUT", body={"name": "z"}, params=params))
        assert replaced.body["data"]["name"] == "z"
        assert "color" not in replaced.body["data"]
        assert replaced.body["data"]["createdAt"] == record["createdAt"]

    @pytest.mark.asyncio
    async def test_update_missing_is_404(self):
        with pytest.raises(NotFoundError):
            await self.handlers["update"](
                _ctx("PUT", body={"name": "z"}, params={"id": "0b6f3c1e-6a63-4a53-9d2c-3f1f1f1f1f1f"})
            )

    @pytest.mark.asyncio
    async def test_delete(self):
        record = await self._seed(name="w")
        result = await self.handlers["delete"](_ctx("DELETE", params={"id": record["id"]}))
        assert result.body == {"data": None, "meta": {"message": "widget deleted successfully"}}
        assert len(self.provider) == 0

        with pytest.raises(NotFoundError):
            await self.handlers["delete"](_ctx("DELETE", params={"id": record["id"]}))


class TestQueryHelpers:
    def test_parse_sort_forms(self):
        assert parse_sort(None) == (("createdAt", "desc"),)
        assert parse_sort("-date,mealType") == (("date", "desc"), ("mealType", "asc"))
        assert parse_sort("date:DESC") == (("date", "desc"),)
        assert parse_sort('{"date": "asc"}') == (("date", "asc"),)

    def test_parse_sort_rejects_bad_direction(self):
        with pytest.raises(ValidationError):
            parse_sort("date:sideways")

    def test_check_id_formats(self):
        check_id("42", "int")
        check_id("anything", "any")
        with pytest.raises(ValidationError):
            check_id("-1", "int")
        with pytest.raises(ValidationError):
            check_id("", "any")
