"""
apiforge — Route Analyzer & Docs Generator Tests
=================================================

What we test:
    - endpoint counts by method / version, secured / validated / documented
    - recommendation wording and thresholds
    - health report coverage
    - OpenAPI, Postman and Markdown output built from the registry
    - unsupported formats and saving to disk
"""

import json

import pytest

from apiforge.pipeline.outcome import Continue, HandlerResult, Stage
from apiforge.services.docs_generator import DocsGenerator, UnsupportedFormatError, openapi_path, schema_to_openapi
from apiforge.services.registry import EndpointDescriptor, EndpointRegistry
from apiforge.services.route_analyzer import RouteAnalyzer
from apiforge.validation import FieldType, ValidationRule, make_schema


async def _handler(ctx):
    return HandlerResult({"data": None})


async def _pass(ctx):
    return Continue(ctx)


AUTH = Stage(name="auth", run=_pass)
SCHEMA = make_schema({
    "name": ValidationRule(FieldType.STRING, required=True, min=2, max=50),
    "address.city": ValidationRule(FieldType.STRING),
    "kind": ValidationRule(FieldType.ENUM, enum_values=("A", "B")),
})


def _endpoint(method, path, version="v1", secured=False, schema=None, description="Documented", tags=("widget",)):
    return EndpointDescriptor(
        method=method,
        path=path,
        version=version,
        handler=_handler,
        middleware_chain=(AUTH,) if secured else (),
        validation_schema=schema,
        description=description,
        tags=tags,
    )


@pytest.fixture
def registry():
    registry = EndpointRegistry()
    registry.register(_endpoint("GET", "/widget", secured=True))
    registry.register(_endpoint("GET", "/widget/:id", secured=True))
    registry.register(_endpoint("POST", "/widget", secured=True, schema=SCHEMA))
    registry.register(_endpoint("DELETE", "/widget/:id", version="v2", secured=True))
    return registry


class TestAnalyze:
    def setup_method(self):
        self.analyzer = RouteAnalyzer()

    def test_counts(self, registry):
        analysis = self.analyzer.analyze(registry)
        assert analysis.total_endpoints == 4
        assert analysis.by_method == {"GET": 2, "POST": 1, "DELETE": 1}
        assert analysis.by_version == {"v1": 3, "v2": 1}
        assert analysis.secured_endpoints == 4
        assert analysis.public_endpoints == 0
        assert analysis.validated_endpoints == 1
        assert analysis.undocumented_endpoints == 0

    def test_validation_recommendation(self, registry):
        assert self.analyzer.analyze(registry).recommendations == ["Only 25% of endpoints have validation"]

    def test_gap_recommendations(self):
        registry = EndpointRegistry()
        registry.register(_endpoint("GET", "/ping", version=None, description=None, schema=SCHEMA))
        registry.register(_endpoint("POST", "/ping", version=None, schema=SCHEMA))
        assert self.analyzer.analyze(registry).recommendations == [
            "Consider adding authentication to more endpoints",
            "1 endpoints lack documentation",
            "Consider adding more GET endpoints for data retrieval",
            "Some endpoints are not versioned",
        ]

    def test_builtin_endpoint_set(self, container):
        analysis = container.analyzer.analyze(container.registry)
        assert analysis.total_endpoints == 18
        assert analysis.by_version == {"v1": 18}
        assert analysis.secured_endpoints == 18

    def test_health_coverage(self):
        registry = EndpointRegistry()
        for path in ("/a", "/b", "/c"):
            registry.register(_endpoint("GET", path))
        registry.register(_endpoint("GET", "/d", description=None))
        report = self.analyzer.health(registry, auth_configured=True)
        assert report.endpoints.total == 4
        assert report.endpoints.healthy == 3
        assert report.documentation.coverage == 75.0
        assert not report.documentation.generated
        assert report.middleware.auth

    def test_health_empty_registry(self):
        report = self.analyzer.health(EndpointRegistry(), auth_configured=False)
        assert report.documentation.coverage == 0.0
        assert report.endpoints.total == 0


class TestOpenApi:
    def setup_method(self):
        self.docs = DocsGenerator("Test API", "2.0.0", ["https://api.example.com"])

    def test_document(self, registry):
        spec = json.loads(self.docs.generate(registry.all(), "openapi"))
        assert spec["openapi"] == "3.0.0"
        assert spec["info"]["title"] == "Test API"
        assert spec["servers"] == [{"url": "https://api.example.com"}]
        assert set(spec["paths"]) == {"/api/v1/widget", "/api/v1/widget/{id}", "/api/v2/widget/{id}"}
        assert "bearerAuth" in spec["components"]["securitySchemes"]

    def test_operations(self, registry):
        spec = self.docs.openapi(registry.all())
        create = spec["paths"]["/api/v1/widget"]["post"]
        assert "201" in create["responses"]
        assert "422" in create["responses"]
        assert create["security"] == [{"bearerAuth": []}]
        body = create["requestBody"]["content"]["application/json"]["schema"]
        assert body["required"] == ["name"]
        assert body["properties"]["address"]["properties"]["city"] == {"type": "string"}

        get = spec["paths"]["/api/v1/widget/{id}"]["get"]
        assert get["parameters"][0]["name"] == "id"
        assert "requestBody" not in get
        assert "401" in get["responses"] and "403" in get["responses"]

    def test_public_endpoint_has_no_auth_responses(self):
        spec = self.docs.openapi([_endpoint("GET", "/open")])
        operation = spec["paths"]["/api/v1/open"]["get"]
        assert operation["security"] == []
        assert "401" not in operation["responses"]

    def test_examples_switch(self, registry):
        spec = self.docs.openapi(registry.all(), include_examples=False)
        assert "content" not in spec["paths"]["/api/v1/widget"]["get"]["responses"]["200"]

    def test_schema_conversion(self):
        converted = schema_to_openapi(SCHEMA)
        assert converted["properties"]["name"] == {"type": "string", "minLength": 2, "maxLength": 50}
        assert converted["properties"]["kind"]["enum"] == ["A", "B"]
        assert openapi_path("/widget/:id/parts/:partId") == "/widget/{id}/parts/{partId}"


class TestOtherFormats:
    def setup_method(self):
        self.docs = DocsGenerator("Test API", servers=["https://api.example.com"])

    def test_postman(self, registry):
        collection = json.loads(self.docs.generate(registry.all(), "postman"))
        assert collection["info"]["name"] == "Test API"
        assert collection["variable"] == [{"key": "baseUrl", "value": "https://api.example.com"}]
        first = collection["item"][0]["request"]
        assert first["url"]["raw"] == "{{baseUrl}}/api/v1/widget"
        assert first["auth"]["type"] == "bearer"

    def test_markdown(self, registry):
        text = self.docs.generate(registry.all(), "markdown")
        assert text.startswith("# Test API")
        assert "## Base URL" in text
        assert "### widget" in text
        assert "#### POST /api/v1/widget" in text
        assert "**Request Body:**" in text

    def test_untagged_endpoints_grouped_as_general(self):
        text = self.docs.markdown([_endpoint("GET", "/misc", tags=())])
        assert "### General" in text

    def test_unsupported_format(self, registry):
        with pytest.raises(UnsupportedFormatError, match="Unsupported format: yaml"):
            self.docs.generate(registry.all(), "yaml")

    def test_save(self, registry, tmp_path):
        content = self.docs.generate(registry.all(), "markdown")
        target = tmp_path / "nested" / DocsGenerator.default_filename("markdown")
        path = DocsGenerator.save(content, target)
        assert path.read_text(encoding="utf-8") == content
        assert DocsGenerator.default_filename("openapi") == "api-docs.openapi.json"
