"""
apiforge — Documentation Generator
===================================

What:  Renders the endpoint registry as OpenAPI 3.0 JSON, a Postman v2.1
       collection, or Markdown.
How:   Reads descriptors only; nothing is introspected from FastAPI. The
       `:id` path placeholders become `{id}` in OpenAPI and `:id` stays in
       Postman (its own variable syntax).
Who:   GET /admin/docs and the CLI `docs` command.

Formats:
    openapi   info (docs_title / docs_version), servers, paths, bearerAuth
              security scheme; request bodies derived from validation schemas
    postman   {{baseUrl}}-relative requests with a JSON Content-Type header
    markdown  endpoints grouped by tag, request body rules per endpoint
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Union

from apiforge.config import Settings
from apiforge.services.registry import EndpointDescriptor
from apiforge.validation.rules import FieldType, ValidationRule, ValidationSchema

logger = logging.getLogger(__name__)

DOC_FORMATS = ("openapi", "postman", "markdown")
OPENAPI_VERSION = "3.0.0"
POSTMAN_SCHEMA = "https://schema.getpostman.com/json/collection/v2.1.0/collection.json"

_OPENAPI_TYPES = {
    FieldType.STRING: {"type": "string"},
    FieldType.NUMBER: {"type": "number"},
    FieldType.BOOLEAN: {"type": "boolean"},
    FieldType.DATE: {"type": "string", "format": "date"},
    FieldType.EMAIL: {"type": "string", "format": "email"},
    FieldType.URL: {"type": "string", "format": "uri"},
    FieldType.ENUM: {"type": "string"},
    FieldType.ARRAY: {"type": "array", "items": {}},
    FieldType.OBJECT: {"type": "object"},
}

_SUCCESS_STATUS = {"POST": "201"}


class UnsupportedFormatError(ValueError):
    pass


def openapi_path(path: str) -> str:
    return "/".join("{" + s[1:] + "}" if s.startswith(":") else s for s in path.split("/"))


def rule_summary(rule: ValidationRule) -> Dict[str, Any]:
    summary: Dict[str, Any] = {"type": rule.type.value, "required": rule.required}
    if rule.min is not None:
        summary["min"] = rule.min
    if rule.max is not None:
        summary["max"] = rule.max
    if rule.pattern:
        summary["pattern"] = rule.pattern
    if rule.enum_values:
        summary["enum"] = list(rule.enum_values)
    return summary


def schema_to_openapi(schema: ValidationSchema) -> Dict[str, Any]:
    """
    Convert a validation schema into an OpenAPI object schema.

    Dot-paths ("address.city") become nested object properties.
    """
    root: Dict[str, Any] = {"type": "object", "properties": {}}
    for path, rule in schema.items():
        node = root
        parts = path.split(".")
        for part in parts[:-1]:
            node = node["properties"].setdefault(part, {"type": "object", "properties": {}})
        prop = dict(_OPENAPI_TYPES[rule.type])
        if rule.type is FieldType.ENUM:
            prop["enum"] = list(rule.enum_values)
        if rule.type in (FieldType.STRING, FieldType.EMAIL, FieldType.URL):
            if rule.min is not None:
                prop["minLength"] = int(rule.min)
            if rule.max is not None:
                prop["maxLength"] = int(rule.max)
            if rule.pattern:
                prop["pattern"] = rule.pattern
        elif rule.type is FieldType.NUMBER:
            if rule.min is not None:
                prop["minimum"] = rule.min
            if rule.max is not None:
                prop["maximum"] = rule.max
        elif rule.type is FieldType.ARRAY:
            if rule.min is not None:
                prop["minItems"] = int(rule.min)
            if rule.max is not None:
                prop["maxItems"] = int(rule.max)
        node["properties"][parts[-1]] = prop
        if rule.required:
            node.setdefault("required", []).append(parts[-1])
    return root


class DocsGenerator:
    """
    Args:
        title / version:  OpenAPI info block and Postman collection name
        servers:          Base URLs; the first one heads the Markdown output
    """

    def __init__(self, title: str, version: str = "1.0.0", servers: Sequence[str] = ("http://localhost:8000",)):
        self.title = title
        self.version = version
        self.servers = list(servers) or ["http://localhost:8000"]

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocsGenerator":
        return cls(settings.docs_title, settings.docs_version, settings.docs_servers_list)

    def generate(
        self,
        endpoints: Iterable[EndpointDescriptor],
        format: str = "openapi",
        include_examples: bool = True,
    ) -> str:
        endpoints = list(endpoints)
        if format == "openapi":
            return json.dumps(self.openapi(endpoints, include_examples), indent=2)
        if format == "postman":
            return json.dumps(self.postman(endpoints), indent=2)
        if format == "markdown":
            return self.markdown(endpoints)
        raise UnsupportedFormatError(f"Unsupported format: {format}")

    # ── OpenAPI ───────────────────────────────────────────────────────────

    def openapi(self, endpoints: List[EndpointDescriptor], include_examples: bool = True) -> Dict[str, Any]:
        paths: Dict[str, Dict[str, Any]] = {}
        for endpoint in endpoints:
            paths.setdefault(openapi_path(endpoint.full_path), {})[endpoint.method.lower()] = self._operation(
                endpoint, include_examples
            )
        return {
            "openapi": OPENAPI_VERSION,
            "info": {
                "title": self.title,
                "version": self.version,
                "description": f"Generated documentation for {self.title}",
            },
            "servers": [{"url": url} for url in self.servers],
            "paths": paths,
            "components": {
                "securitySchemes": {
                    "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
                },
            },
        }

    def _operation(self, endpoint: EndpointDescriptor, include_examples: bool) -> Dict[str, Any]:
        success: Dict[str, Any] = {"description": "Success"}
        if include_examples:
            example: Dict[str, Any] = {"data": {}, "meta": {}}
            if endpoint.operation == "list":
                example = {"data": [], "meta": {"total": 0, "limit": 20, "offset": 0}}
            success["content"] = {"application/json": {"example": example}}

        responses: Dict[str, Any] = {
            _SUCCESS_STATUS.get(endpoint.method, "200"): success,
            "404": {"description": "Not Found"},
            "429": {"description": "Too Many Requests"},
            "500": {"description": "Internal Server Error"},
        }
        if endpoint.secured:
            responses["401"] = {"description": "Unauthorized"}
            responses["403"] = {"description": "Forbidden"}

        operation: Dict[str, Any] = {
            "summary": endpoint.description or f"{endpoint.method} {endpoint.full_path}",
            "tags": list(endpoint.tags),
            "security": [{"bearerAuth": []}] if endpoint.secured else [],
            "responses": responses,
        }
        params = [s[1:] for s in endpoint.path.split("/") if s.startswith(":")]
        if params:
            operation["parameters"] = [
                {"name": name, "in": "path", "required": True, "schema": {"type": "string"}} for name in params
            ]
        if endpoint.validation_schema is not None:
            responses["422"] = {"description": "Validation Error"}
            operation["requestBody"] = {
                "required": True,
                "content": {"application/json": {"schema": schema_to_openapi(endpoint.validation_schema)}},
            }
        return operation

    # ── Postman ───────────────────────────────────────────────────────────

    def postman(self, endpoints: List[EndpointDescriptor]) -> Dict[str, Any]:
        items = []
        for endpoint in endpoints:
            path = endpoint.full_path
            request: Dict[str, Any] = {
                "method": endpoint.method,
                "url": {
                    "raw": "{{baseUrl}}" + path,
                    "host": ["{{baseUrl}}"],
                    "path": [p for p in path.split("/") if p],
                },
                "header": [{"key": "Content-Type", "value": "application/json"}],
            }
            if endpoint.secured:
                request["auth"] = {"type": "bearer", "bearer": [{"key": "token", "value": "{{token}}", "type": "string"}]}
            items.append({"name": endpoint.description or path, "request": request})
        return {
            "info": {"name": self.title, "schema": POSTMAN_SCHEMA},
            "item": items,
            "variable": [{"key": "baseUrl", "value": self.servers[0]}],
        }

    # ── Markdown ──────────────────────────────────────────────────────────

    def markdown(self, endpoints: List[EndpointDescriptor]) -> str:
        lines = [
            f"# {self.title}",
            "",
            "## Base URL",
            "",
            self.servers[0],
            "",
            "## Endpoints",
            "",
        ]
        for tag, grouped in self._group_by_tag(endpoints).items():
            lines += [f"### {tag}", ""]
            for endpoint in grouped:
                lines += [f"#### {endpoint.method} {endpoint.full_path}", ""]
                lines += [endpoint.description or "No description", ""]
                if endpoint.secured:
                    lines += ["Requires authentication.", ""]
                if endpoint.validation_schema is not None:
                    body = {path: rule_summary(rule) for path, rule in endpoint.validation_schema.items()}
                    lines += ["**Request Body:**", "```json", json.dumps(body, indent=2), "```", ""]
                lines += ["**Response:**", "```json", '{\n  "data": {},\n  "meta": {}\n}', "```", ""]
        return "\n".join(lines)

    @staticmethod
    def _group_by_tag(endpoints: List[EndpointDescriptor]) -> Dict[str, List[EndpointDescriptor]]:
        grouped: Dict[str, List[EndpointDescriptor]] = {}
        for endpoint in endpoints:
            for tag in endpoint.tags or ("General",):
                grouped.setdefault(tag, []).append(endpoint)
        return grouped

    # ── Persistence ───────────────────────────────────────────────────────

    @staticmethod
    def save(content: str, output_path: Union[str, Path]) -> Path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info("Documentation saved to: %s", path)
        return path

    @staticmethod
    def default_filename(format: str) -> str:
        return "api-docs.md" if format == "markdown" else f"api-docs.{format}.json"

