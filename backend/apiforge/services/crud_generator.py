"""
apiforge — CRUD Generator
==========================

What:  Turns a resource name into a full set of REST endpoints.
How:   For each requested operation it builds a handler bound to the
       resource's PersistenceProvider, assembles the stage chain
       (rate limit → auth → validate) and registers the descriptor.
Who:   Called by the container at bootstrap and by the CLI `generate`
       command.

Operations (paths relative to /api/{version}):
    list    GET     /{resource}        200 {data: [...], meta: {total, limit, offset}}
    get     GET     /{resource}/:id    200 {data}
    create  POST    /{resource}        201 {data, meta: {message}}
    update  PUT     /{resource}/:id    200 full replace
    patch   PATCH   /{resource}/:id    200 merge of supplied fields
    delete  DELETE  /{resource}/:id    200 {data: null, meta: {message}}

List query parameters:
    limit    default 20, clamped to [1, pagination_max_limit]
    offset   default 0, clamped to >= 0
    sort     "field", "-field", "field:asc|desc" (comma separated) or a JSON
             object {"field": "asc"}; default createdAt desc
    filter   JSON object of equality filters, handed to the provider as is
    include  JSON relation spec, handed to the provider as is

Id handling:
    Each resource declares an id format (uuid / int / any) in the
    ProviderRegistry. A malformed id is a 422 VALIDATION_ERROR, never a 404.

Writes:
    update / patch / delete check existence first (404), then write. A row
    that disappears between the two surfaces as the provider's
    RECORD_NOT_FOUND, which translates to 404 as well.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from apiforge.config import Settings
from apiforge.exceptions import NotFoundError, ProviderError, ValidationError, translate_provider_error
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import Handler, HandlerResult, Stage
from apiforge.providers.base import OrderBy
from apiforge.providers.registry import ProviderRegistry, ResourceBinding
from apiforge.services.auth import AuthService
from apiforge.services.rate_limiter import RateLimiter
from apiforge.services.registry import EndpointDescriptor, EndpointRegistry
from apiforge.validation.engine import ValidationEngine
from apiforge.validation.rules import ValidationSchema, partial_schema

logger = logging.getLogger(__name__)

OPERATIONS = ("list", "get", "create", "update", "patch", "delete")

_ROUTES: Dict[str, Tuple[str, bool]] = {
    # operation: (method, has :id segment)
    "list": ("GET", False),
    "get": ("GET", True),
    "create": ("POST", False),
    "update": ("PUT", True),
    "patch": ("PATCH", True),
    "delete": ("DELETE", True),
}

_DESCRIPTIONS = {
    "list": "List {resource} records with pagination, sorting and filtering",
    "get": "Get a single {resource} by id",
    "create": "Create a new {resource}",
    "update": "Replace an existing {resource}",
    "patch": "Partially update an existing {resource}",
    "delete": "Delete a {resource}",
}

DEFAULT_SORT: OrderBy = (("createdAt", "desc"),)


@dataclass(frozen=True)
class GenerateOptions:
    """
    Attributes:
        auth_required:        Prepend the "auth" stage
        validation_required:  Append the "validate" stage to writes that have a schema
        version:              API version the endpoints are served under
        allowed_roles:        Role allow-list for the auth stage (empty = any)
        description:          Overrides the generated per-operation description
        custom_handlers:      operation → Handler replacing the generated one
        schemas:              operation → schema overriding the built-in ones
        overwrite:            Replace already-registered endpoints
    """

    auth_required: bool = True
    validation_required: bool = True
    version: Optional[str] = "v1"
    allowed_roles: Tuple[str, ...] = ()
    description: Optional[str] = None
    custom_handlers: Mapping[str, Handler] = field(default_factory=dict)
    schemas: Mapping[str, ValidationSchema] = field(default_factory=dict)
    overwrite: bool = False


# ══════════════════════════════════════════════════════════════════════════
# Query parsing
# ══════════════════════════════════════════════════════════════════════════


def _invalid(field_name: str, message: str, value: Any = None) -> ValidationError:
    return ValidationError(
        message=f"Invalid query parameter '{field_name}'",
        field_errors=[{"field": field_name, "message": message, "value": value}],
    )


def parse_int(query: Mapping[str, str], name: str, default: int, minimum: int, maximum: Optional[int] = None) -> int:
    raw = query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise _invalid(name, f"{name} must be an integer", raw)
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def parse_json(query: Mapping[str, str], name: str, expect_object: bool = False) -> Any:
    raw = query.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        raise _invalid(name, f"{name} must be valid JSON", raw)
    if expect_object and not isinstance(value, dict):
        raise _invalid(name, f"{name} must be a JSON object", raw)
    return value


def parse_sort(raw: Optional[str]) -> OrderBy:
    """
    >>> parse_sort("-date,mealType")
    (('date', 'desc'), ('mealType', 'asc'))
    >>> parse_sort('{"date": "asc"}')
    (('date', 'asc'),)
    """
    if raw is None or not raw.strip():
        return DEFAULT_SORT
    raw = raw.strip()
    if raw.startswith("{"):
        try:
            spec = json.loads(raw)
        except ValueError:
            raise _invalid("sort", "sort must be valid JSON", raw)
        if not isinstance(spec, dict) or not spec:
            raise _invalid("sort", "sort must be a non-empty JSON object", raw)
        items = [(str(k), str(v)) for k, v in spec.items()]
    else:
        items = []
        for part in (p.strip() for p in raw.split(",")):
            if not part:
                continue
            if part.startswith("-"):
                items.append((part[1:], "desc"))
            elif ":" in part:
                name, _, direction = part.partition(":")
                items.append((name, direction))
            else:
                items.append((part, "asc"))

    order: List[Tuple[str, str]] = []
    for name, direction in items:
        direction = direction.lower()
        if not name or direction not in ("asc", "desc"):
            raise _invalid("sort", "sort direction must be 'asc' or 'desc'", raw)
        order.append((name, direction))
    return tuple(order) or DEFAULT_SORT


def check_id(value: str, id_format: str) -> None:
    """Raise ValidationError (422) when `value` does not fit the resource's id format."""
    if id_format == "uuid":
        try:
            uuid.UUID(value)
            return
        except ValueError:
            raise ValidationError(
                message="Invalid id",
                field_errors=[{"field": "id", "message": "id must be a valid UUID", "value": value}],
            )
    if id_format == "int":
        if value.isdigit():
            return
        raise ValidationError(
            message="Invalid id",
            field_errors=[{"field": "id", "message": "id must be a non-negative integer", "value": value}],
        )
    if not value:
        raise ValidationError(
            message="Invalid id",
            field_errors=[{"field": "id", "message": "id is required", "value": value}],
        )


# ══════════════════════════════════════════════════════════════════════════
# Generator
# ══════════════════════════════════════════════════════════════════════════


class CrudGenerator:
    """
    Args:
        settings:     Pagination limits and auth defaults
        providers:    Resource → PersistenceProvider dispatch table
        registry:     Where generated endpoints are registered
        validation:   Builds "validate" stages and supplies built-in schemas
        auth:         Builds "auth" stages
        rate_limiter: Builds "rate_limit" stages (None disables them)
    """

    def __init__(
        self,
        settings: Settings,
        providers: ProviderRegistry,
        registry: EndpointRegistry,
        validation: ValidationEngine,
        auth: AuthService,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings
        self.providers = providers
        self.registry = registry
        self.validation = validation
        self.auth = auth
        self.rate_limiter = rate_limiter

    # ── Public API ────────────────────────────────────────────────────────

    def generate(
        self,
        resource: str,
        operations: Optional[Sequence[str]] = None,
        options: Optional[GenerateOptions] = None,
    ) -> Tuple[EndpointDescriptor, ...]:
        """
        Register one endpoint per requested operation.

        Raises:
            ValueError:          Unknown operation name
            ConfigurationError:  No provider bound to `resource`
            DuplicateEndpointError: Endpoint exists and overwrite is off
        """
        options = options or GenerateOptions()
        requested = list(dict.fromkeys(operations or OPERATIONS))
        unknown = [op for op in requested if op not in _ROUTES]
        if unknown:
            raise ValueError(f"Unknown CRUD operation(s): {', '.join(unknown)}")

        binding = self.providers.get(resource)
        descriptors = []
        for operation in requested:
            method, with_id = _ROUTES[operation]
            schema = self._schema_for(resource, operation, options)
            handler = options.custom_handlers.get(operation) or self._handler(binding, operation)
            descriptor = EndpointDescriptor(
                method=method,
                path=f"/{resource}/:id" if with_id else f"/{resource}",
                version=options.version,
                handler=handler,
                middleware_chain=self._chain(options.auth_required, options.allowed_roles, schema),
                validation_schema=schema,
                description=options.description or _DESCRIPTIONS[operation].format(resource=resource),
                tags=(resource,),
                resource=resource,
                operation=operation,
            )
            descriptors.append(self.registry.register(descriptor, overwrite=options.overwrite))

        logger.info(
            "Generated %d endpoint(s) for %s (%s): %s",
            len(descriptors),
            resource,
            options.version or "unversioned",
            ", ".join(requested),
        )
        return tuple(descriptors)

    def register_custom(
        self,
        method: str,
        path: str,
        handler: Handler,
        version: Optional[str] = None,
        description: Optional[str] = None,
        tags: Sequence[str] = (),
        auth_required: Optional[bool] = None,
        allowed_roles: Sequence[str] = (),
        validation_schema: Optional[ValidationSchema] = None,
        overwrite: bool = False,
    ) -> EndpointDescriptor:
        """Register a hand-written endpoint with the same stage composition rules."""
        if auth_required is None:
            auth_required = self.settings.require_auth_by_default
        descriptor = EndpointDescriptor(
            method=method.upper(),
            path=path,
            version=version,
            handler=handler,
            middleware_chain=self._chain(auth_required, allowed_roles, validation_schema),
            validation_schema=validation_schema,
            description=description,
            tags=tuple(tags),
        )
        return self.registry.register(descriptor, overwrite=overwrite)

    # ── Composition ───────────────────────────────────────────────────────

    def _schema_for(self, resource: str, operation: str, options: GenerateOptions) -> Optional[ValidationSchema]:
        if not options.validation_required or operation not in ("create", "update", "patch"):
            return None
        if operation in options.schemas:
            return options.schemas[operation]
        if operation == "create":
            return self.validation.schema_for(resource, "create")
        update = self.validation.schema_for(resource, "update")
        if update is not None:
            return update
        create = self.validation.schema_for(resource, "create")
        if create is None:
            return None
        return create if operation == "update" else partial_schema(create)

    def _chain(
        self,
        auth_required: bool,
        allowed_roles: Sequence[str],
        schema: Optional[ValidationSchema],
    ) -> Tuple[Stage, ...]:
        stages: List[Stage] = []
        if self.rate_limiter is not None and self.settings.rate_limit_enabled:
            stages.append(self.rate_limiter.stage())
        if auth_required:
            stages.append(self.auth.stage(allowed_roles))
        if schema is not None:
            stages.append(self.validation.stage(schema))
        return tuple(stages)

    def _handler(self, binding: ResourceBinding, operation: str) -> Handler:
        return {
            "list": self._list_handler,
            "get": self._get_handler,
            "create": self._create_handler,
            "update": self._update_handler,
            "patch": self._patch_handler,
            "delete": self._delete_handler,
        }[operation](binding)

    # ── Handlers ──────────────────────────────────────────────────────────

    def _list_handler(self, binding: ResourceBinding) -> Handler:
        settings = self.settings

        async def handle(ctx: RequestContext) -> HandlerResult:
            limit = parse_int(
                ctx.query, "limit", settings.pagination_default_limit, 1, settings.pagination_max_limit
            )
            offset = parse_int(ctx.query, "offset", 0, 0)
            order_by = parse_sort(ctx.query.get("sort"))
            where = parse_json(ctx.query, "filter", expect_object=True) or {}
            include = parse_json(ctx.query, "include")

            try:
                data, total = await asyncio.gather(
                    binding.provider.find_many(where, order_by, offset, limit, include),
                    binding.provider.count(where),
                )
            except ProviderError as e:
                raise translate_provider_error(e, binding.name) from e
            return HandlerResult({"data": data, "meta": {"total": total, "limit": limit, "offset": offset}})

        return handle

    def _get_handler(self, binding: ResourceBinding) -> Handler:
        async def handle(ctx: RequestContext) -> HandlerResult:
            record_id = ctx.path_params.get("id", "")
            check_id(record_id, binding.id_format)
            include = parse_json(ctx.query, "include")
            record = await self._find(binding, record_id, include)
            return HandlerResult({"data": record})

        return handle

    def _create_handler(self, binding: ResourceBinding) -> Handler:
        async def handle(ctx: RequestContext) -> HandlerResult:
            try:
                record = await binding.provider.create(_body(ctx))
            except ProviderError as e:
                raise translate_provider_error(e, binding.name) from e
            logger.info("[%s] Created %s %s", ctx.request_id, binding.name, record.get("id"))
            return HandlerResult(
                {"data": record, "meta": {"message": f"{binding.name} created successfully"}},
                status=201,
            )

        return handle

    def _update_handler(self, binding: ResourceBinding) -> Handler:
        return self._write_handler(binding, replace=True, message="updated successfully")

    def _patch_handler(self, binding: ResourceBinding) -> Handler:
        return self._write_handler(binding, replace=False, message="partially updated successfully")

    def _write_handler(self, binding: ResourceBinding, replace: bool, message: str) -> Handler:
        async def handle(ctx: RequestContext) -> HandlerResult:
            record_id = ctx.path_params.get("id", "")
            check_id(record_id, binding.id_format)
            await self._find(binding, record_id)
            try:
                record = await binding.provider.update(record_id, _body(ctx), replace=replace)
            except ProviderError as e:
                raise translate_provider_error(e, binding.name) from e
            return HandlerResult({"data": record, "meta": {"message": f"{binding.name} {message}"}})

        return handle

    def _delete_handler(self, binding: ResourceBinding) -> Handler:
        async def handle(ctx: RequestContext) -> HandlerResult:
            record_id = ctx.path_params.get("id", "")
            check_id(record_id, binding.id_format)
            await self._find(binding, record_id)
            try:
                await binding.provider.delete(record_id)
            except ProviderError as e:
                raise translate_provider_error(e, binding.name) from e
            logger.info("[%s] Deleted %s %s", ctx.request_id, binding.name, record_id)
            return HandlerResult({"data": None, "meta": {"message": f"{binding.name} deleted successfully"}})

        return handle

    @staticmethod
    async def _find(binding: ResourceBinding, record_id: str, include: Any = None) -> Dict[str, Any]:
        try:
            record = await binding.provider.find_unique(record_id, include)
        except ProviderError as e:
            raise translate_provider_error(e, binding.name) from e
        if record is None:
            raise NotFoundError(resource=binding.name, resource_id=record_id)
        return record


def _body(ctx: RequestContext) -> Dict[str, Any]:
    if ctx.body is None:
        return {}
    if not isinstance(ctx.body, dict):
        raise ValidationError("Request body must be a JSON object")
    return dict(ctx.body)
