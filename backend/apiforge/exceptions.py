"""
apiforge — Error Taxonomy
==========================

What:  Canonical error codes, their default HTTP statuses, and the exception
       hierarchy raised by pipeline stages, generated handlers and providers.
How:   Each exception carries a code, status, client-safe message, optional
       client-facing `details` and a log-only `context`. The ErrorHandler
       service turns any of them into the uniform error envelope.
Who:   Raised by services and providers; formatted once by the ErrorHandler.

Exception Hierarchy:
    ApiError (base)
    ├── ValidationError          → 422 VALIDATION_ERROR
    ├── NotFoundError            → 404 NOT_FOUND
    ├── AuthError                → 401 AUTH_ERROR
    ├── PermissionDeniedError    → 403 PERMISSION_ERROR
    ├── ConflictError            → 409 CONFLICT
    │   └── DuplicateEndpointError
    ├── RateLimitExceededError   → 429 RATE_LIMIT
    ├── DatabaseError            → 500 DATABASE_ERROR
    ├── InvalidReferenceError    → 400 INVALID_REFERENCE
    ├── RequestTimeoutError      → 504 TIMEOUT
    └── InternalError            → 500 INTERNAL_ERROR (is_operational=False)

    ProviderError                  raised by persistence providers only;
                                   never reaches a client untranslated.

Operational vs. non-operational:
    is_operational=True  → expected domain failure; message and code are
                           returned to the client verbatim.
    is_operational=False → defect; logged with full detail, client sees a
                           generic message.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    CONFLICT = "CONFLICT"
    RATE_LIMIT = "RATE_LIMIT"
    DATABASE_ERROR = "DATABASE_ERROR"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


DEFAULT_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.AUTH_ERROR: 401,
    ErrorCode.PERMISSION_ERROR: 403,
    ErrorCode.CONFLICT: 409,
    ErrorCode.RATE_LIMIT: 429,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.INVALID_REFERENCE: 400,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ApiError(Exception):
    """
    Base exception for every failure that can reach the HTTP boundary.

    Attributes:
        code:            ErrorCode member
        status:          HTTP status (defaults from DEFAULT_STATUS)
        message:         Client-safe description
        details:         Client-facing structured info (e.g. field errors)
        context:         Debug info, logged but NOT returned to the client
        is_operational:  False marks a defect (generic client message)
        headers:         Extra response headers (e.g. Retry-After)
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message = "An unexpected error occurred"
    operational = True

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        context: Optional[Dict[str, Any]] = None,
        status: Optional[int] = None,
        code: Optional[ErrorCode] = None,
        is_operational: Optional[bool] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message or self.default_message
        self.status = status or DEFAULT_STATUS[self.code]
        self.details = details
        self.context = context or {}
        self.is_operational = self.operational if is_operational is None else is_operational
        self.headers = headers or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code={self.code.value}, status={self.status})>"


class ValidationError(ApiError):
    """
    Client input failed validation.

    `details` is the full list of field errors collected in one pass:
        [{"field": "email", "message": "email is required", "value": None}, ...]
    """

    code = ErrorCode.VALIDATION_ERROR
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field_errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=field_errors or [], context=context)
        self.field_errors = field_errors or []


class NotFoundError(ApiError):
    code = ErrorCode.NOT_FOUND
    default_message = "Resource not found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"{resource} not found"
            if resource_id is not None:
                message = f"{resource} with id '{resource_id}' not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class AuthError(ApiError):
    code = ErrorCode.AUTH_ERROR
    default_message = "Authentication required"


class PermissionDeniedError(ApiError):
    code = ErrorCode.PERMISSION_ERROR
    default_message = "Insufficient permissions"


class ConflictError(ApiError):
    code = ErrorCode.CONFLICT
    default_message = "Resource already exists"


class DuplicateEndpointError(ConflictError):
    """Registering an existing (method, path, version) key without overwrite."""

    def __init__(self, method: str, path: str, version: Optional[str]):
        super().__init__(
            message=f"Endpoint {method} {path} ({version or 'unversioned'}) is already registered",
            context={"method": method, "path": path, "version": version},
        )
        self.key = (method, path, version)


class RateLimitExceededError(ApiError):
    """
    Client exceeded the fixed-window quota for its key.

    `retry_after_ms` is the time left until the window resets; the
    Retry-After header is rounded up to whole seconds.
    """

    code = ErrorCode.RATE_LIMIT
    default_message = "Too many requests, please try again later."

    def __init__(
        self,
        retry_after_ms: int,
        message: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        retry_after_seconds = max(1, -(-retry_after_ms // 1000))
        hdrs = dict(headers or {})
        hdrs["Retry-After"] = str(retry_after_seconds)
        super().__init__(
            message=message,
            details={"retryAfterMs": retry_after_ms},
            context=context,
            headers=hdrs,
        )
        self.retry_after_ms = retry_after_ms


class DatabaseError(ApiError):
    """Persistence failure with no more specific taxonomy entry."""

    code = ErrorCode.DATABASE_ERROR
    default_message = "Database operation failed"


class InvalidReferenceError(ApiError):
    code = ErrorCode.INVALID_REFERENCE
    default_message = "Invalid reference"


class RequestTimeoutError(ApiError):
    code = ErrorCode.TIMEOUT
    default_message = "The request took too long to complete"


class InternalError(ApiError):
    code = ErrorCode.INTERNAL_ERROR
    default_message = "An unexpected error occurred. Please try again or contact support."
    operational = False


# ══════════════════════════════════════════════════════════════════════════
# Provider boundary
# ══════════════════════════════════════════════════════════════════════════


class ProviderErrorCode(str, Enum):
    UNIQUE_VIOLATION = "UNIQUE_VIOLATION"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    # Filter/sort referenced a field the backend does not have
    INVALID_QUERY = "INVALID_QUERY"
    UNKNOWN = "UNKNOWN"


class ProviderError(Exception):
    """
    Raised by PersistenceProvider implementations.

    Attributes:
        code:   ProviderErrorCode
        field:  Offending column/field when the backend reports one
        cause:  Original backend exception (logged only)
    """

    def __init__(
        self,
        code: ProviderErrorCode = ProviderErrorCode.UNKNOWN,
        message: str = "Persistence provider error",
        field: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.field = field
        self.cause = cause


def translate_provider_error(exc: ProviderError, resource: str = "resource") -> ApiError:
    """
    Map a provider failure onto the taxonomy.

        UNIQUE_VIOLATION      → ConflictError (409)
        RECORD_NOT_FOUND      → NotFoundError (404)
        FOREIGN_KEY_VIOLATION → InvalidReferenceError (400)
        INVALID_QUERY         → ValidationError (422)
        anything else         → DatabaseError (500)
    """
    ctx: Dict[str, Any] = {"provider_code": exc.code.value, "provider_message": exc.message}
    if exc.cause is not None:
        ctx["cause"] = type(exc.cause).__name__

    if exc.code is ProviderErrorCode.UNIQUE_VIOLATION:
        return ConflictError(
            message=f"{resource} already exists",
            details={"field": exc.field} if exc.field else None,
            context=ctx,
        )
    if exc.code is ProviderErrorCode.RECORD_NOT_FOUND:
        return NotFoundError(resource=resource, context=ctx)
    if exc.code is ProviderErrorCode.FOREIGN_KEY_VIOLATION:
        return InvalidReferenceError(
            details={"field": exc.field} if exc.field else None,
            context=ctx,
        )
    if exc.code is ProviderErrorCode.INVALID_QUERY:
        return ValidationError(
            field_errors=[{"field": exc.field, "message": exc.message, "value": None}],
            context=ctx,
        )
    return DatabaseError(context=ctx)


class ConfigurationError(Exception):
    """Startup wiring problem (unknown resource, missing provider). Fails fast."""
