"""
apiforge — Error Handler
=========================

What:  The single place where failures become HTTP error responses.
How:   normalize() maps any exception onto the ApiError taxonomy, log()
       records it with sensitive values redacted, and envelope() builds the
       uniform response body.
Who:   The dispatcher route and the FastAPI exception handlers registered
       in main.register_exception_handlers().

Envelope:
    {"error": {"status", "message", "code", "timestamp", "path", "method",
               "details"?, "requestId"?, "stack"?}}

Security:
    - Non-operational errors (defects) reach the client as a generic
      message; the real message and stack go to the log only.
    - Body fields named like password / token / secret / apiKey /
      creditCard (case-insensitive, at any depth) and the authorization /
      cookie / x-api-key headers are replaced with ***REDACTED*** before
      anything is logged.
    - Stack traces are included only when expose_stack_trace is on and the
      app is not running in production.
"""

import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from apiforge.exceptions import (
    ApiError,
    InternalError,
    ProviderError,
    RequestTimeoutError,
    translate_provider_error,
)

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"
SENSITIVE_FIELDS = frozenset({"password", "token", "secret", "apikey", "creditcard"})
SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key"})
GENERIC_MESSAGE = InternalError.default_message


def redact(value: Any) -> Any:
    """Deep copy of `value` with sensitive keys masked."""
    if isinstance(value, Mapping):
        return {
            k: REDACTED if isinstance(k, str) and k.lower() in SENSITIVE_FIELDS else redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


def redact_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    return {
        k: REDACTED if k.lower() in SENSITIVE_HEADERS else v
        for k, v in (headers or {}).items()
    }


class ErrorHandler:
    """
    Args:
        expose_stack_trace:  Include `stack` in envelopes (never in production)
        is_production:       Hardened mode
        include_request_id:  Include `requestId` in envelopes
    """

    def __init__(self, expose_stack_trace: bool = True, is_production: bool = False, include_request_id: bool = True):
        self.expose_stack_trace = expose_stack_trace and not is_production
        self.is_production = is_production
        self.include_request_id = include_request_id

    @staticmethod
    def normalize(exc: BaseException, resource: str = "resource") -> ApiError:
        if isinstance(exc, ApiError):
            return exc
        if isinstance(exc, ProviderError):
            return translate_provider_error(exc, resource)
        if isinstance(exc, asyncio.TimeoutError):
            return RequestTimeoutError()
        return InternalError(context={"exception": type(exc).__name__, "detail": str(exc)})

    @staticmethod
    def describe_request(
        method: str,
        path: str,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        client_ip: Optional[str] = None,
        user: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Loggable, redacted summary of the failing request."""
        return {
            "method": method,
            "path": path,
            "query": redact(dict(query or {})),
            "body": redact(body) if body is not None else {},
            "headers": redact_headers(headers),
            "ip": client_ip,
            "user": user,
        }

    def log(self, error: ApiError, request_info: Mapping[str, Any], exc: Optional[BaseException] = None, request_id: str = "") -> None:
        if error.status >= 500 or not error.is_operational:
            logger.error(
                "[%s] API error %s (%d): %s | context=%s | request=%s",
                request_id,
                error.code.value,
                error.status,
                error.message,
                redact(error.context),
                request_info,
                exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
            )
        else:
            logger.warning(
                "[%s] API error %s (%d): %s | request=%s",
                request_id,
                error.code.value,
                error.status,
                error.message,
                request_info,
            )

    def envelope(
        self,
        error: ApiError,
        path: str,
        method: str,
        request_id: str = "",
        exc: Optional[BaseException] = None,
    ) -> Dict[str, Any]:
        message = error.message if error.is_operational else GENERIC_MESSAGE
        body: Dict[str, Any] = {
            "status": error.status,
            "message": message,
            "code": error.code.value,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "path": path,
            "method": method,
        }
        if error.details is not None and error.details != []:
            body["details"] = error.details
        if self.include_request_id and request_id:
            body["requestId"] = request_id
        if self.expose_stack_trace:
            source = exc if exc is not None else error
            if source.__traceback__ is not None:
                body["stack"] = "".join(traceback.format_exception(type(source), source, source.__traceback__))
        return {"error": body}

    def handle(
        self,
        exc: BaseException,
        path: str,
        method: str,
        request_id: str = "",
        request_info: Optional[Mapping[str, Any]] = None,
        resource: str = "resource",
    ) -> Tuple[int, Dict[str, Any], Dict[str, str]]:
        """
        Normalize, log and format `exc`.

        Returns:
            (status, envelope, extra response headers)
        """
        error = self.normalize(exc, resource)
        self.log(
            error,
            request_info or self.describe_request(method, path),
            exc=None if exc is error else exc,
            request_id=request_id,
        )
        return error.status, self.envelope(error, path, method, request_id, exc=exc), dict(error.headers)
