"""
apiforge — Access Log Middleware
=================================

What:  One log line per request: method, path, status, duration, client,
       and the API version that actually served it.
How:   Times the downstream call with perf_counter and logs on the
       "apiforge.access" logger at a level chosen by status class.
Who:   Installed by create_app() inside RequestIDMiddleware, so the request
       id is already set.

Levels:
    5xx → ERROR,  4xx → WARNING,  everything else → INFO

Request bodies and credential headers are never logged here.
"""

import logging
import time
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from apiforge.middleware.request_id import request_id_var

logger = logging.getLogger("apiforge.access")


def level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, quiet_paths: Iterable[str] = ("/health",)) -> None:
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.quiet_paths:
            return await call_next(request)

        began = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - began) * 1000, 2)

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else "unknown",
            "api_version": response.headers.get("X-API-Version", "-"),
        }
        logger.log(
            level_for(fields["status"]),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms %(api_version)s [%(request_id)s] from %(client_ip)s",
            fields,
            extra=fields,
        )
        return response
