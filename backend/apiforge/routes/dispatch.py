"""
apiforge — Endpoint Dispatcher
===============================

What:  The single FastAPI route behind every registered endpoint.
How:   Builds a RequestContext from the Starlette request, runs it through
       the RequestPipeline, and converts the result into a JSONResponse.
       This is the only place pipeline errors become HTTP responses.
Who:   Mounted by create_app() at /api/{path}.

Headers accumulated on the context (X-API-Version, deprecation headers,
X-RateLimit-*) are sent on success and error responses alike.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from apiforge.container import Container
from apiforge.exceptions import ValidationError
from apiforge.middleware.request_id import request_id_var
from apiforge.pipeline.context import RequestContext
from apiforge.routes.deps import get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Generated"])

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


async def read_json_body(request: Request) -> Any:
    if request.method not in BODY_METHODS:
        return None
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError("Request body must be valid JSON")


def build_context(request: Request, body: Any = None) -> RequestContext:
    request_id = getattr(request.state, "request_id", "") or request_id_var.get("")
    return RequestContext.create(
        method=request.method,
        path=request.url.path,
        headers=dict(request.headers),
        query=dict(request.query_params),
        cookies=dict(request.cookies),
        body=body,
        client_ip=request.client.host if request.client else "unknown",
        request_id=request_id,
    )


def error_response(
    container: Container,
    exc: BaseException,
    ctx: RequestContext,
    resource: str = "resource",
) -> JSONResponse:
    request_info = container.errors.describe_request(
        ctx.method,
        ctx.path,
        query=ctx.query,
        body=ctx.body,
        headers=ctx.headers,
        client_ip=ctx.client_ip,
        user=ctx.identity.subject_id if ctx.identity else None,
    )
    status, envelope, error_headers = container.errors.handle(
        exc, ctx.path, ctx.method, ctx.request_id, request_info, resource
    )
    headers = dict(ctx.response_headers)
    headers.update(error_headers)
    return JSONResponse(status_code=status, content=envelope, headers=headers)


@router.api_route(
    "/api/{api_path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def dispatch(api_path: str, request: Request, container: Container = Depends(get_container)) -> JSONResponse:
    body, body_error = None, None
    try:
        body = await read_json_body(request)
    except ValidationError as e:
        body_error = e

    ctx = build_context(request, body)
    result = await container.pipeline.run(ctx, "/" + api_path, body_error=body_error)

    if result.error is not None:
        return error_response(container, result.error, result.context, result.resource)

    response = result.response
    headers = dict(result.context.response_headers)
    headers.update(response.headers or {})
    return JSONResponse(status_code=response.status, content=response.body, headers=headers)
