"""
apiforge — Request Pipeline
============================

What:  Runs one request through the ordered stages and the endpoint handler.
How:   Pure async function of the RequestContext. Nothing here formats an
       HTTP response; the result carries either the handler output or the
       ApiError that stopped the request.
Who:   Called by the dispatcher route for every /api/... request.

Order:
    1. version    resolve the API version, attach X-API-Version / deprecation
    2. match      find the endpoint in the registry; when none matches the
                  fallback stages (rate_limit) run and the result is a 404
    3. stages     the descriptor's chain, typically rate_limit → auth → validate
    4. handler    under asyncio.wait_for(request_timeout); timeout → 504

Any stage may return ShortCircuit or raise; either ends the request with
the context as it was at that point, so headers attached by earlier stages
(quota, version) still reach the client. Non-ApiError exceptions become
INTERNAL_ERROR in the dispatcher like any other defect.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

from apiforge.exceptions import ApiError, NotFoundError, RequestTimeoutError
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import HandlerResult, ShortCircuit, Stage

logger = logging.getLogger(__name__)

_LEADING_VERSION = re.compile(r"^/v\d+(?=/|$)")


@dataclass(frozen=True)
class PipelineResult:
    context: RequestContext
    response: Optional[HandlerResult] = None
    error: Optional[BaseException] = None
    resource: str = "resource"


def split_version(api_path: str) -> Tuple[Optional[str], str]:
    """
    "/v1/foodEntry/abc" → ("v1", "/foodEntry/abc")
    "/health-check"     → (None, "/health-check")
    """
    match = _LEADING_VERSION.match(api_path)
    if not match:
        return None, api_path or "/"
    return match.group(0)[1:], api_path[match.end():] or "/"


class RequestPipeline:
    """
    Args:
        registry:         EndpointRegistry to match against
        version_stage:    Global "version" stage (VersionResolver.stage())
        timeout_seconds:  Handler timeout; None or 0 disables it
        fallback_stages:  Run for requests that match no endpoint, so a 404
                          still carries quota headers and still counts
    """

    def __init__(
        self,
        registry,
        version_stage: Optional[Stage],
        timeout_seconds: Optional[float] = 30.0,
        fallback_stages: Sequence[Stage] = (),
    ):
        self.registry = registry
        self.version_stage = version_stage
        self.timeout_seconds = timeout_seconds
        self.fallback_stages = tuple(fallback_stages)

    def _match(self, ctx: RequestContext, api_path: str):
        path_version, relative = split_version(api_path)
        version = ctx.version or path_version
        found = self.registry.match(ctx.method, relative, version)
        if found is None and path_version is None:
            found = self.registry.match(ctx.method, relative, None)
        return found

    async def _run_stages(
        self, ctx: RequestContext, stages: Iterable[Stage]
    ) -> Tuple[RequestContext, Optional[BaseException]]:
        for stage in stages:
            try:
                outcome = await stage(ctx)
            except Exception as e:
                if not isinstance(e, ApiError):
                    logger.error("[%s] Stage %s raised %s", ctx.request_id, stage.name, type(e).__name__)
                return ctx, e
            ctx = outcome.context
            if isinstance(outcome, ShortCircuit):
                logger.debug("[%s] Stage %s short-circuited %s %s", ctx.request_id, stage.name, ctx.method, ctx.path)
                return ctx, outcome.error
        return ctx, None

    async def run(
        self,
        ctx: RequestContext,
        api_path: str,
        body_error: Optional[ApiError] = None,
    ) -> PipelineResult:
        """
        Args:
            ctx:         Context built from the inbound request
            api_path:    Request path with the "/api" prefix removed
            body_error:  Set when the raw body could not be parsed; reported
                         after the version and rate_limit stages have run
        """
        if self.version_stage is not None:
            ctx, error = await self._run_stages(ctx, (self.version_stage,))
            if error is not None:
                return PipelineResult(ctx, error=error)

        found = self._match(ctx, api_path)
        if found is None:
            ctx, error = await self._run_stages(ctx, self.fallback_stages)
            return PipelineResult(
                ctx,
                error=error or NotFoundError(
                    resource="Endpoint",
                    message=f"Endpoint {ctx.method} {ctx.path} not found",
                ),
            )
        descriptor, params = found
        resource = descriptor.resource or "resource"
        ctx = ctx.evolve(route_path=descriptor.full_path, path_params=params)

        stages = descriptor.middleware_chain
        if body_error is not None:
            stages = [s for s in stages if s.name == "rate_limit"]
        ctx, error = await self._run_stages(ctx, stages)
        if error is not None or body_error is not None:
            return PipelineResult(ctx, error=error or body_error, resource=resource)

        try:
            if self.timeout_seconds:
                result = await asyncio.wait_for(descriptor.handler(ctx), timeout=self.timeout_seconds)
            else:
                result = await descriptor.handler(ctx)
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] Handler for %s %s exceeded %.1fs",
                ctx.request_id,
                ctx.method,
                ctx.path,
                self.timeout_seconds,
            )
            return PipelineResult(ctx, error=RequestTimeoutError(), resource=resource)
        except Exception as e:
            return PipelineResult(ctx, error=e, resource=resource)
        return PipelineResult(ctx, response=result, resource=resource)
