"""
apiforge — Health Check Route
==============================

What:  Liveness and dependency probe for load balancers and Docker.
How:   Pings every bound persistence provider (SELECT 1 for SQL, a no-op
       for in-memory) and reports an aggregate status.
Who:   Docker health checks, load balancers, monitoring.

Status levels:
    healthy    every provider answered                      (HTTP 200)
    degraded   some providers failed                        (HTTP 200)
    unhealthy  no provider answered                         (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from apiforge import __version__
from apiforge.container import Container
from apiforge.routes.deps import get_container
from apiforge.schemas.analysis import ServiceHealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=ServiceHealthResponse,
    response_model_by_alias=True,
    summary="Service health check",
)
async def health_check(container: Container = Depends(get_container)):
    persistence = {}
    for name in container.providers.names():
        provider = container.providers.get(name).provider
        try:
            persistence[name] = "connected" if await provider.ping() else "disconnected"
        except Exception as e:
            persistence[name] = "disconnected"
            logger.warning("Health check: provider for %s unreachable: %s", name, e)

    connected = sum(1 for state in persistence.values() if state == "connected")
    if connected == len(persistence):
        overall = "healthy"
    elif connected:
        overall = "degraded"
    else:
        overall = "unhealthy"

    body = ServiceHealthResponse(
        status=overall,
        version=__version__,
        environment=container.settings.environment,
        persistence=persistence,
        endpoints=len(container.registry),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if overall == "unhealthy":
        return JSONResponse(status_code=503, content=body.model_dump(by_alias=True))
    return body
