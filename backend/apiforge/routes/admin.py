"""
apiforge — Admin Routes
========================

What:  Introspection and version management for operators.
How:   Thin wrappers over RouteAnalyzer, DocsGenerator and VersionResolver.
       Errors are raised as ApiError and formatted by the global handlers.
Who:   Operators and CI jobs (docs export, coverage checks).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import PlainTextResponse, Response

from apiforge.container import Container
from apiforge.exceptions import ValidationError
from apiforge.routes.deps import get_container
from apiforge.schemas.analysis import ApiHealthReport, DeprecateVersionRequest, RouteAnalysis, VersionInfo
from apiforge.services.docs_generator import DOC_FORMATS, UnsupportedFormatError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/analysis",
    response_model=RouteAnalysis,
    response_model_by_alias=True,
    summary="Endpoint statistics and recommendations",
)
async def route_analysis(container: Container = Depends(get_container)) -> RouteAnalysis:
    return container.analyzer.analyze(container.registry)


@router.get(
    "/health",
    response_model=ApiHealthReport,
    response_model_by_alias=True,
    summary="Endpoint coverage and middleware wiring",
)
async def api_health(container: Container = Depends(get_container)) -> ApiHealthReport:
    return container.health_report()


@router.get("/docs", summary="Generated API documentation")
async def api_docs(
    format: str = Query(default="openapi", description="openapi, postman or markdown"),
    include_examples: bool = Query(default=True, alias="includeExamples"),
    container: Container = Depends(get_container),
) -> Response:
    try:
        content = container.docs.generate(container.registry.all(), format, include_examples)
    except UnsupportedFormatError as e:
        raise ValidationError(
            message=str(e),
            field_errors=[{"field": "format", "message": f"format must be one of: {', '.join(DOC_FORMATS)}", "value": format}],
        )
    if format == "markdown":
        return PlainTextResponse(content, media_type="text/markdown")
    return Response(content, media_type="application/json")


@router.get(
    "/versions",
    response_model=VersionInfo,
    response_model_by_alias=True,
    summary="Supported and deprecated API versions",
)
async def versions(container: Container = Depends(get_container)) -> VersionInfo:
    return VersionInfo.model_validate(_info(container))


@router.post(
    "/versions/{version}/deprecate",
    response_model=VersionInfo,
    response_model_by_alias=True,
    summary="Mark an API version as deprecated",
)
async def deprecate_version(
    version: str,
    payload: Optional[DeprecateVersionRequest] = Body(default=None),
    container: Container = Depends(get_container),
) -> VersionInfo:
    container.versioning.mark_deprecated(version, sunset=payload.sunset if payload else None)
    return VersionInfo.model_validate(_info(container))


def _info(container: Container) -> dict:
    info = container.versioning.info()
    return {
        "current": info["current"],
        "supported": info["supported"],
        "deprecated": info["deprecated"],
        "sunset_dates": info["sunsetDates"],
    }
