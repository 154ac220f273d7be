"""
apiforge — Admin & Health Schemas
==================================

What:  API contracts for the route analysis, API health, version info and
       service health responses.
How:   Fields are snake_case in Python and serialized camelCase
       (`model_dump(by_alias=True)`), matching the JSON envelopes the
       generated endpoints use.
Who:   Built by RouteAnalyzer and the routes in routes/admin.py and
       routes/health.py; printed by the CLI.
"""

from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RouteAnalysis(CamelModel):
    """Counts over every registered endpoint plus improvement hints."""

    total_endpoints: int = 0
    by_method: Dict[str, int] = Field(default_factory=dict)
    by_version: Dict[str, int] = Field(default_factory=dict)
    secured_endpoints: int = 0
    public_endpoints: int = 0
    validated_endpoints: int = 0
    undocumented_endpoints: int = 0
    recommendations: List[str] = Field(default_factory=list)


class EndpointHealth(CamelModel):
    total: int
    healthy: int
    errors: int = 0


class MiddlewareStatus(CamelModel):
    auth: bool
    validation: bool
    error_handling: bool
    versioning: bool


class DocumentationStatus(CamelModel):
    generated: bool
    coverage: float = Field(description="Percentage of endpoints with a description")


class ApiHealthReport(CamelModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    endpoints: EndpointHealth
    middleware: MiddlewareStatus
    documentation: DocumentationStatus


class VersionInfo(CamelModel):
    current: str
    supported: List[str]
    deprecated: List[str]
    sunset_dates: Dict[str, str] = Field(default_factory=dict)


class DeprecateVersionRequest(CamelModel):
    sunset: Optional[date] = Field(default=None, description="Date the version stops being served")


class ServiceHealthResponse(CamelModel):
    """GET /health: process liveness plus persistence reachability."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    environment: str
    persistence: Dict[str, str]
    endpoints: int
    uptime_seconds: float
