"""
apiforge — Route Analyzer
==========================

What:  Summarizes the registered endpoint set and flags gaps.
How:   Single pass over EndpointRegistry.all(). Security and validation are
       read from the descriptor's stage chain, so the numbers reflect what
       actually runs per request.
Who:   GET /admin/analysis, GET /admin/health and the CLI.

Recommendations:
    public > secured            "Consider adding authentication to more endpoints"
    validated < 50 %            "Only N% of endpoints have validation"
    undocumented > 0            "N endpoints lack documentation"
    fewer than 2 GET endpoints  "Consider adding more GET endpoints for data retrieval"
    any unversioned endpoint    "Some endpoints are not versioned"
"""

import logging
from collections import Counter

from apiforge.schemas.analysis import (
    ApiHealthReport,
    DocumentationStatus,
    EndpointHealth,
    MiddlewareStatus,
    RouteAnalysis,
)
from apiforge.services.registry import EndpointRegistry

logger = logging.getLogger(__name__)

UNVERSIONED = "unversioned"


class RouteAnalyzer:
    def analyze(self, registry: EndpointRegistry) -> RouteAnalysis:
        endpoints = registry.all()
        by_method: Counter = Counter()
        by_version: Counter = Counter()
        secured = validated = undocumented = 0

        for endpoint in endpoints:
            by_method[endpoint.method] += 1
            by_version[endpoint.version or UNVERSIONED] += 1
            if endpoint.secured:
                secured += 1
            if endpoint.validated:
                validated += 1
            if not endpoint.description:
                undocumented += 1

        analysis = RouteAnalysis(
            total_endpoints=len(endpoints),
            by_method=dict(by_method),
            by_version=dict(by_version),
            secured_endpoints=secured,
            public_endpoints=len(endpoints) - secured,
            validated_endpoints=validated,
            undocumented_endpoints=undocumented,
        )
        analysis.recommendations = self.recommendations(analysis)
        logger.debug("Analyzed %d endpoints: %d recommendation(s)", len(endpoints), len(analysis.recommendations))
        return analysis

    @staticmethod
    def recommendations(analysis: RouteAnalysis) -> list:
        hints = []
        if analysis.public_endpoints > analysis.secured_endpoints:
            hints.append("Consider adding authentication to more endpoints")
        if analysis.total_endpoints:
            validation_rate = analysis.validated_endpoints / analysis.total_endpoints * 100
            if validation_rate < 50:
                hints.append(f"Only {validation_rate:.0f}% of endpoints have validation")
        if analysis.undocumented_endpoints > 0:
            hints.append(f"{analysis.undocumented_endpoints} endpoints lack documentation")
        if analysis.by_method.get("GET", 0) < 2:
            hints.append("Consider adding more GET endpoints for data retrieval")
        if analysis.by_version.get(UNVERSIONED, 0) > 0:
            hints.append("Some endpoints are not versioned")
        return hints

    def health(
        self,
        registry: EndpointRegistry,
        auth_configured: bool,
        validation_configured: bool = True,
        error_handling_configured: bool = True,
        versioning_configured: bool = True,
    ) -> ApiHealthReport:
        """Endpoint totals, documentation coverage and which stages are wired up."""
        analysis = self.analyze(registry)
        total = analysis.total_endpoints
        documented = total - analysis.undocumented_endpoints
        return ApiHealthReport(
            status="healthy",
            endpoints=EndpointHealth(total=total, healthy=documented, errors=0),
            middleware=MiddlewareStatus(
                auth=auth_configured,
                validation=validation_configured,
                error_handling=error_handling_configured,
                versioning=versioning_configured,
            ),
            documentation=DocumentationStatus(
                generated=analysis.undocumented_endpoints == 0,
                coverage=round(documented / total * 100, 1) if total else 0.0,
            ),
        )
