"""
apiforge — API Versioning
==========================

What:  Resolves which API version a request targets and annotates responses
       for deprecated versions.
How:   A frozen VersionPolicy describes supported / default / deprecated
       versions. The resolver reads it; the only mutation is
       mark_deprecated(), which swaps in a new policy object.
Who:   RequestPipeline runs the "version" stage before endpoint matching;
       the admin routes expose info() and mark_deprecated().

Resolution precedence:
    API-Version header  >  ?version= query param  >  /v{N}/ path segment
    >  default version

    An unsupported version falls back to the default without an error; the
    version actually served is always echoed in X-API-Version so clients
    can detect the fallback.

Deprecated versions additionally get:
    X-API-Deprecation: true
    X-API-Deprecation-Date: <date>   (when known)
    X-API-Sunset: <date>             (when known)
    Link: </api/{default}>; rel="successor-version"
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union

from apiforge.config import Settings
from apiforge.exceptions import NotFoundError
from apiforge.pipeline.context import RequestContext
from apiforge.pipeline.outcome import Continue, Stage, StageOutcome

logger = logging.getLogger(__name__)

_PATH_VERSION = re.compile(r"/(v\d+)(?=/|$)")


@dataclass(frozen=True)
class VersionPolicy:
    supported_versions: Tuple[str, ...]
    default_version: str
    deprecated: FrozenSet[str] = frozenset()
    sunset_dates: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    deprecation_dates: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_settings(cls, settings: Settings) -> "VersionPolicy":
        return cls(
            supported_versions=tuple(settings.supported_versions_list),
            default_version=settings.default_version,
            deprecated=frozenset(settings.deprecated_versions_list),
            sunset_dates=MappingProxyType(settings.sunset_dates_map),
            deprecation_dates=MappingProxyType(settings.deprecation_dates_map),
        )


class VersionResolver:
    def __init__(self, policy: VersionPolicy, header_name: str = "API-Version", query_param: str = "version"):
        self._policy = policy
        self.header_name = header_name
        self.query_param = query_param

    @property
    def policy(self) -> VersionPolicy:
        return self._policy

    def is_supported(self, version: Optional[str]) -> bool:
        return version in self._policy.supported_versions

    def is_deprecated(self, version: str) -> bool:
        return version in self._policy.deprecated

    @staticmethod
    def version_in_path(path: str) -> Optional[str]:
        match = _PATH_VERSION.search(path)
        return match.group(1) if match else None

    def resolve(self, headers: Mapping[str, str], query: Mapping[str, str], path: str) -> str:
        """Header > query > path > default; unsupported values fall back to default."""
        requested = (
            headers.get(self.header_name.lower())
            or query.get(self.query_param)
            or self.version_in_path(path)
        )
        if requested and self.is_supported(requested):
            return requested
        if requested:
            logger.debug("Unsupported API version %r requested; serving %s", requested, self._policy.default_version)
        return self._policy.default_version

    def headers_for(self, version: str) -> Dict[str, str]:
        headers = {"X-API-Version": version}
        if self.is_deprecated(version):
            policy = self._policy
            headers["X-API-Deprecation"] = "true"
            if version in policy.deprecation_dates:
                headers["X-API-Deprecation-Date"] = policy.deprecation_dates[version]
            if version in policy.sunset_dates:
                headers["X-API-Sunset"] = policy.sunset_dates[version]
            headers["Link"] = f'</api/{policy.default_version}>; rel="successor-version"'
        return headers

    def mark_deprecated(self, version: str, sunset: Optional[Union[date, str]] = None) -> VersionPolicy:
        """Add `version` to the deprecated set (admin operation)."""
        if not self.is_supported(version):
            raise NotFoundError(resource="API version", resource_id=version)
        policy = self._policy
        deprecation_dates = dict(policy.deprecation_dates)
        deprecation_dates.setdefault(version, datetime.now(timezone.utc).date().isoformat())
        sunset_dates = dict(policy.sunset_dates)
        if sunset is not None:
            sunset_dates[version] = sunset.isoformat() if isinstance(sunset, date) else str(sunset)
        self._policy = replace(
            policy,
            deprecated=policy.deprecated | {version},
            deprecation_dates=MappingProxyType(deprecation_dates),
            sunset_dates=MappingProxyType(sunset_dates),
        )
        logger.warning("API version %s marked as deprecated. Sunset: %s", version, sunset or "TBD")
        return self._policy

    def info(self) -> Dict[str, object]:
        policy = self._policy
        return {
            "current": policy.default_version,
            "supported": list(policy.supported_versions),
            "deprecated": sorted(policy.deprecated),
            "sunsetDates": dict(policy.sunset_dates),
        }

    # ── Pipeline stage ────────────────────────────────────────────────────

    def stage(self) -> Stage:
        async def run(ctx: RequestContext) -> StageOutcome:
            version = self.resolve(ctx.headers, ctx.query, ctx.path)
            return Continue(ctx.evolve(version=version).with_headers(self.headers_for(version)))

        return Stage(name="version", run=run)
