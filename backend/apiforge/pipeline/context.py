"""
apiforge — Request Context
===========================

What:  Immutable snapshot of one inbound request as it moves through the
       stage chain.
How:   Frozen dataclass. Stages never mutate it; they return an evolved copy
       (`ctx.evolve(version="v2")`, `ctx.with_headers({...})`).
Who:   Built by the dispatcher route from the Starlette request; read by
       every stage and by generated handlers.

Header maps use lower-case keys. `response_headers` accumulates headers
that must be sent whatever the outcome (X-API-Version, X-RateLimit-*).
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def frozen_map(values: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class AuthIdentity:
    """Authenticated caller. Derived per request, never persisted."""

    subject_id: str
    role: str
    claims: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True)
class RequestContext:
    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    query: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    cookies: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    body: Any = None
    client_ip: str = "unknown"
    request_id: str = ""
    # Set by stages
    version: Optional[str] = None
    route_path: Optional[str] = None
    path_params: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    identity: Optional[AuthIdentity] = None
    response_headers: Mapping[str, str] = field(default_factory=lambda: _EMPTY)

    @classmethod
    def create(
        cls,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, str]] = None,
        cookies: Optional[Mapping[str, str]] = None,
        body: Any = None,
        client_ip: str = "unknown",
        request_id: str = "",
    ) -> "RequestContext":
        return cls(
            method=method.upper(),
            path=path,
            headers=frozen_map({k.lower(): v for k, v in (headers or {}).items()}),
            query=frozen_map(query),
            cookies=frozen_map(cookies),
            body=body,
            client_ip=client_ip,
            request_id=request_id,
        )

    def evolve(self, **changes: Any) -> "RequestContext":
        return replace(self, **changes)

    def with_headers(self, headers: Mapping[str, str]) -> "RequestContext":
        merged = dict(self.response_headers)
        merged.update(headers)
        return replace(self, response_headers=frozen_map(merged))

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)
