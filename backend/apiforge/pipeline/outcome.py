"""
apiforge — Stage Outcomes
==========================

What:  Typed results of pipeline stages and handlers.

    Continue(context)             → proceed with the (possibly evolved) context
    ShortCircuit(context, error)  → stop; the error is formatted once at the
                                    HTTP boundary

A Stage pairs a name (used by the route analyzer and the docs generator,
e.g. "auth", "validate") with the coroutine that runs it. Stages may also
raise ApiError; the chain turns that into a ShortCircuit.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from apiforge.exceptions import ApiError
from apiforge.pipeline.context import RequestContext


@dataclass(frozen=True)
class Continue:
    context: RequestContext


@dataclass(frozen=True)
class ShortCircuit:
    context: RequestContext
    error: ApiError


StageOutcome = Union[Continue, ShortCircuit]


@dataclass(frozen=True, eq=False)
class Stage:
    name: str
    run: Callable[[RequestContext], Awaitable[StageOutcome]]
    # Stage metadata readable by introspection (e.g. allowed roles)
    options: Mapping[str, Any] = field(default_factory=dict)

    async def __call__(self, ctx: RequestContext) -> StageOutcome:
        return await self.run(ctx)


@dataclass(frozen=True)
class HandlerResult:
    """Successful handler output: status plus the JSON-ready envelope."""

    body: Any
    status: int = 200
    headers: Optional[Mapping[str, str]] = None


Handler = Callable[[RequestContext], Awaitable[HandlerResult]]
