"""
apiforge — Abstract Persistence Provider Interface
===================================================

What:  The storage contract consumed by the CRUD generator.
How:   Concrete providers subclass PersistenceProvider and implement the six
       async operations. Entities cross this boundary as plain dicts with
       camelCase keys, ready to be placed in a response envelope.
Who:   InMemoryProvider (tests, local dev) and SqlAlchemyProvider.

Contract:
    - find_many/count apply filtering, ordering and pagination themselves;
      callers never post-process result pages.
    - update/delete on a missing id raise ProviderError(RECORD_NOT_FOUND).
    - Constraint failures raise ProviderError(UNIQUE_VIOLATION |
      FOREIGN_KEY_VIOLATION). Backend-specific exceptions never escape.
    - Every operation is a coroutine and must be safe to cancel; the
      pipeline cancels it when the per-request timeout fires.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

Entity = Dict[str, Any]
# (("createdAt", "desc"), ("name", "asc"))
OrderBy = Sequence[Tuple[str, str]]


class PersistenceProvider(ABC):
    """
    Abstract storage for one resource.

    Attributes:
        resource:  Resource name this provider serves (e.g. "foodEntry")
    """

    resource: str = "resource"

    @abstractmethod
    async def find_many(
        self,
        where: Mapping[str, Any],
        order_by: OrderBy,
        skip: int,
        take: int,
        include: Optional[Any] = None,
    ) -> List[Entity]:
        """Return one page of entities matching `where`, in `order_by` order."""

    @abstractmethod
    async def count(self, where: Mapping[str, Any]) -> int:
        """Total entities matching `where` (ignores pagination)."""

    @abstractmethod
    async def find_unique(self, id: str, include: Optional[Any] = None) -> Optional[Entity]:
        """Entity with primary key `id`, or None."""

    @abstractmethod
    async def create(self, data: Mapping[str, Any]) -> Entity:
        """Insert and return the stored entity (id and timestamps populated)."""

    @abstractmethod
    async def update(self, id: str, data: Mapping[str, Any], replace: bool = False) -> Entity:
        """
        Write `data` to entity `id` and return the stored entity.

        replace=False merges the supplied fields (PATCH).
        replace=True resets every writable field not present in `data` (PUT).
        """

    @abstractmethod
    async def delete(self, id: str) -> None:
        """Remove entity `id`."""

    async def ping(self) -> bool:
        """Lightweight reachability check used by /health."""
        return True
