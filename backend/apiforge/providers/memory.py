"""
apiforge — In-Memory Persistence Provider
==========================================

What:  Dict-backed PersistenceProvider for tests, local development and the
       CLI (which builds the registry without a database).
How:   Records live in an insertion-ordered dict keyed by id. Filtering is
       field equality; ordering supports several keys with asc/desc.

Concurrency:
    No operation awaits between reading and writing the store, so each
    operation is atomic on the event loop. The optional `delay` awaits
    BEFORE touching the store; tests use it to exercise request timeouts.
"""

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from apiforge.exceptions import ProviderError, ProviderErrorCode
from apiforge.providers.base import Entity, OrderBy, PersistenceProvider

logger = logging.getLogger(__name__)

SYSTEM_FIELDS = ("id", "createdAt", "updatedAt")


def _sort_key(value: Any):
    # None sorts last in ascending order; mixed types group by type name
    if value is None:
        return (True, "", 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (False, "number", value)
    if isinstance(value, (str, bool)):
        return (False, type(value).__name__, value)
    return (False, type(value).__name__, str(value))


class InMemoryProvider(PersistenceProvider):
    """
    Args:
        resource:       Resource name (used in log lines only)
        unique_fields:  Fields whose values must be unique across records
        id_factory:     Produces ids for records created without one
        delay:          Seconds to sleep before each operation
    """

    def __init__(
        self,
        resource: str,
        unique_fields: Iterable[str] = (),
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        delay: float = 0.0,
    ):
        self.resource = resource
        self.unique_fields = tuple(unique_fields)
        self._id_factory = id_factory
        self._delay = delay
        self._records: Dict[str, Entity] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def _pause(self) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)

    @staticmethod
    def _matches(record: Entity, where: Mapping[str, Any]) -> bool:
        return all(record.get(field) == value for field, value in where.items())

    def _check_unique(self, data: Mapping[str, Any], exclude_id: Optional[str] = None) -> None:
        for field in self.unique_fields:
            if field not in data or data[field] is None:
                continue
            for record_id, record in self._records.items():
                if record_id != exclude_id and record.get(field) == data[field]:
                    raise ProviderError(
                        ProviderErrorCode.UNIQUE_VIOLATION,
                        f"Unique constraint failed on {field}",
                        field=field,
                    )

    async def find_many(
        self,
        where: Mapping[str, Any],
        order_by: OrderBy,
        skip: int,
        take: int,
        include: Optional[Any] = None,
    ) -> List[Entity]:
        await self._pause()
        rows = [r for r in self._records.values() if self._matches(r, where)]
        # Stable sort, least significant key first
        for field, direction in reversed(list(order_by)):
            rows.sort(key=lambda r: _sort_key(r.get(field)), reverse=direction == "desc")
        return [copy.deepcopy(r) for r in rows[skip:skip + take]]

    async def count(self, where: Mapping[str, Any]) -> int:
        await self._pause()
        return sum(1 for r in self._records.values() if self._matches(r, where))

    async def find_unique(self, id: str, include: Optional[Any] = None) -> Optional[Entity]:
        await self._pause()
        record = self._records.get(str(id))
        return copy.deepcopy(record) if record is not None else None

    async def create(self, data: Mapping[str, Any]) -> Entity:
        await self._pause()
        record_id = str(data.get("id") or self._id_factory())
        if record_id in self._records:
            raise ProviderError(
                ProviderErrorCode.UNIQUE_VIOLATION, "Unique constraint failed on id", field="id"
            )
        self._check_unique(data)
        now = datetime.now(timezone.utc).isoformat()
        record = {k: copy.deepcopy(v) for k, v in data.items() if k not in SYSTEM_FIELDS}
        record.update(id=record_id, createdAt=now, updatedAt=now)
        self._records[record_id] = record
        logger.debug("%s %s created", self.resource, record_id)
        return copy.deepcopy(record)

    async def update(self, id: str, data: Mapping[str, Any], replace: bool = False) -> Entity:
        await self._pause()
        record_id = str(id)
        current = self._records.get(record_id)
        if current is None:
            raise ProviderError(ProviderErrorCode.RECORD_NOT_FOUND, f"No {self.resource} with id {record_id}")
        self._check_unique(data, exclude_id=record_id)

        if replace:
            record = {k: current[k] for k in SYSTEM_FIELDS if k in current}
        else:
            record = dict(current)
        record.update({k: copy.deepcopy(v) for k, v in data.items() if k not in SYSTEM_FIELDS})
        record["updatedAt"] = datetime.now(timezone.utc).isoformat()
        self._records[record_id] = record
        return copy.deepcopy(record)

    async def delete(self, id: str) -> None:
        await self._pause()
        record_id = str(id)
        if self._records.pop(record_id, None) is None:
            raise ProviderError(ProviderErrorCode.RECORD_NOT_FOUND, f"No {self.resource} with id {record_id}")
        logger.debug("%s %s deleted", self.resource, record_id)
