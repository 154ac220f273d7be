"""
apiforge — SQLAlchemy Persistence Provider
===========================================

What:  PersistenceProvider over an async SQLAlchemy ORM model.
How:   Each operation opens its own session from the factory and commits on
       success. Wire field names (camelCase) are mapped to model attributes
       (snake_case) in both directions; date/datetime values are parsed from
       ISO strings or epoch milliseconds on the way in and serialized back to
       ISO strings on the way out.
Who:   Built by the container when PERSISTENCE_BACKEND=sqlalchemy.

Error Translation (at this boundary, never later):
    IntegrityError mentioning UNIQUE       → ProviderError(UNIQUE_VIOLATION)
    IntegrityError mentioning FOREIGN KEY  → ProviderError(FOREIGN_KEY_VIOLATION)
    UPDATE/DELETE touching zero rows       → ProviderError(RECORD_NOT_FOUND)
    filter/sort on an unknown field        → ProviderError(INVALID_QUERY)
    any other SQLAlchemyError              → ProviderError(UNKNOWN)
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Type

from sqlalchemy import asc, delete, desc, func, inspect, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from apiforge.database import Base
from apiforge.exceptions import ProviderError, ProviderErrorCode
from apiforge.providers.base import Entity, OrderBy, PersistenceProvider
from apiforge.validation.rules import from_epoch_ms

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_SYSTEM_COLUMNS = {"id", "created_at", "updated_at"}


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _unique_field(message: str) -> Optional[str]:
    # SQLite: "UNIQUE constraint failed: users.email"
    # PostgreSQL: 'duplicate key value violates unique constraint "users_email_key"'
    match = re.search(r"UNIQUE constraint failed: \w+\.(\w+)", message)
    if match:
        return to_camel(match.group(1))
    match = re.search(r"Key \((\w+)\)=", message)
    if match:
        return to_camel(match.group(1))
    return None


class SqlAlchemyProvider(PersistenceProvider):
    """
    Args:
        resource:         Resource name served (e.g. "foodEntry")
        model:            Mapped ORM class
        session_factory:  async_sessionmaker bound to the engine
    """

    def __init__(self, resource: str, model: Type[Base], session_factory: async_sessionmaker):
        self.resource = resource
        self.model = model
        self._session_factory = session_factory
        self._columns = {c.key: c for c in inspect(model).columns}

    # ── Mapping helpers ───────────────────────────────────────────────────

    def _column(self, field: str, purpose: str):
        column = self._columns.get(to_snake(field))
        if column is None:
            raise ProviderError(
                ProviderErrorCode.INVALID_QUERY,
                f"{field} is not a valid {purpose} field",
                field=f"{purpose}.{field}",
            )
        return column

    def _invalid_date(self, column) -> ProviderError:
        return ProviderError(
            ProviderErrorCode.INVALID_QUERY,
            f"{to_camel(column.key)} is not a valid date",
            field=to_camel(column.key),
        )

    def _coerce(self, column, value: Any) -> Any:
        if value is None or isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return value
        try:
            python_type = column.type.python_type
        except NotImplementedError:
            return value
        if not isinstance(value, str):
            # Numbers in date columns are epoch milliseconds
            if python_type not in (date, datetime):
                return value
            moment = from_epoch_ms(value)
            if moment is None:
                raise self._invalid_date(column)
            return moment if python_type is datetime else moment.date()
        if python_type is bool and value in ("true", "false"):
            return value == "true"
        try:
            if python_type is datetime:
                return datetime.fromisoformat(value.replace("Z", "+00:00"))
            if python_type is date:
                return date.fromisoformat(value[:10])
        except ValueError:
            raise self._invalid_date(column)
        return value

    def _to_columns(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        values = {}
        for field, value in data.items():
            key = to_snake(field)
            if key in _SYSTEM_COLUMNS:
                continue
            column = self._columns.get(key)
            if column is None:
                logger.debug("Ignoring unknown %s field %s", self.resource, field)
                continue
            values[key] = self._coerce(column, value)
        return values

    def _to_entity(self, row: Any) -> Entity:
        entity: Entity = {}
        for key in self._columns:
            value = getattr(row, key)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            entity[to_camel(key)] = value
        return entity

    def _where(self, stmt, where: Mapping[str, Any]):
        for field, value in where.items():
            column = self._column(field, "filter")
            stmt = stmt.where(getattr(self.model, column.key) == self._coerce(column, value))
        return stmt

    def _translate(self, exc: SQLAlchemyError) -> ProviderError:
        message = str(getattr(exc, "orig", exc))
        lowered = message.lower()
        if isinstance(exc, IntegrityError):
            if "unique" in lowered or "duplicate key" in lowered:
                return ProviderError(
                    ProviderErrorCode.UNIQUE_VIOLATION, message, field=_unique_field(message), cause=exc
                )
            if "foreign key" in lowered:
                return ProviderError(ProviderErrorCode.FOREIGN_KEY_VIOLATION, message, cause=exc)
        logger.error("%s provider error: %s", self.resource, message)
        return ProviderError(ProviderErrorCode.UNKNOWN, message, cause=exc)

    def _not_found(self, id: str) -> ProviderError:
        return ProviderError(ProviderErrorCode.RECORD_NOT_FOUND, f"No {self.resource} with id {id}")

    # ── PersistenceProvider ───────────────────────────────────────────────

    async def find_many(
        self,
        where: Mapping[str, Any],
        order_by: OrderBy,
        skip: int,
        take: int,
        include: Optional[Any] = None,
    ) -> List[Entity]:
        stmt = self._where(select(self.model), where)
        for field, direction in order_by:
            column = getattr(self.model, self._column(field, "sort").key)
            stmt = stmt.order_by(desc(column) if direction == "desc" else asc(column))
        stmt = stmt.offset(skip).limit(take)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [self._to_entity(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise self._translate(e) from e

    async def count(self, where: Mapping[str, Any]) -> int:
        stmt = self._where(select(func.count()).select_from(self.model), where)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return int(result.scalar() or 0)
        except SQLAlchemyError as e:
            raise self._translate(e) from e

    async def find_unique(self, id: str, include: Optional[Any] = None) -> Optional[Entity]:
        try:
            async with self._session_factory() as session:
                row = await session.get(self.model, str(id))
                return self._to_entity(row) if row is not None else None
        except SQLAlchemyError as e:
            raise self._translate(e) from e

    async def create(self, data: Mapping[str, Any]) -> Entity:
        values = self._to_columns(data)
        if data.get("id"):
            values["id"] = str(data["id"])
        row = self.model(**values)
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                return self._to_entity(row)
        except SQLAlchemyError as e:
            raise self._translate(e) from e

    async def update(self, id: str, data: Mapping[str, Any], replace: bool = False) -> Entity:
        values = self._to_columns(data)
        try:
            async with self._session_factory() as session:
                row = await session.get(self.model, str(id))
                if row is None:
                    raise self._not_found(id)
                if replace:
                    for key, column in self._columns.items():
                        if key not in _SYSTEM_COLUMNS and key not in values and column.nullable:
                            setattr(row, key, None)
                for key, value in values.items():
                    setattr(row, key, value)
                await session.commit()
                await session.refresh(row)
                return self._to_entity(row)
        except SQLAlchemyError as e:
            raise self._translate(e) from e

    async def delete(self, id: str) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(delete(self.model).where(self.model.id == str(id)))
                await session.commit()
        except SQLAlchemyError as e:
            raise self._translate(e) from e
        if result.rowcount == 0:
            raise self._not_found(id)

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning("%s provider unreachable: %s", self.resource, e)
            return False
