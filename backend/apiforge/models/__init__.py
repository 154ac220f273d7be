"""
apiforge — ORM Models
======================

What:  SQLAlchemy models backing the built-in resources served by
       SqlAlchemyProvider (foodEntry, user, nutritionGoal).
How:   Column names are snake_case; the provider maps them to the camelCase
       field names used on the wire (meal_type ↔ mealType).

Shared columns live in RecordMixin:
    id          String(36) UUID4 text, generated client-side so SQLite and
                PostgreSQL behave the same
    created_at  set on insert (UTC)
    updated_at  set on insert and on every update (UTC)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
