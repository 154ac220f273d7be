"""
apiforge — FoodEntry Model
===========================

What:  ORM model for the `food_entries` table: one logged meal.
Who:   Served through the generated /api/{version}/foodEntry endpoints.

Table Design:
    - user_id is an optional FK to users.id; an unknown id is rejected by
      the database and reaches the client as 400 INVALID_REFERENCE.
    - date is the calendar day the meal was eaten (Date, not DateTime);
      the 7-day logging window is enforced by validation, not here.
    - time is "HH:MM" text, kept as entered.

Index on (user_id, date):
    The list endpoint is almost always filtered by user and sorted by date.
"""

import datetime
from typing import Optional

from sqlalchemy import Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from apiforge.database import Base
from apiforge.models import RecordMixin


class FoodEntry(RecordMixin, Base):
    __tablename__ = "food_entries"

    user_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    # BREAKFAST | SNACK | LUNCH | DINNER | EVENING_SNACK | AFTER_PRACTICE
    meal_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_food_entries_user_date", "user_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<FoodEntry(id={self.id}, meal_type={self.meal_type}, date={self.date})>"
