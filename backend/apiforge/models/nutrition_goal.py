"""
apiforge — NutritionGoal Model
===============================

What:  ORM model for the `nutrition_goals` table (per-player targets such
       as daily protein grams).
Who:   Served through the generated /api/{version}/nutritionGoal endpoints.
"""

from datetime import date
from typing import Optional

from sqlalchemy import Boolean, Date, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from apiforge.database import Base
from apiforge.models import RecordMixin


class NutritionGoal(RecordMixin, Base):
    __tablename__ = "nutrition_goals"

    user_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    goal_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<NutritionGoal(id={self.id}, goal_type={self.goal_type})>"
