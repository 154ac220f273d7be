"""
apiforge — User Model
======================

What:  ORM model for the `users` table (players, coaches, admins).
Who:   Served through the generated /api/{version}/user endpoints.

Constraints:
    email is UNIQUE → duplicate inserts surface as UNIQUE_VIOLATION and
    reach the client as 409 CONFLICT.
"""

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from apiforge.database import Base
from apiforge.models import RecordMixin


class User(RecordMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # PLAYER | COACH | ADMIN
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="PLAYER")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
