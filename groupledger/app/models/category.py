"""
models/category.py — Per-user expense categories.

Categories belong to the user who created them, not to a group. A name is
unique per creator regardless of case; category_service enforces that
with a lower() comparison since SQLite and PostgreSQL disagree on
case-insensitive unique indexes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Category(db.Model):
    __tablename__ = "categories"

    __table_args__ = (
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_categories_name_nonempty"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    creator: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="categories",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Category id={self.id} name={self.name!r}>"
