"""
models/notification.py — In-app notifications.

Rows are written by services as a side effect of ledger events (a new
expense, a recorded settlement, being added to a group) and read back by
the recipient through /notifications.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, String, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db
from groupledger.app.models.expense import _enum_values


class NotificationKind(str, enum.Enum):
    EXPENSE    = "expense"
    SETTLEMENT = "settlement"
    GROUP      = "group"
    GENERAL    = "general"


class Notification(db.Model):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    message: Mapped[str] = mapped_column(String(500), nullable=False)

    kind: Mapped[NotificationKind] = mapped_column(
        Enum(NotificationKind, name="notification_kind_enum", values_callable=_enum_values),
        nullable=False,
        default=NotificationKind.GENERAL,
        server_default=NotificationKind.GENERAL.value,
    )

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="notifications",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Notification id={self.id} "
            f"user_id={self.user_id} "
            f"kind={self.kind} "
            f"read={self.is_read}>"
        )
