"""
models/settlement.py — Settlement table definition.

Settlements are append-only. There is no update or delete path in the API;
a row exists only because ledger.check_settlement admitted it.

  - `expense_id` is set when the payment is for one expense, NULL for a
    general group settle-up.
  - CHECK(from_user_id <> to_user_id) backs the SELF_SETTLEMENT rule.
  - `status` is always 'completed' today (see ledger.views.SettlementStatus).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db
from groupledger.app.ledger.views import SettlementStatus
from groupledger.app.models.expense import _enum_values


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint(
            "from_user_id <> to_user_id",
            name="ck_settlements_no_self_settlement",
        ),
        Index("idx_settlements_expense_pair", "expense_id", "from_user_id", "to_user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=True,
    )

    from_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    to_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    note: Mapped[str] = mapped_column(String(255), nullable=False, default="", server_default="")

    status: Mapped[SettlementStatus] = mapped_column(
        Enum(SettlementStatus, name="settlement_status_enum", values_callable=_enum_values),
        nullable=False,
        default=SettlementStatus.COMPLETED,
        server_default=SettlementStatus.COMPLETED.value,
    )

    settled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="settlements",
    )

    expense: Mapped["Expense | None"] = relationship("Expense")  # noqa: F821

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[from_user_id],
    )

    recipient: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[to_user_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"group_id={self.group_id} "
            f"from={self.from_user_id} "
            f"to={self.to_user_id} "
            f"amount={self.amount}>"
        )
