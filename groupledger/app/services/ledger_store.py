"""
services/ledger_store.py — Reads ledger snapshots out of the database.

These are the only sanctioned ways to load expense, settlement and group
data for a ledger computation. Every expense query here filters
deleted_at IS NULL, and every settlement query filters status =
'completed', so a caller cannot accidentally feed a deleted expense or an
unfinished settlement into the engine.

Rows are converted to the frozen views in ledger/views.py before they are
returned. Nothing outside this module passes ORM objects to the engine.

Layer rules:
  - No Flask imports. Session is passed in.
  - Read-only, except for the row lock taken by find_group_by_id(lock=True).
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from groupledger.app.ledger.money import to_money
from groupledger.app.ledger.views import (
    ExpenseView,
    GroupView,
    SettlementStatus,
    SettlementView,
    SplitLine,
)
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.settlement import Settlement


# ── Row -> view converters ─────────────────────────────────────────────────

def to_expense_view(expense: Expense) -> ExpenseView:
    return ExpenseView(
        id=expense.id,
        group_id=expense.group_id,
        paid_by=expense.paid_by_user_id,
        amount=to_money(expense.amount),
        splits=tuple(
            SplitLine(user_id=s.user_id, share=to_money(s.share))
            for s in expense.splits
        ),
    )


def to_settlement_view(settlement: Settlement) -> SettlementView:
    return SettlementView(
        id=settlement.id,
        group_id=settlement.group_id,
        from_user_id=settlement.from_user_id,
        to_user_id=settlement.to_user_id,
        amount=to_money(settlement.amount),
        expense_id=settlement.expense_id,
        status=SettlementStatus(settlement.status),
    )


# ── Finders ────────────────────────────────────────────────────────────────

def find_expenses_by_group(group_id: int, session: Session) -> list[ExpenseView]:
    """Active expenses of a group, splits included, oldest first."""
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.id.asc())
    )
    return [to_expense_view(e) for e in session.execute(stmt).scalars().all()]


def find_expense_by_id(expense_id: int, session: Session) -> ExpenseView | None:
    """The expense with its splits, or None if it does not exist or was deleted."""
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.id == expense_id,
            Expense.deleted_at.is_(None),
        )
    )
    expense = session.execute(stmt).scalar_one_or_none()
    return to_expense_view(expense) if expense is not None else None


def find_completed_settlements(
        session: Session,
        group_id: int | None = None,
        expense_id: int | None = None,
        from_user_id: int | None = None,
        to_user_id: int | None = None,
        expense_ids: Iterable[int] | None = None,
) -> list[SettlementView]:
    """
    Completed settlements matching every filter that is not None.

    `expense_ids` loads settlements for many expenses in one query; the
    expense list endpoint uses it to annotate a page of expenses at once.
    """
    stmt = select(Settlement).where(Settlement.status == SettlementStatus.COMPLETED)

    if group_id is not None:
        stmt = stmt.where(Settlement.group_id == group_id)
    if expense_id is not None:
        stmt = stmt.where(Settlement.expense_id == expense_id)
    if from_user_id is not None:
        stmt = stmt.where(Settlement.from_user_id == from_user_id)
    if to_user_id is not None:
        stmt = stmt.where(Settlement.to_user_id == to_user_id)
    if expense_ids is not None:
        ids = list(expense_ids)
        if not ids:
            return []
        stmt = stmt.where(Settlement.expense_id.in_(ids))

    stmt = stmt.order_by(Settlement.id.asc())
    return [to_settlement_view(s) for s in session.execute(stmt).scalars().all()]


def find_group_by_id(group_id: int, session: Session, lock: bool = False) -> GroupView | None:
    """
    The group with its current member ids, or None.

    With lock=True the group row is selected FOR UPDATE and stays locked
    until the caller's transaction ends. settlement_service uses this so
    two settlements in the same group are checked one after the other.
    """
    stmt = select(Group).where(Group.id == group_id)
    if lock:
        stmt = stmt.with_for_update()

    group = session.execute(stmt).scalar_one_or_none()
    if group is None:
        return None

    member_ids = session.execute(
        select(Membership.user_id).where(Membership.group_id == group_id)
    ).scalars().all()

    return GroupView(
        id=group.id,
        member_ids=frozenset(member_ids),
        creator_id=group.created_by_user_id,
    )
