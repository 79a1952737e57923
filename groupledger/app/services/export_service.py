"""
services/export_service.py — CSV exports of expenses, settlements and balances.

Each export function returns (filename, csv_text); the route wraps the text
in a text/csv response with a Content-Disposition header. Only active
expenses and completed settlements are exported.

Formats:
  detailed  one row per expense
  summary   one row per category (group export) or per group (my export)

Layer rules:
  - No Flask imports. Session is passed in. Read-only.
"""

from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from groupledger.app.ledger import MemberBalance, SettlementStatus
from groupledger.app.ledger.money import ZERO, format_money, round_money
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.split import Split
from groupledger.app.schemas.export_schema import EXPORT_FORMATS
from groupledger.app.services import balance_service, expense_service, group_service

GROUP_DETAILED_COLUMNS = [
    "Date", "Description", "Amount", "Paid By", "Category",
    "Split Between", "Created By", "Receipt", "Tags",
]
GROUP_SUMMARY_COLUMNS = ["Category", "Total Amount", "Number of Expenses", "Average Amount"]
SETTLEMENT_COLUMNS = ["Date", "From", "To", "Amount", "Note"]
MY_DETAILED_COLUMNS = [
    "Date", "Description", "Amount", "Paid By", "Group",
    "Category", "Your Share", "Status",
]
MY_SUMMARY_COLUMNS = ["Group", "Total Paid", "Total Owed", "Net Balance"]

UNCATEGORIZED = "Uncategorized"


def _write_csv(columns: Sequence[str], rows: Iterable[dict]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def _filename(*parts: object) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return "_".join(str(p) for p in (*parts, stamp)) + ".csv"


def _date(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def _category_name(expense: Expense) -> str:
    return expense.category.name if expense.category is not None else UNCATEGORIZED


def _active_group_expenses(group_id: int, session: Session) -> list[Expense]:
    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits).selectinload(Split.user))
        .where(Expense.group_id == group_id, Expense.deleted_at.is_(None))
        .order_by(Expense.created_at.asc(), Expense.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


# ── Group exports ──────────────────────────────────────────────────────────

def _group_detailed_rows(expenses: list[Expense]) -> list[dict]:
    return [
        {
            "Date": _date(e.created_at),
            "Description": e.description,
            "Amount": format_money(e.amount),
            "Paid By": e.payer.name,
            "Category": _category_name(e),
            "Split Between": "; ".join(f"{s.user.name}: {format_money(s.share)}" for s in e.splits),
            "Created By": e.creator.name,
            "Receipt": e.receipt_url or "",
            "Tags": ", ".join(e.tags or []),
        }
        for e in expenses
    ]


def _group_summary_rows(expenses: list[Expense]) -> list[dict]:
    totals: dict[str, list[Decimal]] = defaultdict(list)
    for e in expenses:
        totals[_category_name(e)].append(Decimal(e.amount))

    rows = []
    for name in sorted(totals):
        amounts = totals[name]
        total = sum(amounts, ZERO)
        rows.append({
            "Category": name,
            "Total Amount": format_money(total),
            "Number of Expenses": len(amounts),
            "Average Amount": format_money(round_money(total / len(amounts))),
        })
    return rows


def export_group_expenses(
        group_id: int,
        caller_id: int,
        fmt: str,
        session: Session,
) -> tuple[str, str]:
    group_service.get_group_for_member(group_id, caller_id, session)
    expenses = _active_group_expenses(group_id, session)

    if fmt == "summary":
        content = _write_csv(GROUP_SUMMARY_COLUMNS, _group_summary_rows(expenses))
    else:
        content = _write_csv(GROUP_DETAILED_COLUMNS, _group_detailed_rows(expenses))

    return _filename("group", group_id, "expenses", fmt), content


def export_group_settlements(group_id: int, caller_id: int, session: Session) -> tuple[str, str]:
    group_service.get_group_for_member(group_id, caller_id, session)

    settlements = session.execute(
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.status == SettlementStatus.COMPLETED,
        )
        .order_by(Settlement.settled_at.asc(), Settlement.id.asc())
    ).scalars().all()

    rows = [
        {
            "Date": _date(s.settled_at),
            "From": s.payer.name,
            "To": s.recipient.name,
            "Amount": format_money(s.amount),
            "Note": s.note or "",
        }
        for s in settlements
    ]
    return _filename("group", group_id, "settlements"), _write_csv(SETTLEMENT_COLUMNS, rows)


# ── Personal exports ───────────────────────────────────────────────────────

def _my_status(annotated: expense_service.AnnotatedExpense, user_id: int) -> str:
    expense = annotated.expense
    if expense.paid_by_user_id == user_id:
        return "Paid"
    remaining = (annotated.outstanding or {}).get(user_id, ZERO)
    return "Outstanding" if remaining > ZERO else "Settled"


def _my_detailed_rows(user_id: int, session: Session) -> list[dict]:
    involved = select(Split.expense_id).where(Split.user_id == user_id)
    expenses = session.execute(
        select(Expense)
        .options(selectinload(Expense.splits))
        .join(Membership, (Membership.group_id == Expense.group_id) & (Membership.user_id == user_id))
        .where(
            Expense.deleted_at.is_(None),
            or_(Expense.paid_by_user_id == user_id, Expense.id.in_(involved)),
        )
        .order_by(Expense.created_at.asc(), Expense.id.asc())
    ).scalars().all()

    rows = []
    for annotated in expense_service.annotate(expenses, session, with_outstanding=True):
        e = annotated.expense
        share = next((s.share for s in e.splits if s.user_id == user_id), ZERO)
        rows.append({
            "Date": _date(e.created_at),
            "Description": e.description,
            "Amount": format_money(e.amount),
            "Paid By": e.payer.name,
            "Group": e.group.name,
            "Category": _category_name(e),
            "Your Share": format_money(share),
            "Status": _my_status(annotated, user_id),
        })
    return rows


def _my_summary_rows(user_id: int, session: Session) -> list[dict]:
    groups = session.execute(
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Group.name.asc(), Group.id.asc())
    ).scalars().all()

    rows = []
    for group in groups:
        entry = balance_service.compute_balances(group.id, session).get(user_id, MemberBalance())
        rows.append({
            "Group": group.name,
            "Total Paid": format_money(entry.total_paid),
            "Total Owed": format_money(entry.total_owed),
            "Net Balance": format_money(entry.balance),
        })
    return rows


def export_my_expenses(user_id: int, fmt: str, session: Session) -> tuple[str, str]:
    """Expenses the user paid for or shares in, across all their groups."""
    if fmt == "summary":
        content = _write_csv(MY_SUMMARY_COLUMNS, _my_summary_rows(user_id, session))
    else:
        content = _write_csv(MY_DETAILED_COLUMNS, _my_detailed_rows(user_id, session))
    return _filename("my", "expenses", fmt), content


def export_options() -> dict:
    return {
        "formats": list(EXPORT_FORMATS),
        "exports": [
            {
                "path": "/api/v1/export/groups/<group_id>/expenses",
                "formats": list(EXPORT_FORMATS),
                "columns": {"detailed": GROUP_DETAILED_COLUMNS, "summary": GROUP_SUMMARY_COLUMNS},
            },
            {
                "path": "/api/v1/export/groups/<group_id>/settlements",
                "formats": ["detailed"],
                "columns": {"detailed": SETTLEMENT_COLUMNS},
            },
            {
                "path": "/api/v1/export/expenses/mine",
                "formats": list(EXPORT_FORMATS),
                "columns": {"detailed": MY_DETAILED_COLUMNS, "summary": MY_SUMMARY_COLUMNS},
            },
        ],
    }
