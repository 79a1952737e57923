"""
services/expense_service.py — Expense business logic.

Rules enforced here:
  PAYER_NOT_MEMBER (422)       paid_by_user_id must be a group member
  SPLIT_USER_NOT_MEMBER (422)  every split user must be a group member
  SHARE_MISMATCH (422)         shares must sum to amount within one cent
                               (ledger.validate_split, on create AND edit)
  EXPENSE_DELETED (422)        a deleted expense cannot be edited
  FORBIDDEN (403)              caller must be a member; edit/delete/receipt
                               changes need the expense creator or the
                               group creator

Every expense read carries `is_fully_settled`, derived on each call from
the completed settlements tied to the expense (ledger.is_fully_settled).
It is never stored.

Layer rules:
  - No Flask imports. Session is passed in. Page sizes come in as arguments.
  - Commits are the route's job; only flush here.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Sequence

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger import (
    SettlementView,
    SplitLine,
    compute_equal_split,
    is_fully_settled,
    outstanding_shares,
    validate_split,
)
from groupledger.app.ledger.money import CENT, format_money, to_money
from groupledger.app.models.expense import Expense, SplitMode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.notification import NotificationKind
from groupledger.app.models.split import Split
from groupledger.app.models.user import User
from groupledger.app.services import category_service, group_service, notification_service
from groupledger.app.services.ledger_store import find_completed_settlements, to_expense_view

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "created_at": Expense.created_at,
    "amount": Expense.amount,
    "description": Expense.description,
}


@dataclass
class AnnotatedExpense:
    """An expense row plus its derived settlement status."""
    expense: Expense
    is_fully_settled: bool
    outstanding: dict[int, Decimal] | None = None


@dataclass
class Page:
    items: list[AnnotatedExpense] = field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0

    @property
    def pagination(self) -> dict:
        total_pages = math.ceil(self.total / self.limit) if self.total else 0
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": total_pages,
            "has_next": self.page < total_pages,
            "has_prev": self.page > 1,
        }


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Active or deleted."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _require_can_modify(expense: Expense, caller_id: int, session: Session, action: str) -> Group:
    group = group_service.get_group_for_member(expense.group_id, caller_id, session)
    if caller_id not in (expense.created_by_user_id, group.created_by_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the person who added this expense or the group creator may {action} it.",
            403,
        )
    return group


def _require_active(expense: Expense) -> None:
    if expense.is_deleted:
        raise AppError(
            ErrorCode.EXPENSE_DELETED,
            f"Expense {expense.id} has been deleted and cannot be changed.",
            422,
        )


def _validate_payer_is_member(paid_by_user_id: int, group_id: int, member_ids: Sequence[int]) -> None:
    if paid_by_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_user_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_users_are_members(
        user_ids: Sequence[int],
        group_id: int,
        member_ids: Sequence[int],
        field_name: str,
) -> None:
    members = set(member_ids)
    for uid in user_ids:
        if uid not in members:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {uid} is not a member of group {group_id}.",
                422,
                field=field_name,
            )


def _resolve_split_lines(
        amount: Decimal,
        split_mode: SplitMode,
        payer_id: int,
        group_id: int,
        member_ids: Sequence[int],
        splits: list[dict] | None,
        participant_ids: Sequence[int] | None,
) -> list[SplitLine]:
    """
    Produces the share lines for an expense and checks them.

    Equal mode divides over `participant_ids` (every member when None).
    Custom mode takes the client's shares and runs them through
    ledger.validate_split.
    """
    if split_mode == SplitMode.EQUAL:
        participants = list(participant_ids) if participant_ids else list(member_ids)
        _validate_users_are_members(participants, group_id, member_ids, "participant_ids")
        if amount < CENT * len(participants):
            raise AppError(
                ErrorCode.AMOUNT_TOO_SMALL_TO_SPLIT,
                f"{format_money(amount)} cannot be split equally between "
                f"{len(participants)} people; each share must be at least 0.01.",
                422,
                field="amount",
                details={"amount": format_money(amount), "participants": len(participants)},
            )
        return compute_equal_split(amount, participants, payer_id)

    lines = [SplitLine(user_id=s["user_id"], share=to_money(s["share"])) for s in splits or []]
    _validate_users_are_members([line.user_id for line in lines], group_id, member_ids, "splits")

    result = validate_split(amount, lines)
    if not result.ok:
        raise AppError.from_ledger_error(result, field="splits")
    return lines


def _replace_splits(expense: Expense, lines: list[SplitLine], session: Session) -> None:
    for split in list(expense.splits):
        session.delete(split)
    session.flush()
    for line in lines:
        session.add(Split(expense_id=expense.id, user_id=line.user_id, share=line.share))
    session.flush()
    session.refresh(expense)


def _settlements_by_expense(expense_ids: list[int], session: Session) -> dict[int, list[SettlementView]]:
    grouped: dict[int, list[SettlementView]] = defaultdict(list)
    for settlement in find_completed_settlements(session, expense_ids=expense_ids):
        grouped[settlement.expense_id].append(settlement)
    return grouped


def annotate(
        expenses: Sequence[Expense],
        session: Session,
        with_outstanding: bool = False,
) -> list[AnnotatedExpense]:
    """Attaches is_fully_settled (and optionally the outstanding shares) to each expense."""
    settlements = _settlements_by_expense([e.id for e in expenses], session)
    annotated = []
    for expense in expenses:
        view = to_expense_view(expense)
        paid = settlements.get(expense.id, [])
        annotated.append(AnnotatedExpense(
            expense=expense,
            is_fully_settled=is_fully_settled(view, paid),
            outstanding=outstanding_shares(view, paid) if with_outstanding else None,
        ))
    return annotated


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _text_match(text: str):
    """Description or any tag contains `text`, case-insensitively."""
    pattern = _like_pattern(text)
    return or_(
        Expense.description.ilike(pattern, escape="\\"),
        cast(Expense.tags, String).ilike(pattern, escape="\\"),
    )


def _any_tag(tags: list[str]):
    # Tags are stored as a JSON array; '"tag"' only matches a whole element.
    return or_(*[
        cast(Expense.tags, String).ilike(_like_pattern(f'"{tag}"'), escape="\\")
        for tag in tags
    ])


def _paginate(stmt, page: int, limit: int | None, default_size: int, max_size: int, session: Session) -> Page:
    size = min(limit or default_size, max_size)
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = session.execute(
        stmt.options(selectinload(Expense.splits)).offset((page - 1) * size).limit(size)
    ).scalars().all()
    return Page(items=annotate(rows, session), page=page, limit=size, total=total)


def _start_of_day(d) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> AnnotatedExpense:
    """
    Records an expense. `data` is the output of CreateExpenseSchema.

    Raises:
      GROUP_NOT_FOUND (404), FORBIDDEN (403), CATEGORY_NOT_FOUND (404),
      PAYER_NOT_MEMBER / SPLIT_USER_NOT_MEMBER / SHARE_MISMATCH (422)
    """
    group = group_service.get_group_for_member(group_id, caller_id, session)
    member_ids = group_service.get_member_ids(group_id, session)

    paid_by_user_id: int = data.get("paid_by_user_id") or caller_id
    amount: Decimal = to_money(data["amount"])
    split_mode: SplitMode = data.get("split_mode", SplitMode.CUSTOM)

    _validate_payer_is_member(paid_by_user_id, group_id, member_ids)

    category_id = data.get("category_id")
    if category_id is not None:
        category_service.get_owned_category(category_id, caller_id, session)

    lines = _resolve_split_lines(
        amount,
        split_mode,
        paid_by_user_id,
        group_id,
        member_ids,
        data.get("splits"),
        data.get("participant_ids"),
    )

    expense = Expense(
        group_id=group_id,
        paid_by_user_id=paid_by_user_id,
        created_by_user_id=caller_id,
        category_id=category_id,
        description=data["description"].strip(),
        amount=amount,
        split_mode=split_mode,
        tags=[t.strip() for t in data.get("tags") or []],
    )
    session.add(expense)
    session.flush()

    for line in lines:
        session.add(Split(expense_id=expense.id, user_id=line.user_id, share=line.share))
    session.flush()
    session.refresh(expense)

    caller = session.get(User, caller_id)
    notification_service.notify_many(
        member_ids,
        f'{caller.name} added a new expense "{expense.description}" in {group.name}',
        session,
        kind=NotificationKind.EXPENSE,
        exclude=caller_id,
    )

    logger.info(
        "expense %s created in group %s: amount=%s payer=%s splits=%d",
        expense.id, group_id, amount, paid_by_user_id, len(lines),
    )
    return annotate([expense], session)[0]


def list_expenses(group_id: int, caller_id: int, session: Session) -> list[AnnotatedExpense]:
    """Active expenses of the group, newest first."""
    group_service.get_group_for_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .options(selectinload(Expense.splits))
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return annotate(session.execute(stmt).scalars().all(), session)


def filter_expenses(
        group_id: int,
        caller_id: int,
        filters: dict,
        session: Session,
        default_page_size: int = 20,
        max_page_size: int = 100,
) -> Page:
    """
    Active expenses of a group matching every filter in `filters`
    (output of ExpenseFilterSchema), sorted and paginated.
    """
    group_service.get_group_for_member(group_id, caller_id, session)

    stmt = select(Expense).where(
        Expense.group_id == group_id,
        Expense.deleted_at.is_(None),
    )

    if filters.get("category_id") is not None:
        stmt = stmt.where(Expense.category_id == filters["category_id"])
    if filters.get("min_amount") is not None:
        stmt = stmt.where(Expense.amount >= filters["min_amount"])
    if filters.get("max_amount") is not None:
        stmt = stmt.where(Expense.amount <= filters["max_amount"])
    if filters.get("start_date") is not None:
        stmt = stmt.where(Expense.created_at >= _start_of_day(filters["start_date"]))
    if filters.get("end_date") is not None:
        # end_date is inclusive: everything before the next midnight.
        stmt = stmt.where(Expense.created_at < _start_of_day(filters["end_date"] + timedelta(days=1)))
    if filters.get("search"):
        stmt = stmt.where(_text_match(filters["search"]))
    if filters.get("paid_by") is not None:
        stmt = stmt.where(Expense.paid_by_user_id == filters["paid_by"])
    if filters.get("tags"):
        stmt = stmt.where(_any_tag(filters["tags"]))

    column = _SORT_COLUMNS[filters.get("sort_by", "created_at")]
    if filters.get("sort_order", "desc") == "asc":
        stmt = stmt.order_by(column.asc(), Expense.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Expense.id.desc())

    return _paginate(
        stmt,
        filters.get("page", 1),
        filters.get("limit"),
        default_page_size,
        max_page_size,
        session,
    )


def search_expenses(
        caller_id: int,
        query: str,
        session: Session,
        page: int = 1,
        limit: int | None = None,
        default_page_size: int = 20,
        max_page_size: int = 100,
) -> Page:
    """Active expenses in any of the caller's groups whose description or tags match."""
    my_groups = select(Membership.group_id).where(Membership.user_id == caller_id)
    stmt = (
        select(Expense)
        .where(
            Expense.group_id.in_(my_groups),
            Expense.deleted_at.is_(None),
            _text_match(query),
        )
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return _paginate(stmt, page, limit, default_page_size, max_page_size, session)


def get_expense(expense_id: int, caller_id: int, session: Session) -> AnnotatedExpense:
    """
    One expense with its splits, settlement status and per-user outstanding
    amounts. Deleted expenses are still readable; `deleted_at` says so.
    """
    expense = _get_expense_or_404(expense_id, session)
    group_service.get_group_for_member(expense.group_id, caller_id, session)
    return annotate([expense], session, with_outstanding=True)[0]


def edit_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> AnnotatedExpense:
    """
    Partial update. `data` is the output of PatchExpenseSchema.

    Shares are recomputed when the expense is (or becomes) equal-split and
    its amount, payer or participants change; custom shares are replaced
    together with the amount. Either way the result passes the same
    validate_split check as creation.

    Raises:
      EXPENSE_NOT_FOUND (404), FORBIDDEN (403), EXPENSE_DELETED (422),
      PAYER_NOT_MEMBER / SPLIT_USER_NOT_MEMBER / SHARE_MISMATCH (422),
      CATEGORY_NOT_FOUND (404)
    """
    expense = _get_expense_or_404(expense_id, session)
    _require_can_modify(expense, caller_id, session, "edit")
    _require_active(expense)

    member_ids = group_service.get_member_ids(expense.group_id, session)

    if "description" in data:
        expense.description = data["description"].strip()

    if "tags" in data:
        expense.tags = [t.strip() for t in data["tags"]]

    if "category_id" in data:
        if data["category_id"] is not None:
            category_service.get_owned_category(data["category_id"], caller_id, session)
        expense.category_id = data["category_id"]

    payer_changed = False
    if "paid_by_user_id" in data and data["paid_by_user_id"] != expense.paid_by_user_id:
        _validate_payer_is_member(data["paid_by_user_id"], expense.group_id, member_ids)
        expense.paid_by_user_id = data["paid_by_user_id"]
        payer_changed = True

    new_mode = data.get("split_mode")
    new_amount = to_money(data["amount"]) if data.get("amount") is not None else None
    if new_mode is not None:
        effective_mode = new_mode
    elif data.get("splits") is not None:
        effective_mode = SplitMode.CUSTOM
    else:
        effective_mode = SplitMode(expense.split_mode)

    if data.get("participant_ids") and effective_mode != SplitMode.EQUAL:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "participant_ids only applies to an equal split. "
            "Send split_mode='equal' to switch this expense, or edit its splits.",
            400,
            field="participant_ids",
        )

    if effective_mode == SplitMode.EQUAL and (
            new_mode == SplitMode.EQUAL
            or new_amount is not None
            or payer_changed
            or data.get("participant_ids")
    ):
        participants = data.get("participant_ids")
        if not participants and SplitMode(expense.split_mode) == SplitMode.EQUAL:
            participants = [s.user_id for s in expense.splits]
        amount = new_amount if new_amount is not None else to_money(expense.amount)

        lines = _resolve_split_lines(
            amount, SplitMode.EQUAL, expense.paid_by_user_id,
            expense.group_id, member_ids, None, participants,
        )
        expense.amount = amount
        expense.split_mode = SplitMode.EQUAL
        _replace_splits(expense, lines, session)

    elif data.get("splits") is not None:
        lines = _resolve_split_lines(
            new_amount, SplitMode.CUSTOM, expense.paid_by_user_id,
            expense.group_id, member_ids, data["splits"], None,
        )
        expense.amount = new_amount
        expense.split_mode = SplitMode.CUSTOM
        _replace_splits(expense, lines, session)

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info("expense %s edited by user %s: fields=%s", expense.id, caller_id, sorted(data))
    return annotate([expense], session, with_outstanding=True)[0]


def delete_expense(expense_id: int, caller_id: int, session: Session) -> Expense:
    """
    Soft delete: sets deleted_at, keeps the row and its splits. Deleting an
    already deleted expense is a no-op.
    """
    expense = _get_expense_or_404(expense_id, session)
    _require_can_modify(expense, caller_id, session, "delete")

    if not expense.is_deleted:
        expense.deleted_at = datetime.now(timezone.utc)
        session.flush()
        logger.info("expense %s deleted by user %s", expense.id, caller_id)

    return expense


def attach_receipt(expense_id: int, caller_id: int, data: dict, session: Session) -> AnnotatedExpense:
    """Records (or replaces) the receipt reference. Amount and splits are untouched."""
    expense = _get_expense_or_404(expense_id, session)
    _require_can_modify(expense, caller_id, session, "attach a receipt to")
    _require_active(expense)

    expense.receipt_url = data["url"]
    expense.receipt_public_id = data.get("public_id")
    expense.receipt_filename = data.get("filename") or data["url"].rsplit("/", 1)[-1]
    expense.updated_at = datetime.now(timezone.utc)
    session.flush()
    return annotate([expense], session)[0]


def remove_receipt(expense_id: int, caller_id: int, session: Session) -> AnnotatedExpense:
    expense = _get_expense_or_404(expense_id, session)
    _require_can_modify(expense, caller_id, session, "remove the receipt of")
    _require_active(expense)

    if not expense.has_receipt:
        raise AppError(
            ErrorCode.RECEIPT_NOT_FOUND,
            f"Expense {expense_id} has no receipt.",
            404,
        )

    expense.receipt_url = None
    expense.receipt_public_id = None
    expense.receipt_filename = None
    expense.updated_at = datetime.now(timezone.utc)
    session.flush()
    return annotate([expense], session)[0]
