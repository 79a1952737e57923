"""
services/balance_service.py — Balance views over the ledger engine.

The arithmetic lives in ledger/balances.py and nowhere else. This module
loads snapshots through ledger_store, hands them to the engine and shapes
the result for the API:

  get_group_summary    GET /groups/:id/balances
  get_pairwise_balance GET /groups/:id/balances/:other_uid
  get_my_balances      GET /balances/mine

Conservation is asserted on every group summary: balances of a group must
sum to zero within CONSERVATION_TOLERANCE. A violation means stored data is
inconsistent and surfaces as a 500 (BALANCE_NOT_CONSERVED).

Layer rules:
  - No Flask imports. Session is passed in. Read-only.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger import (
    MemberBalance,
    balance_sum,
    compute_group_balances,
    compute_pairwise_balance,
    is_conserved,
    simplify_debts,
)
from groupledger.app.ledger.money import ZERO, format_money, money_sum
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.user import User
from groupledger.app.services import group_service
from groupledger.app.services.ledger_store import (
    find_completed_settlements,
    find_expenses_by_group,
)

logger = logging.getLogger(__name__)


def _names(user_ids: Iterable[int], session: Session) -> dict[int, str]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    rows = session.execute(select(User.id, User.name).where(User.id.in_(ids))).all()
    return {uid: name for uid, name in rows}


def compute_balances(
        group_id: int,
        session: Session,
        member_ids: Iterable[int] | None = None,
) -> dict[int, MemberBalance]:
    """
    Per-user balances of one group from its active expenses and completed
    settlements. Former members who still appear in a record are included.
    """
    if member_ids is None:
        member_ids = group_service.get_member_ids(group_id, session)
    return compute_group_balances(
        find_expenses_by_group(group_id, session),
        find_completed_settlements(session, group_id=group_id),
        member_ids,
    )


def _assert_conserved(group_id: int, balances: dict[int, MemberBalance]) -> None:
    if not is_conserved(balances):
        total = balance_sum(balances)
        logger.error("group %s balances do not conserve: sum=%s", group_id, total)
        raise AppError(
            ErrorCode.BALANCE_NOT_CONSERVED,
            f"Balance integrity check failed: sum was {format_money(total)} (expected 0.00). "
            f"Group {group_id} has inconsistent financial data.",
            500,
        )


# ── Public service functions ───────────────────────────────────────────────

def get_group_summary(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
        AppError(BALANCE_NOT_CONSERVED, 500)
    """
    group_service.get_group_for_member(group_id, caller_id, session)

    member_ids = group_service.get_member_ids(group_id, session)
    expenses = find_expenses_by_group(group_id, session)
    balances = compute_group_balances(
        expenses,
        find_completed_settlements(session, group_id=group_id),
        member_ids,
    )
    _assert_conserved(group_id, balances)

    names = _names(balances.keys(), session)
    current = set(member_ids)

    transfers = simplify_debts({uid: entry.balance for uid, entry in balances.items()})

    return {
        "group_id": group_id,
        "balances": [
            {
                "user_id": uid,
                "name": names.get(uid, f"user_{uid}"),
                "balance": format_money(entry.balance),
                "total_paid": format_money(entry.total_paid),
                "total_owed": format_money(entry.total_owed),
                "is_member": uid in current,
            }
            for uid, entry in sorted(balances.items())
        ],
        "simplified_debts": [
            {
                "from_user_id": t.from_user_id,
                "from_name": names.get(t.from_user_id, f"user_{t.from_user_id}"),
                "to_user_id": t.to_user_id,
                "to_name": names.get(t.to_user_id, f"user_{t.to_user_id}"),
                "amount": format_money(t.amount),
            }
            for t in transfers
        ],
        "total_expenses": format_money(money_sum(e.amount for e in expenses)),
        "balance_sum": format_money(balance_sum(balances)),
    }


def get_pairwise_balance(
        group_id: int,
        caller_id: int,
        other_user_id: int,
        session: Session,
) -> dict:
    """
    The caller's position against one other member, counting only what
    the two of them owe each other.

    `balance` is negative when the caller owes the other user.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403)
        AppError(INVALID_FIELD, 400)   other_user_id is the caller
        AppError(NOT_A_MEMBER, 422)    other user is not in the group
    """
    group_service.get_group_for_member(group_id, caller_id, session)

    if other_user_id == caller_id:
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Pick another member; a balance with yourself is always zero.",
            400,
            field="user_id",
        )
    if not group_service.is_member(group_id, other_user_id, session):
        raise AppError(
            ErrorCode.NOT_A_MEMBER,
            f"User {other_user_id} is not a member of group {group_id}.",
            422,
            field="user_id",
        )

    balance = compute_pairwise_balance(
        group_id,
        caller_id,
        other_user_id,
        find_expenses_by_group(group_id, session),
        find_completed_settlements(session, group_id=group_id),
    )
    other = session.get(User, other_user_id)

    return {
        "group_id": group_id,
        "user_id": caller_id,
        "other_user_id": other_user_id,
        "other_name": other.name,
        "balance": format_money(balance),
        "you_owe": format_money(-balance if balance < ZERO else ZERO),
        "owes_you": format_money(balance if balance > ZERO else ZERO),
    }


def get_my_balances(caller_id: int, session: Session) -> dict:
    """The caller's net position in each of their groups, plus the total."""
    groups = session.execute(
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == caller_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    ).scalars().all()

    rows = []
    overall = MemberBalance()
    for group in groups:
        entry = compute_balances(group.id, session).get(caller_id, MemberBalance())
        overall.balance += entry.balance
        overall.total_paid += entry.total_paid
        overall.total_owed += entry.total_owed
        rows.append({
            "group_id": group.id,
            "group_name": group.name,
            "balance": format_money(entry.balance),
            "total_paid": format_money(entry.total_paid),
            "total_owed": format_money(entry.total_owed),
        })

    return {
        "groups": rows,
        "overall": {
            "balance": format_money(overall.balance),
            "total_paid": format_money(overall.total_paid),
            "total_owed": format_money(overall.total_owed),
        },
    }
