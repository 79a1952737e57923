"""
services/settlement_service.py — Recording and listing settlements.

Every settlement passes ledger.check_settlement before it is written:

  INVALID_AMOUNT (400)      amount must be positive
  SELF_SETTLEMENT (422)     from and to must differ
  GROUP_NOT_FOUND (404)
  FORBIDDEN (403)           the caller must be the payer or the recipient
  NOT_A_MEMBER (422)        both parties must be current members
  EXPENSE_NOT_FOUND (404)   expense_id given but missing or deleted
  WRONG_GROUP (422)         expense belongs to another group
  NOT_IN_SPLIT (422)        payer has no share of the expense
  OVERPAYMENT (422)         amount above what is still owed (+ one cent)

A rejected settlement is never written. The group row is locked before the
snapshot is read, so two settlements in the same group are checked and
inserted one after the other (see ledger_store.find_group_by_id).

Layer rules:
  - No Flask imports. Session is passed in.
  - Commits are the route's job (which also releases the group lock).
"""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError
from groupledger.app.ledger import (
    Admission,
    LedgerErrorKind,
    SettlementProposal,
    SettlementStatus,
    check_settlement,
)
from groupledger.app.ledger.money import format_money, to_money
from groupledger.app.models.group import Group
from groupledger.app.models.notification import NotificationKind
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.user import User
from groupledger.app.services import group_service, notification_service
from groupledger.app.services.ledger_store import (
    find_completed_settlements,
    find_expense_by_id,
    find_expenses_by_group,
    find_group_by_id,
)

logger = logging.getLogger(__name__)

# Which request field a rejection points at, when it points at one.
_FIELD_BY_KIND = {
    LedgerErrorKind.INVALID_AMOUNT:    "amount",
    LedgerErrorKind.OVERPAYMENT:       "amount",
    LedgerErrorKind.SELF_SETTLEMENT:   "to_user_id",
    LedgerErrorKind.EXPENSE_NOT_FOUND: "expense_id",
    LedgerErrorKind.WRONG_GROUP:       "expense_id",
    LedgerErrorKind.NOT_IN_SPLIT:      "from_user_id",
}


def _notify_parties(
        settlement: Settlement,
        session: Session,
        currency_label: str,
) -> None:
    group = session.get(Group, settlement.group_id)
    payer = session.get(User, settlement.from_user_id)
    recipient = session.get(User, settlement.to_user_id)
    amount = f"{currency_label}{format_money(settlement.amount)}"

    notification_service.notify(
        recipient.id,
        f"{payer.name} settled {amount} with you in {group.name}",
        session,
        kind=NotificationKind.SETTLEMENT,
    )
    notification_service.notify(
        payer.id,
        f"You settled {amount} with {recipient.name} in {group.name}",
        session,
        kind=NotificationKind.SETTLEMENT,
    )


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
        currency_label: str = "Rs.",
) -> tuple[Settlement, Admission]:
    """
    Records a payment from `from_user_id` (default: the caller) to
    `to_user_id`.

    Args:
        data: Validated dict from CreateSettlementSchema.

    Returns:
        (Settlement, Admission). The admission says what was owed before
        this payment, for the response body.

    Raises:
        AppError built from the ledger rejection (see module docstring).
    """
    proposal = SettlementProposal(
        group_id=group_id,
        from_user_id=data.get("from_user_id") or caller_id,
        to_user_id=data["to_user_id"],
        amount=to_money(data["amount"]),
        expense_id=data.get("expense_id"),
    )

    group = find_group_by_id(group_id, session, lock=True)

    expense = None
    expenses = []
    settlements = []
    if group is not None:
        if proposal.expense_id is not None:
            expense = find_expense_by_id(proposal.expense_id, session)
            settlements = find_completed_settlements(
                session,
                expense_id=proposal.expense_id,
                from_user_id=proposal.from_user_id,
                to_user_id=proposal.to_user_id,
            )
        else:
            expenses = find_expenses_by_group(group_id, session)
            settlements = find_completed_settlements(session, group_id=group_id)

    result = check_settlement(
        proposal,
        caller_id,
        group,
        expenses=expenses,
        settlements=settlements,
        expense=expense,
    )

    if not result.ok:
        logger.info(
            "settlement rejected in group %s: %s (from=%s to=%s amount=%s expense=%s)",
            group_id, result.kind.value, proposal.from_user_id,
            proposal.to_user_id, proposal.amount, proposal.expense_id,
        )
        raise AppError.from_ledger_error(result, field=_FIELD_BY_KIND.get(result.kind))

    admission: Admission = result.value

    settlement = Settlement(
        group_id=group_id,
        expense_id=proposal.expense_id,
        from_user_id=proposal.from_user_id,
        to_user_id=proposal.to_user_id,
        amount=proposal.amount,
        note=(data.get("note") or "").strip(),
        status=SettlementStatus.COMPLETED,
    )
    session.add(settlement)
    session.flush()
    session.refresh(settlement)

    _notify_parties(settlement, session, currency_label)

    logger.info(
        "settlement %s admitted in group %s: scope=%s amount=%s remaining_before=%s",
        settlement.id, group_id, admission.scope, proposal.amount, admission.remaining,
    )
    return settlement, admission


def list_settlements(group_id: int, caller_id: int, session: Session) -> list[Settlement]:
    """All settlements of a group, newest first. Members only."""
    group_service.get_group_for_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def list_my_settlements(caller_id: int, session: Session) -> list[Settlement]:
    """Settlements the caller paid or received, across every group, newest first."""
    stmt = (
        select(Settlement)
        .where(or_(
            Settlement.from_user_id == caller_id,
            Settlement.to_user_id == caller_id,
        ))
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())

