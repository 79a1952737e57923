"""
ledger/admissibility.py — Decides whether a proposed settlement may be recorded.

check_settlement is the gate in front of every Settlement insert. It is a
pure function over a snapshot: the caller (settlement_service) loads the
group, the referenced expense, the group's active expenses and the relevant
completed settlements, holds the group lock, and persists the settlement
only on Ok.

Preconditions are evaluated in a fixed order and the first failure wins:
  1. INVALID_AMOUNT     amount must be > 0
  2. SELF_SETTLEMENT    from != to
  3. GROUP_NOT_FOUND    group must exist
  4. FORBIDDEN          requester must be `from` or `to`
  5. NOT_A_MEMBER       both parties must be group members

Expense-scoped (expense_id given):
  EXPENSE_NOT_FOUND / WRONG_GROUP / NOT_IN_SPLIT, then OVERPAYMENT when
  amount > (share - already paid for this expense from -> to) + tolerance.

Group-scoped (no expense_id):
  OVERPAYMENT when amount > (what `from` owes `to` pairwise) + tolerance.
  A creditor owes nothing, so any amount is an overpayment for them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from groupledger.app.ledger.balances import compute_pairwise_balance
from groupledger.app.ledger.money import ZERO, exceeds, format_money, money_sum
from groupledger.app.ledger.results import Err, LedgerErrorKind, Ok
from groupledger.app.ledger.views import (
    ExpenseView,
    GroupView,
    SettlementProposal,
    SettlementView,
    completed_only,
)

SCOPE_EXPENSE = "expense"
SCOPE_GROUP = "group"


@dataclass(frozen=True)
class Admission:
    """What the payer owed at the moment the settlement was admitted."""
    scope: str
    owed: Decimal
    already_paid: Decimal
    remaining: Decimal

    def to_dict(self) -> dict:
        return {
            "scope": self.scope,
            "owed": format_money(self.owed),
            "already_paid": format_money(self.already_paid),
            "remaining": format_money(self.remaining),
        }


def _overpayment(amount: Decimal, admission: Admission, message: str) -> Err:
    return Err(
        LedgerErrorKind.OVERPAYMENT,
        message,
        {
            "amount": format_money(amount),
            **admission.to_dict(),
        },
    )


def _check_expense_scope(
        proposal: SettlementProposal,
        expense: ExpenseView | None,
        settlements: Iterable[SettlementView],
) -> Ok[Admission] | Err:
    if expense is None or expense.id != proposal.expense_id:
        return Err(
            LedgerErrorKind.EXPENSE_NOT_FOUND,
            f"Expense {proposal.expense_id} does not exist.",
        )

    if expense.group_id != proposal.group_id:
        return Err(
            LedgerErrorKind.WRONG_GROUP,
            f"Expense {expense.id} does not belong to group {proposal.group_id}.",
        )

    owed = expense.share_of(proposal.from_user_id)
    if owed is None:
        return Err(
            LedgerErrorKind.NOT_IN_SPLIT,
            f"User {proposal.from_user_id} is not part of the split for expense {expense.id}.",
        )

    already_paid = money_sum(
        s.amount
        for s in completed_only(settlements)
        if s.expense_id == expense.id
        and s.from_user_id == proposal.from_user_id
        and s.to_user_id == proposal.to_user_id
    )
    admission = Admission(SCOPE_EXPENSE, owed, already_paid, owed - already_paid)

    if exceeds(proposal.amount, admission.remaining):
        return _overpayment(
            proposal.amount,
            admission,
            f"Cannot pay more than the remaining balance. Owed {format_money(owed)} "
            f"for this expense, already paid {format_money(already_paid)}, "
            f"remaining {format_money(admission.remaining)}.",
        )

    return Ok(admission)


def _check_group_scope(
        proposal: SettlementProposal,
        expenses: Iterable[ExpenseView],
        settlements: Iterable[SettlementView],
) -> Ok[Admission] | Err:
    balance = compute_pairwise_balance(
        proposal.group_id,
        proposal.from_user_id,
        proposal.to_user_id,
        expenses,
        settlements,
    )
    remaining = -balance if balance < ZERO else ZERO
    admission = Admission(SCOPE_GROUP, remaining, ZERO, remaining)

    if exceeds(proposal.amount, remaining):
        return _overpayment(
            proposal.amount,
            admission,
            f"Cannot pay more than the remaining balance. "
            f"Remaining amount owed: {format_money(remaining)}.",
        )

    return Ok(admission)


def check_settlement(
        proposal: SettlementProposal,
        requester_id: int,
        group: GroupView | None,
        expenses: Iterable[ExpenseView] = (),
        settlements: Iterable[SettlementView] = (),
        expense: ExpenseView | None = None,
) -> Ok[Admission] | Err:
    """
    Admits or rejects `proposal`.

    Args:
        proposal:     The settlement being requested.
        requester_id: The authenticated user asking for it.
        group:        Snapshot of proposal.group_id, or None if it does not exist.
        expenses:     Active expenses of the group (group-scoped check).
        settlements:  Completed settlements of the group, or at least those
                      between the pair for the referenced expense.
        expense:      The expense looked up by proposal.expense_id, whatever
                      group it belongs to, or None if it does not exist.

    Returns:
        Ok(Admission) or Err with one LedgerErrorKind.
    """
    if proposal.amount <= ZERO:
        return Err(
            LedgerErrorKind.INVALID_AMOUNT,
            "Amount must be greater than zero.",
            {"amount": format_money(proposal.amount)},
        )

    if proposal.from_user_id == proposal.to_user_id:
        return Err(LedgerErrorKind.SELF_SETTLEMENT, "A settlement cannot be made to yourself.")

    if group is None:
        return Err(
            LedgerErrorKind.GROUP_NOT_FOUND,
            f"Group {proposal.group_id} does not exist.",
        )

    if requester_id not in (proposal.from_user_id, proposal.to_user_id):
        return Err(
            LedgerErrorKind.FORBIDDEN,
            "You can only record settlements that involve yourself.",
        )

    for user_id in (proposal.from_user_id, proposal.to_user_id):
        if not group.has_member(user_id):
            return Err(
                LedgerErrorKind.NOT_A_MEMBER,
                f"User {user_id} is not a member of group {group.id}.",
                {"user_id": user_id},
            )

    if proposal.expense_id is not None:
        return _check_expense_scope(proposal, expense, settlements)

    return _check_group_scope(proposal, expenses, settlements)
