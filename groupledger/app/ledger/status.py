"""
ledger/status.py — Per-expense settlement status.

An expense is fully settled when every non-payer's share has been matched
by completed settlements, tied to that expense, paid to the expense's
payer. This is a derived view: it is recomputed on every read and never
stored, because a new settlement can arrive at any time.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from groupledger.app.ledger.money import ZERO, is_cleared
from groupledger.app.ledger.views import ExpenseView, SettlementView, completed_only


def _paid_to_payer(
        expense: ExpenseView,
        settlements: Iterable[SettlementView],
) -> dict[int, Decimal]:
    """Sums, per paying user, completed settlements of `expense` sent to its payer."""
    paid: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for settlement in completed_only(settlements):
        if settlement.expense_id != expense.id:
            continue
        if settlement.to_user_id != expense.paid_by:
            continue
        paid[settlement.from_user_id] += settlement.amount
    return paid


def outstanding_shares(
        expense: ExpenseView,
        settlements: Iterable[SettlementView],
) -> dict[int, Decimal]:
    """
    Returns {user_id: remaining} for every split user other than the payer.
    Remainders are clamped at zero; a user who overpaid within tolerance
    shows 0.00, not a negative number.
    """
    paid = _paid_to_payer(expense, settlements)
    remaining: dict[int, Decimal] = {}

    for line in expense.splits:
        # The payer cannot owe themselves.
        if line.user_id == expense.paid_by:
            continue
        remaining[line.user_id] = max(line.share - paid.get(line.user_id, ZERO), ZERO)

    return remaining


def is_fully_settled(
        expense: ExpenseView,
        completed_settlements_for_expense: Iterable[SettlementView],
) -> bool:
    """True only if every non-payer split is cleared within the tolerance."""
    remaining = outstanding_shares(expense, completed_settlements_for_expense)
    return all(is_cleared(amount) for amount in remaining.values())
