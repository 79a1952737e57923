"""
ledger/balances.py — Balance aggregation and debt simplification.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
Services must not re-derive balances from rows themselves; they load
snapshots through services/ledger_store.py and call into here.

Sign convention:
  positive balance = net creditor (the group owes this user)
  negative balance = net debtor   (this user owes the group)

Conservation:
  For a closed group, sum(balance) == 0 within CONSERVATION_TOLERANCE after
  any sequence of expenses and completed settlements. Every expense adds
  `amount` to one user and removes the same total (its shares) from others;
  every settlement moves `amount` from one user to another. Users that show
  up in a record but have left the group are kept in the result for this
  reason.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from groupledger.app.ledger.money import (
    CONSERVATION_TOLERANCE,
    ZERO,
    is_cleared,
    money_sum,
    round_money,
)
from groupledger.app.ledger.views import ExpenseView, SettlementView, completed_only


@dataclass
class MemberBalance:
    balance: Decimal = field(default=ZERO)
    total_paid: Decimal = field(default=ZERO)
    total_owed: Decimal = field(default=ZERO)


@dataclass(frozen=True)
class SuggestedTransfer:
    from_user_id: int
    to_user_id: int
    amount: Decimal


def compute_group_balances(
        expenses: Iterable[ExpenseView],
        completed_settlements: Iterable[SettlementView],
        member_ids: Iterable[int],
) -> dict[int, MemberBalance]:
    """
    Folds expenses and completed settlements into per-user balances.

    Algorithm:
      1. Every member starts at zero (balance, total_paid, total_owed).
      2. Expense: payer balance += amount and total_paid += amount;
         each split user balance -= share and total_owed += share.
      3. Completed settlement: from.balance += amount; to.balance -= amount.

    Settlements that are not completed are skipped even if passed in.
    """
    balances: dict[int, MemberBalance] = {uid: MemberBalance() for uid in member_ids}

    def _entry(user_id: int) -> MemberBalance:
        return balances.setdefault(user_id, MemberBalance())

    for expense in expenses:
        payer = _entry(expense.paid_by)
        payer.balance += expense.amount
        payer.total_paid += expense.amount

        for line in expense.splits:
            member = _entry(line.user_id)
            member.balance -= line.share
            member.total_owed += line.share

    for settlement in completed_only(completed_settlements):
        _entry(settlement.from_user_id).balance += settlement.amount
        _entry(settlement.to_user_id).balance -= settlement.amount

    return balances


def compute_pairwise_balance(
        group_id: int,
        from_user_id: int,
        to_user_id: int,
        expenses: Iterable[ExpenseView],
        completed_settlements: Iterable[SettlementView],
) -> Decimal:
    """
    Net position of `from_user_id` relative to `to_user_id` inside one group.

    Only the pair's mutual exposure counts:
      - expense paid by `from`: += share of `to`  (to owes from)
      - expense paid by `to`:   -= share of `from` (from owes to)
      - settlement from -> to:  += amount
      - settlement to -> from:  -= amount

    Returns:
        Negative Decimal when `from` owes `to`, positive when `to` owes
        `from`, zero when they are square.
    """
    balance = ZERO

    for expense in expenses:
        if expense.group_id != group_id:
            continue
        if expense.paid_by == from_user_id:
            balance += expense.share_of(to_user_id) or ZERO
        elif expense.paid_by == to_user_id:
            balance -= expense.share_of(from_user_id) or ZERO

    for settlement in completed_only(completed_settlements):
        if settlement.group_id != group_id:
            continue
        if settlement.from_user_id == from_user_id and settlement.to_user_id == to_user_id:
            balance += settlement.amount
        elif settlement.from_user_id == to_user_id and settlement.to_user_id == from_user_id:
            balance -= settlement.amount

    return balance


def balance_sum(balances: Mapping[int, MemberBalance]) -> Decimal:
    return money_sum(entry.balance for entry in balances.values())


def is_conserved(balances: Mapping[int, MemberBalance]) -> bool:
    """True when the balances of a closed group sum to zero."""
    return abs(balance_sum(balances)) <= CONSERVATION_TOLERANCE


def simplify_debts(balances: Mapping[int, Decimal]) -> list[SuggestedTransfer]:
    """
    Greedy minimum cash flow debt simplification.

    Repeatedly matches the largest debtor with the largest creditor until
    every remaining balance is within the tolerance. For N members this
    produces at most N-1 transfers.

    Args:
        balances: {user_id: net_balance}. MUST be conserved; passing a
                  partial view produces transfers that do not clear.
    """
    creditors = sorted(
        [(uid, amt) for uid, amt in balances.items() if not is_cleared(amt)],
        key=lambda x: x[1],
        reverse=True,
    )
    debtors = sorted(
        [(uid, -amt) for uid, amt in balances.items() if not is_cleared(-amt)],
        key=lambda x: x[1],
        reverse=True,
    )

    transfers: list[SuggestedTransfer] = []
    i = j = 0

    while i < len(creditors) and j < len(debtors):
        cid, credit = creditors[i]
        did, debt = debtors[j]

        amount = min(credit, debt)
        transfers.append(SuggestedTransfer(did, cid, round_money(amount)))

        creditors[i] = (cid, credit - amount)
        debtors[j] = (did, debt - amount)

        if is_cleared(creditors[i][1]):
            i += 1
        if is_cleared(debtors[j][1]):
            j += 1

    return transfers
