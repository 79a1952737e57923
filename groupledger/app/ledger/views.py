"""
ledger/views.py — Immutable snapshots the ledger engine computes over.

The engine never sees ORM objects. services/ledger_store.py reads rows and
converts them to these frozen dataclasses, so a computation cannot mutate
persisted state and can be unit-tested with plain values.

SettlementStatus lives here (not in models/) because the engine filters on
it; models/settlement.py imports it from this module.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal


class SettlementStatus(str, enum.Enum):
    """
    Only COMPLETED is reachable: settlements are created already completed.
    PENDING is kept as a schema value for a future approval flow and is
    ignored by every ledger computation.
    """
    PENDING   = "pending"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SplitLine:
    user_id: int
    share: Decimal


@dataclass(frozen=True)
class ExpenseView:
    id: int
    group_id: int
    paid_by: int
    amount: Decimal
    splits: tuple[SplitLine, ...] = ()

    def share_of(self, user_id: int) -> Decimal | None:
        """Returns the user's share, or None if they are not in the split."""
        for line in self.splits:
            if line.user_id == user_id:
                return line.share
        return None


@dataclass(frozen=True)
class SettlementView:
    id: int | None
    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    expense_id: int | None = None
    status: SettlementStatus = SettlementStatus.COMPLETED

    @property
    def is_completed(self) -> bool:
        return self.status == SettlementStatus.COMPLETED


@dataclass(frozen=True)
class GroupView:
    id: int
    member_ids: frozenset[int] = field(default_factory=frozenset)
    creator_id: int | None = None

    def has_member(self, user_id: int) -> bool:
        return user_id in self.member_ids


@dataclass(frozen=True)
class SettlementProposal:
    """A settlement somebody wants to record, before it is admitted."""
    group_id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    expense_id: int | None = None


def completed_only(settlements) -> list[SettlementView]:
    """Drops anything that is not a completed settlement."""
    return [s for s in settlements if s.is_completed]
