"""
Ledger engine: pure computations over expense and settlement snapshots.

Nothing in this package imports Flask or SQLAlchemy.
"""

from groupledger.app.ledger.admissibility import Admission, check_settlement
from groupledger.app.ledger.balances import (
    MemberBalance,
    SuggestedTransfer,
    balance_sum,
    compute_group_balances,
    compute_pairwise_balance,
    is_conserved,
    simplify_debts,
)
from groupledger.app.ledger.money import CONSERVATION_TOLERANCE, TOLERANCE
from groupledger.app.ledger.results import Err, LedgerErrorKind, Ok
from groupledger.app.ledger.splits import compute_equal_split, validate_split
from groupledger.app.ledger.status import is_fully_settled, outstanding_shares
from groupledger.app.ledger.views import (
    ExpenseView,
    GroupView,
    SettlementProposal,
    SettlementStatus,
    SettlementView,
    SplitLine,
)

__all__ = [
    "Admission",
    "CONSERVATION_TOLERANCE",
    "Err",
    "ExpenseView",
    "GroupView",
    "LedgerErrorKind",
    "MemberBalance",
    "Ok",
    "SettlementProposal",
    "SettlementStatus",
    "SettlementView",
    "SplitLine",
    "SuggestedTransfer",
    "TOLERANCE",
    "balance_sum",
    "check_settlement",
    "compute_equal_split",
    "compute_group_balances",
    "compute_pairwise_balance",
    "is_conserved",
    "is_fully_settled",
    "outstanding_shares",
    "simplify_debts",
    "validate_split",
]
