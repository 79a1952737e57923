"""
ledger/results.py — Discriminated results returned by the ledger engine.

Engine functions never raise for a business-rule violation. They return
either Ok(value) or Err(kind, message, detail). The service layer turns an
Err into an AppError (see errors.AppError.from_ledger_error); nothing in
the engine knows about HTTP status codes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class LedgerErrorKind(str, enum.Enum):
    """Every way the engine can reject an input."""

    SHARE_MISMATCH    = "SHARE_MISMATCH"
    INVALID_AMOUNT    = "INVALID_AMOUNT"
    SELF_SETTLEMENT   = "SELF_SETTLEMENT"
    GROUP_NOT_FOUND   = "GROUP_NOT_FOUND"
    FORBIDDEN         = "FORBIDDEN"
    NOT_A_MEMBER      = "NOT_A_MEMBER"
    EXPENSE_NOT_FOUND = "EXPENSE_NOT_FOUND"
    WRONG_GROUP       = "WRONG_GROUP"
    NOT_IN_SPLIT      = "NOT_IN_SPLIT"
    OVERPAYMENT       = "OVERPAYMENT"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: LedgerErrorKind
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False
