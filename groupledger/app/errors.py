"""
errors.py — AppError base class and error code registry.

Every error returned by the GroupLedger API uses a code defined here.
Services and routes raise AppError; they never raise strings or generic
exceptions for an expected failure.

  - Error codes are a contract with clients. Once published they do not change.
  - Messages are human-readable prose and may be reworded at any time.
  - 401 (who are you?) and 403 (you may not) are never interchanged.
"""

from __future__ import annotations

from typing import Any

from groupledger.app.ledger.results import Err, LedgerErrorKind


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details  # structured context, e.g. owed/remaining

    @classmethod
    def from_ledger_error(cls, err: Err, field: str | None = None) -> "AppError":
        """Maps a ledger engine rejection onto the HTTP error contract."""
        code, http_status = _LEDGER_ERROR_MAP[err.kind]
        return cls(
            code,
            err.message,
            http_status,
            field=field,
            details=dict(err.detail) or None,
        )

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details:
            payload["details"] = self.details
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the section header.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_MODE         = "INVALID_SPLIT_MODE"
    SPLITS_SENT_FOR_EQUAL_MODE = "SPLITS_SENT_FOR_EQUAL_MODE"
    SPLITS_REQUIRED            = "SPLITS_REQUIRED"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    INVALID_DATE_RANGE         = "INVALID_DATE_RANGE"
    INVALID_AMOUNT_RANGE       = "INVALID_AMOUNT_RANGE"
    SEARCH_TOO_SHORT           = "SEARCH_TOO_SHORT"
    INVALID_EXPORT_FORMAT      = "INVALID_EXPORT_FORMAT"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_CATEGORY         = "DUPLICATE_CATEGORY"
    ALREADY_MEMBER             = "ALREADY_MEMBER"
    GROUP_HAS_LEDGER_ENTRIES   = "GROUP_HAS_LEDGER_ENTRIES"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    CATEGORY_NOT_FOUND         = "CATEGORY_NOT_FOUND"
    NOTIFICATION_NOT_FOUND     = "NOTIFICATION_NOT_FOUND"
    RECEIPT_NOT_FOUND          = "RECEIPT_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    SHARE_MISMATCH             = "SHARE_MISMATCH"
    NOT_A_MEMBER               = "NOT_A_MEMBER"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    WRONG_GROUP                = "WRONG_GROUP"
    NOT_IN_SPLIT               = "NOT_IN_SPLIT"
    OVERPAYMENT                = "OVERPAYMENT"
    CREATOR_CANNOT_LEAVE       = "CREATOR_CANNOT_LEAVE"
    EXPENSE_DELETED            = "EXPENSE_DELETED"
    AMOUNT_TOO_SMALL_TO_SPLIT  = "AMOUNT_TOO_SMALL_TO_SPLIT"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── Throttling (429) ───────────────────────────────────────────────────
    RATE_LIMITED               = "RATE_LIMITED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
    BALANCE_NOT_CONSERVED      = "BALANCE_NOT_CONSERVED"


_LEDGER_ERROR_MAP: dict[LedgerErrorKind, tuple[str, int]] = {
    LedgerErrorKind.GROUP_NOT_FOUND:   (ErrorCode.GROUP_NOT_FOUND, 404),
    LedgerErrorKind.EXPENSE_NOT_FOUND: (ErrorCode.EXPENSE_NOT_FOUND, 404),
    LedgerErrorKind.FORBIDDEN:         (ErrorCode.FORBIDDEN, 403),
    LedgerErrorKind.INVALID_AMOUNT:    (ErrorCode.INVALID_AMOUNT, 400),
    LedgerErrorKind.SHARE_MISMATCH:    (ErrorCode.SHARE_MISMATCH, 422),
    LedgerErrorKind.SELF_SETTLEMENT:   (ErrorCode.SELF_SETTLEMENT, 422),
    LedgerErrorKind.NOT_A_MEMBER:      (ErrorCode.NOT_A_MEMBER, 422),
    LedgerErrorKind.WRONG_GROUP:       (ErrorCode.WRONG_GROUP, 422),
    LedgerErrorKind.NOT_IN_SPLIT:      (ErrorCode.NOT_IN_SPLIT, 422),
    LedgerErrorKind.OVERPAYMENT:       (ErrorCode.OVERPAYMENT, 422),
}
