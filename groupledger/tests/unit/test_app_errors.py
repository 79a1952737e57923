"""
Unit tests for AppError serialization and the ledger rejection mapping.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger import Err, LedgerErrorKind
from groupledger.app.services import notification_service


@pytest.mark.parametrize("kind,code,status", [
    (LedgerErrorKind.GROUP_NOT_FOUND, ErrorCode.GROUP_NOT_FOUND, 404),
    (LedgerErrorKind.EXPENSE_NOT_FOUND, ErrorCode.EXPENSE_NOT_FOUND, 404),
    (LedgerErrorKind.FORBIDDEN, ErrorCode.FORBIDDEN, 403),
    (LedgerErrorKind.INVALID_AMOUNT, ErrorCode.INVALID_AMOUNT, 400),
    (LedgerErrorKind.SHARE_MISMATCH, ErrorCode.SHARE_MISMATCH, 422),
    (LedgerErrorKind.SELF_SETTLEMENT, ErrorCode.SELF_SETTLEMENT, 422),
    (LedgerErrorKind.NOT_A_MEMBER, ErrorCode.NOT_A_MEMBER, 422),
    (LedgerErrorKind.WRONG_GROUP, ErrorCode.WRONG_GROUP, 422),
    (LedgerErrorKind.NOT_IN_SPLIT, ErrorCode.NOT_IN_SPLIT, 422),
    (LedgerErrorKind.OVERPAYMENT, ErrorCode.OVERPAYMENT, 422),
])
def test_every_ledger_kind_has_an_http_mapping(kind, code, status):
    err = AppError.from_ledger_error(Err(kind, "nope"))
    assert err.code == code
    assert err.http_status == status
    assert err.message == "nope"
    assert err.details is None


def test_to_dict_includes_field_and_details_when_set():
    err = AppError.from_ledger_error(
        Err(LedgerErrorKind.OVERPAYMENT, "too much", {"remaining": "5.00"}),
        field="amount",
    )
    assert err.to_dict() == {
        "error": {
            "code": ErrorCode.OVERPAYMENT,
            "message": "too much",
            "field": "amount",
            "details": {"remaining": "5.00"},
        }
    }


def test_to_dict_minimal():
    assert AppError(ErrorCode.FORBIDDEN, "no", 403).to_dict() == {
        "error": {"code": "FORBIDDEN", "message": "no"}
    }


def test_mark_as_read_hides_other_users_notifications():
    session = MagicMock()
    session.get.return_value = MagicMock(user_id=2)

    with pytest.raises(AppError) as exc_info:
        notification_service.mark_as_read(notification_id=1, user_id=1, session=session)

    assert exc_info.value.code == ErrorCode.NOTIFICATION_NOT_FOUND
    assert exc_info.value.http_status == 404
