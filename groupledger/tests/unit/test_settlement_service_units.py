"""
Unit tests for settlement_service.create_settlement without a database.

The ledger_store finders are patched, so these tests pin down which
snapshot is handed to the engine and how a rejection is mapped onto
AppError. The rules themselves are covered in test_settlement_rules.py.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.ledger import ExpenseView, GroupView, SplitLine
from groupledger.app.services import settlement_service

GROUP_VIEW = GroupView(id=1, member_ids=frozenset({1, 2, 3}), creator_id=1)
EXPENSE_VIEW = ExpenseView(
    id=5,
    group_id=1,
    paid_by=1,
    amount=Decimal("90.00"),
    splits=(SplitLine(1, Decimal("30.00")), SplitLine(2, Decimal("30.00")), SplitLine(3, Decimal("30.00"))),
)

_PATCH_ROOT = "groupledger.app.services.settlement_service"


def _data(**overrides) -> dict:
    data = {"to_user_id": 1, "amount": Decimal("30.00"), "from_user_id": None, "expense_id": None, "note": ""}
    data.update(overrides)
    return data


@patch(f"{_PATCH_ROOT}._notify_parties")
@patch(f"{_PATCH_ROOT}.find_completed_settlements", return_value=[])
@patch(f"{_PATCH_ROOT}.find_expense_by_id", return_value=EXPENSE_VIEW)
@patch(f"{_PATCH_ROOT}.find_group_by_id", return_value=GROUP_VIEW)
def test_expense_scope_reads_only_that_pair(mock_group, mock_expense, mock_settlements, mock_notify):
    session = MagicMock()

    settlement, admission = settlement_service.create_settlement(
        group_id=1, caller_id=2, data=_data(expense_id=5, note="  thanks  "), session=session,
    )

    mock_group.assert_called_once_with(1, session, lock=True)
    mock_expense.assert_called_once_with(5, session)
    mock_settlements.assert_called_once_with(session, expense_id=5, from_user_id=2, to_user_id=1)
    assert admission.scope == "expense"
    assert admission.remaining == Decimal("30.00")
    assert settlement.from_user_id == 2
    assert settlement.note == "thanks"
    session.add.assert_called_once_with(settlement)
    mock_notify.assert_called_once_with(settlement, session, "Rs.")


@patch(f"{_PATCH_ROOT}._notify_parties")
@patch(f"{_PATCH_ROOT}.find_completed_settlements", return_value=[])
@patch(f"{_PATCH_ROOT}.find_expenses_by_group", return_value=[EXPENSE_VIEW])
@patch(f"{_PATCH_ROOT}.find_group_by_id", return_value=GROUP_VIEW)
def test_group_scope_reads_the_whole_group(mock_group, mock_expenses, mock_settlements, mock_notify):
    session = MagicMock()

    _, admission = settlement_service.create_settlement(
        group_id=1, caller_id=3, data=_data(), session=session, currency_label="$",
    )

    mock_expenses.assert_called_once_with(1, session)
    mock_settlements.assert_called_once_with(session, group_id=1)
    assert admission.scope == "group"
    assert mock_notify.call_args.args[2] == "$"


@patch(f"{_PATCH_ROOT}.find_completed_settlements", return_value=[])
@patch(f"{_PATCH_ROOT}.find_expenses_by_group", return_value=[EXPENSE_VIEW])
@patch(f"{_PATCH_ROOT}.find_group_by_id", return_value=GROUP_VIEW)
def test_overpayment_points_at_amount_and_writes_nothing(mock_group, mock_expenses, mock_settlements):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        settlement_service.create_settlement(
            group_id=1, caller_id=2, data=_data(amount=Decimal("30.02")), session=session,
        )

    err = exc_info.value
    assert err.code == ErrorCode.OVERPAYMENT
    assert err.http_status == 422
    assert err.field == "amount"
    assert err.details["remaining"] == "30.00"
    session.add.assert_not_called()


@patch(f"{_PATCH_ROOT}.find_completed_settlements")
@patch(f"{_PATCH_ROOT}.find_group_by_id", return_value=None)
def test_missing_group_skips_snapshot(mock_group, mock_settlements):
    session = MagicMock()

    with pytest.raises(AppError) as exc_info:
        settlement_service.create_settlement(group_id=404, caller_id=2, data=_data(), session=session)

    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND
    assert exc_info.value.http_status == 404
    mock_settlements.assert_not_called()


@patch(f"{_PATCH_ROOT}.find_group_by_id", return_value=GROUP_VIEW)
def test_self_settlement_points_at_recipient(mock_group):
    with pytest.raises(AppError) as exc_info:
        settlement_service.create_settlement(
            group_id=1, caller_id=1, data=_data(to_user_id=1), session=MagicMock(),
        )

    assert exc_info.value.code == ErrorCode.SELF_SETTLEMENT
    assert exc_info.value.field == "to_user_id"


def test_list_settlements_raises_group_not_found():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        settlement_service.list_settlements(group_id=99999, caller_id=1, session=session)

    err = exc_info.value
    assert err.code == ErrorCode.GROUP_NOT_FOUND
    assert err.http_status == 404
