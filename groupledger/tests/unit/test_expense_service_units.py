"""
Unit tests for expense_service helpers that run without a database.

  - _resolve_split_lines: equal mode divides over participants (default:
    every member); custom mode goes through ledger.validate_split and a
    mismatch surfaces as SHARE_MISMATCH (422) on `splits`
  - an equal split that would leave someone a zero share is
    AMOUNT_TOO_SMALL_TO_SPLIT (422)
  - membership checks name the offending request field
  - LIKE patterns escape wildcard characters typed by the user
  - Page.pagination arithmetic
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace

import pytest

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense import SplitMode
from groupledger.app.services import expense_service

MEMBERS = [1, 2, 3]


def _resolve(amount: str, mode: SplitMode, splits=None, participants=None, payer: int = 1):
    return expense_service._resolve_split_lines(
        Decimal(amount), mode, payer, 10, MEMBERS, splits, participants,
    )


class TestResolveSplitLines:

    def test_equal_defaults_to_every_member(self):
        lines = _resolve("100.00", SplitMode.EQUAL, payer=3)
        assert {line.user_id: line.share for line in lines} == {
            1: Decimal("33.33"),
            2: Decimal("33.33"),
            3: Decimal("33.34"),
        }

    def test_equal_over_chosen_participants(self):
        lines = _resolve("10.00", SplitMode.EQUAL, participants=[2, 3])
        assert [(line.user_id, line.share) for line in lines] == [
            (2, Decimal("5.00")),
            (3, Decimal("5.00")),
        ]

    def test_equal_with_outsider_participant(self):
        with pytest.raises(AppError) as exc_info:
            _resolve("10.00", SplitMode.EQUAL, participants=[2, 42])
        err = exc_info.value
        assert err.code == ErrorCode.SPLIT_USER_NOT_MEMBER
        assert err.field == "participant_ids"

    def test_equal_below_a_cent_each_is_422(self):
        with pytest.raises(AppError) as exc_info:
            _resolve("0.02", SplitMode.EQUAL)
        err = exc_info.value
        assert err.code == ErrorCode.AMOUNT_TOO_SMALL_TO_SPLIT
        assert err.http_status == 422
        assert err.field == "amount"

    def test_two_cents_between_two_participants_is_fine(self):
        lines = _resolve("0.02", SplitMode.EQUAL, participants=[1, 2])
        assert [line.share for line in lines] == [Decimal("0.01"), Decimal("0.01")]

    def test_custom_shares_are_kept(self):
        splits = [{"user_id": 1, "share": Decimal("70")}, {"user_id": 2, "share": Decimal("30")}]
        lines = _resolve("100.00", SplitMode.CUSTOM, splits=splits)
        assert [line.share for line in lines] == [Decimal("70.00"), Decimal("30.00")]

    def test_custom_mismatch_is_share_mismatch(self):
        splits = [{"user_id": 1, "share": Decimal("60")}, {"user_id": 2, "share": Decimal("45")}]
        with pytest.raises(AppError) as exc_info:
            _resolve("100.00", SplitMode.CUSTOM, splits=splits)
        err = exc_info.value
        assert err.code == ErrorCode.SHARE_MISMATCH
        assert err.http_status == 422
        assert err.field == "splits"
        assert err.details == {"total": "100.00", "shares_sum": "105.00", "difference": "5.00"}

    def test_custom_with_outsider(self):
        splits = [{"user_id": 1, "share": Decimal("50")}, {"user_id": 9, "share": Decimal("50")}]
        with pytest.raises(AppError) as exc_info:
            _resolve("100.00", SplitMode.CUSTOM, splits=splits)
        assert exc_info.value.code == ErrorCode.SPLIT_USER_NOT_MEMBER
        assert exc_info.value.field == "splits"


def test_payer_must_be_member():
    with pytest.raises(AppError) as exc_info:
        expense_service._validate_payer_is_member(9, 10, MEMBERS)
    assert exc_info.value.code == ErrorCode.PAYER_NOT_MEMBER
    assert exc_info.value.field == "paid_by_user_id"


def test_deleted_expense_cannot_change():
    expense = SimpleNamespace(id=4, is_deleted=True)
    with pytest.raises(AppError) as exc_info:
        expense_service._require_active(expense)
    assert exc_info.value.code == ErrorCode.EXPENSE_DELETED
    assert exc_info.value.http_status == 422


@pytest.mark.parametrize("text,expected", [
    ("pizza", "%pizza%"),
    ("100%", "%100\\%%"),
    ("a_b", "%a\\_b%"),
])
def test_like_pattern_escapes_wildcards(text, expected):
    assert expense_service._like_pattern(text) == expected


@pytest.mark.parametrize("page,total,expected", [
    (1, 0, {"total_pages": 0, "has_next": False, "has_prev": False}),
    (1, 45, {"total_pages": 3, "has_next": True, "has_prev": False}),
    (3, 45, {"total_pages": 3, "has_next": False, "has_prev": True}),
])
def test_pagination(page, total, expected):
    info = expense_service.Page(items=[], page=page, limit=20, total=total).pagination
    assert info["page"] == page
    assert info["limit"] == 20
    assert info["total"] == total
    for key, value in expected.items():
        assert info[key] == value
