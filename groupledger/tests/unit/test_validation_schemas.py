"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input
  - Invalid input raises ValidationError on the right field, with a
    registered ErrorCode where the schema uses one
  - Cross-entity rules (membership, share sums) are NOT tested here; they
    belong to the services

Schemas inherit from marshmallow.Schema directly, so no app context is needed.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode
from groupledger.app.models.expense import SplitMode
from groupledger.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from groupledger.app.schemas.category_schema import CreateCategorySchema, PatchCategorySchema
from groupledger.app.schemas.expense_schema import (
    CreateExpenseSchema,
    ExpenseFilterSchema,
    ExpenseSearchSchema,
    PatchExpenseSchema,
    ReceiptSchema,
)
from groupledger.app.schemas.export_schema import ExportQuerySchema
from groupledger.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from groupledger.app.schemas.settlement_schema import CreateSettlementSchema


def _first_error(exc: pytest.ExceptionInfo, field: str):
    messages = exc.value.messages[field]
    return messages[0] if isinstance(messages, list) else messages


# ═══════════════════════════════════════════════════════════════════════════
# Auth
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    def _load(self, data: dict):
        return RegisterSchema().load(data)

    def test_valid_payload_lowercases_email(self):
        result = self._load({"name": "Alice", "email": " Alice@Example.COM ", "password": "Secure12"})
        assert result["email"] == "alice@example.com"
        assert result["avatar_url"] is None

    def test_blank_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "   ", "email": "a@b.com", "password": "Secure12"})
        assert "name" in exc.value.messages

    @pytest.mark.parametrize("password", ["Ab1", "12345678", "password"])
    def test_weak_password_raises(self, password):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "Alice", "email": "a@b.com", "password": password})
        assert "password" in exc.value.messages

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "Alice", "email": "notanemail", "password": "Secure12"})
        assert "email" in exc.value.messages

    def test_invalid_avatar_url_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "A", "email": "a@b.com", "password": "Secure12", "avatar_url": "nope"})
        assert "avatar_url" in exc.value.messages


class TestLoginAndRefreshSchemas:

    def test_login_requires_both_fields(self):
        with pytest.raises(ValidationError) as exc:
            LoginSchema().load({})
        assert {"email", "password"} <= set(exc.value.messages)

    def test_refresh_token_required(self):
        with pytest.raises(ValidationError) as exc:
            RefreshTokenSchema().load({})
        assert "refresh_token" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Groups
# ═══════════════════════════════════════════════════════════════════════════

class TestGroupSchemas:

    def test_create_defaults(self):
        result = CreateGroupSchema().load({"name": "Trip"})
        assert result["member_ids"] == []
        assert result["description"] is None

    def test_create_with_members(self):
        result = CreateGroupSchema().load({"name": "Trip", "member_ids": [2, 3]})
        assert result["member_ids"] == [2, 3]

    def test_create_rejects_string_member_id(self):
        with pytest.raises(ValidationError) as exc:
            CreateGroupSchema().load({"name": "Trip", "member_ids": ["2"]})
        assert "member_ids" in exc.value.messages

    def test_add_member_by_email(self):
        assert AddMemberSchema().load({"email": "bob@test.com"}) == {"email": "bob@test.com"}

    @pytest.mark.parametrize("payload", [{}, {"user_id": 2, "email": "bob@test.com"}])
    def test_add_member_needs_exactly_one_identifier(self, payload):
        with pytest.raises(ValidationError) as exc:
            AddMemberSchema().load(payload)
        assert "user_id" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Expenses
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    def _load(self, data: dict):
        return CreateExpenseSchema().load(data)

    def _custom(self, **overrides) -> dict:
        payload = {
            "description": "Dinner",
            "amount": "60.00",
            "splits": [{"user_id": 1, "share": "30.00"}, {"user_id": 2, "share": "30.00"}],
        }
        payload.update(overrides)
        return payload

    def test_custom_is_the_default_mode(self):
        result = self._load(self._custom())
        assert result["split_mode"] == SplitMode.CUSTOM
        assert result["amount"] == Decimal("60.00")
        assert result["paid_by_user_id"] is None
        assert result["tags"] == []

    def test_equal_mode_without_splits(self):
        result = self._load({"description": "Taxi", "amount": "10", "split_mode": "equal"})
        assert result["split_mode"] == SplitMode.EQUAL
        assert result["participant_ids"] is None

    def test_equal_mode_with_splits_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(split_mode="equal"))
        assert _first_error(exc, "splits") == ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE

    def test_custom_mode_without_splits_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"description": "Dinner", "amount": "60.00"})
        assert _first_error(exc, "splits") == ErrorCode.SPLITS_REQUIRED

    def test_participants_only_in_equal_mode(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(participant_ids=[1, 2]))
        assert "participant_ids" in exc.value.messages

    def test_duplicate_split_user_raises(self):
        splits = [{"user_id": 1, "share": "30.00"}, {"user_id": 1, "share": "30.00"}]
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(splits=splits))
        assert _first_error(exc, "splits") == ErrorCode.DUPLICATE_SPLIT_USER

    def test_duplicate_participant_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"description": "Taxi", "amount": "10", "split_mode": "equal", "participant_ids": [2, 2]})
        assert _first_error(exc, "participant_ids") == ErrorCode.DUPLICATE_SPLIT_USER

    def test_three_decimal_places_rejected(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(amount="60.001"))
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT_PRECISION

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(amount=amount))
        assert "amount" in exc.value.messages

    def test_unknown_split_mode(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(split_mode="weighted"))
        assert _first_error(exc, "split_mode") == ErrorCode.INVALID_SPLIT_MODE

    def test_too_many_tags(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(tags=[f"t{i}" for i in range(11)]))
        assert "tags" in exc.value.messages

    def test_blank_description(self):
        with pytest.raises(ValidationError) as exc:
            self._load(self._custom(description="   "))
        assert "description" in exc.value.messages


class TestPatchExpenseSchema:

    def _load(self, data: dict):
        return PatchExpenseSchema().load(data)

    def test_description_only(self):
        assert self._load({"description": "Lunch"}) == {"description": "Lunch"}

    def test_amount_alone_in_equal_mode(self):
        result = self._load({"split_mode": "equal", "amount": "40.00"})
        assert result["amount"] == Decimal("40.00")

    def test_amount_without_splits_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"amount": "40.00"})
        assert "splits" in exc.value.messages

    def test_splits_without_amount_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"splits": [{"user_id": 1, "share": "40.00"}]})
        assert "amount" in exc.value.messages

    def test_custom_mode_requires_splits(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"split_mode": "custom", "amount": "40.00"})
        assert _first_error(exc, "splits") == ErrorCode.SPLITS_REQUIRED

    def test_category_can_be_cleared(self):
        assert self._load({"category_id": None}) == {"category_id": None}

    def test_duplicate_participant_ids_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"participant_ids": [2, 2, 3]})
        assert _first_error(exc, "participant_ids") == ErrorCode.DUPLICATE_SPLIT_USER

    def test_participant_ids_alone_are_accepted(self):
        assert self._load({"participant_ids": [2, 3]}) == {"participant_ids": [2, 3]}

    def test_participant_ids_with_custom_mode_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({
                "split_mode": "custom",
                "amount": "40.00",
                "splits": [{"user_id": 1, "share": "40.00"}],
                "participant_ids": [1],
            })
        assert "participant_ids" in exc.value.messages

    def test_participant_ids_next_to_splits_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({
                "amount": "40.00",
                "splits": [{"user_id": 1, "share": "40.00"}],
                "participant_ids": [1],
            })
        assert "participant_ids" in exc.value.messages


class TestQuerySchemas:

    def test_filter_defaults(self):
        result = ExpenseFilterSchema().load({})
        assert result["page"] == 1
        assert result["limit"] is None
        assert result["sort_by"] == "created_at"
        assert result["sort_order"] == "desc"

    def test_filter_parses_query_strings(self):
        result = ExpenseFilterSchema().load({
            "min_amount": "10",
            "max_amount": "50.5",
            "start_date": "2024-01-01",
            "end_date": "2024-01-31",
            "tags": "food, travel,,",
            "page": "2",
            "unrelated": "ignored",
        })
        assert result["min_amount"] == Decimal("10")
        assert result["start_date"] == date(2024, 1, 1)
        assert result["tags"] == ["food", "travel"]
        assert result["page"] == 2
        assert "unrelated" not in result

    def test_filter_amount_range(self):
        with pytest.raises(ValidationError) as exc:
            ExpenseFilterSchema().load({"min_amount": "50", "max_amount": "10"})
        assert _first_error(exc, "min_amount") == ErrorCode.INVALID_AMOUNT_RANGE

    def test_filter_date_range(self):
        with pytest.raises(ValidationError) as exc:
            ExpenseFilterSchema().load({"start_date": "2024-02-01", "end_date": "2024-01-01"})
        assert _first_error(exc, "start_date") == ErrorCode.INVALID_DATE_RANGE

    def test_filter_unknown_sort(self):
        with pytest.raises(ValidationError):
            ExpenseFilterSchema().load({"sort_by": "payer"})

    @pytest.mark.parametrize("q", ["a", "  b  "])
    def test_search_too_short(self, q):
        with pytest.raises(ValidationError) as exc:
            ExpenseSearchSchema().load({"q": q})
        assert _first_error(exc, "q") == ErrorCode.SEARCH_TOO_SHORT

    def test_export_format(self):
        assert ExportQuerySchema().load({})["format"] == "detailed"
        with pytest.raises(ValidationError) as exc:
            ExportQuerySchema().load({"format": "pdf"})
        assert _first_error(exc, "format") == ErrorCode.INVALID_EXPORT_FORMAT

    def test_receipt_needs_url(self):
        with pytest.raises(ValidationError) as exc:
            ReceiptSchema().load({"filename": "r.png"})
        assert "url" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Settlements and categories
# ═══════════════════════════════════════════════════════════════════════════

class TestSettlementSchema:

    def test_minimal_payload(self):
        result = CreateSettlementSchema().load({"to_user_id": 2, "amount": "12.50"})
        assert result == {
            "to_user_id": 2,
            "amount": Decimal("12.50"),
            "from_user_id": None,
            "expense_id": None,
            "note": "",
        }

    def test_amount_precision(self):
        with pytest.raises(ValidationError) as exc:
            CreateSettlementSchema().load({"to_user_id": 2, "amount": "1.234"})
        assert _first_error(exc, "amount") == ErrorCode.INVALID_AMOUNT_PRECISION

    def test_to_user_required(self):
        with pytest.raises(ValidationError) as exc:
            CreateSettlementSchema().load({"amount": "5"})
        assert "to_user_id" in exc.value.messages


class TestCategorySchemas:

    def test_create(self):
        assert CreateCategorySchema().load({"name": "Food"}) == {"name": "Food", "description": None}

    def test_name_too_long(self):
        with pytest.raises(ValidationError):
            CreateCategorySchema().load({"name": "x" * 51})

    def test_patch_is_partial(self):
        assert PatchCategorySchema().load({}) == {}
