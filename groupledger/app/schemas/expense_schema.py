"""
schemas/expense_schema.py — Request schemas for expense endpoints.

Validation responsibility:
  - This file (400): field types, lengths, decimal precision, split-mode
    coherence (SPLITS_SENT_FOR_EQUAL_MODE, SPLITS_REQUIRED), duplicate
    split users, PATCH co-presence of amount and splits, filter/search
    query parameters.
  - services/expense_service.py: membership of payer and split users,
    share sum against amount (ledger.validate_split), edit permissions.

Inherits from marshmallow.Schema directly, never ma.Schema.
"""

from __future__ import annotations

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.models.expense import SplitMode
from groupledger.app.schemas.validators import (
    reject_duplicate_ids,
    validate_monetary_amount,
    validate_non_empty_after_trim,
    validate_tags,
)

SORTABLE_FIELDS = ("created_at", "amount", "description")


def _positive_int(**kwargs) -> fields.Int:
    return fields.Int(
        strict=True,
        validate=validate.Range(min=1, error="Must be a positive integer."),
        **kwargs,
    )


def _description_field(**kwargs) -> fields.Str:
    return fields.Str(
        validate=[
            validate.Length(min=1, max=255, error="Description must be between 1 and 255 characters."),
            validate_non_empty_after_trim,
        ],
        **kwargs,
    )


def _split_mode_field(**kwargs) -> fields.Enum:
    return fields.Enum(
        SplitMode,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_MODE},
        **kwargs,
    )


class SplitInputSchema(Schema):
    """One entry of the `splits` array: who owes how much."""

    user_id = _positive_int(required=True)
    share = fields.Decimal(required=True, validate=validate_monetary_amount)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

      split_mode='equal'  → no `splits`; the server divides `amount` over
                            `participant_ids` (default: every member).
      split_mode='custom' → `splits` required; their shares must sum to
                            `amount` within one cent (checked in the service).

    `paid_by_user_id` defaults to the caller when omitted.
    """

    paid_by_user_id = _positive_int(load_default=None, allow_none=True)
    description = _description_field(required=True)
    amount = fields.Decimal(required=True, validate=validate_monetary_amount)
    split_mode = _split_mode_field(load_default=SplitMode.CUSTOM)
    category_id = _positive_int(load_default=None, allow_none=True)
    tags = fields.List(fields.Str(), load_default=list, validate=validate_tags)
    splits = fields.List(fields.Nested(SplitInputSchema), load_default=None)
    participant_ids = fields.List(
        _positive_int(),
        load_default=None,
        validate=validate.Length(min=1, error="participant_ids must not be empty."),
    )

    @validates_schema
    def validate_splits_coherence(self, data: dict, **kwargs) -> None:
        split_mode = data.get("split_mode", SplitMode.CUSTOM)
        splits = data.get("splits")

        if split_mode == SplitMode.EQUAL:
            if splits is not None:
                raise ValidationError({"splits": [ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE]})
            if data.get("participant_ids"):
                reject_duplicate_ids(data["participant_ids"], "participant_ids")
            return

        if not splits:
            raise ValidationError({"splits": [ErrorCode.SPLITS_REQUIRED]})
        if data.get("participant_ids") is not None:
            raise ValidationError(
                {"participant_ids": ["participant_ids is only accepted when split_mode is 'equal'."]}
            )
        reject_duplicate_ids([s["user_id"] for s in splits], "splits")


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id — every field optional.

    Rules (all 400):
      A. split_mode='equal' forbids `splits`; `amount` alone is fine because
         the server recomputes the shares.
      B. split_mode='custom' requires `splits`.
      C. No user twice in `splits` or in `participant_ids`.
      D. `participant_ids` only with an equal split; never next to `splits`.
      E. Otherwise `amount` and `splits` travel together, so the share sum
         can be re-validated against the amount in one step.
    """

    paid_by_user_id = _positive_int()
    description = _description_field()
    amount = fields.Decimal(validate=validate_monetary_amount)
    split_mode = _split_mode_field()
    category_id = _positive_int(allow_none=True)
    tags = fields.List(fields.Str(), validate=validate_tags)
    splits = fields.List(fields.Nested(SplitInputSchema))
    participant_ids = fields.List(_positive_int(), validate=validate.Length(min=1))

    @validates_schema
    def validate_patch_coherence(self, data: dict, **kwargs) -> None:
        split_mode = data.get("split_mode")
        amount = data.get("amount")
        splits = data.get("splits")

        participant_ids = data.get("participant_ids")
        if participant_ids is not None:
            reject_duplicate_ids(participant_ids, "participant_ids")
            if split_mode == SplitMode.CUSTOM or splits is not None:
                raise ValidationError(
                    {"participant_ids": ["participant_ids is only accepted when split_mode is 'equal'."]}
                )

        if split_mode == SplitMode.EQUAL:
            if splits is not None:
                raise ValidationError({"splits": [ErrorCode.SPLITS_SENT_FOR_EQUAL_MODE]})
            return

        if split_mode == SplitMode.CUSTOM and splits is None:
            raise ValidationError({"splits": [ErrorCode.SPLITS_REQUIRED]})

        if splits is not None:
            reject_duplicate_ids([s["user_id"] for s in splits], "splits")

        if amount is not None and splits is None:
            raise ValidationError(
                {"splits": ["splits must be provided when amount is being updated."]}
            )
        if splits is not None and amount is None:
            raise ValidationError(
                {"amount": ["amount must be provided when splits are being updated."]}
            )


# ── Receipts ───────────────────────────────────────────────────────────────

class ReceiptSchema(Schema):
    """
    POST /expenses/:id/receipt

    The file itself is uploaded to external storage by the client; this
    endpoint records where it lives.
    """

    url = fields.Url(required=True, validate=validate.Length(max=500))
    public_id = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))
    filename = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))


# ── Query-string schemas ───────────────────────────────────────────────────

class _PageSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    # Capped by MAX_PAGE_SIZE in the service; None means DEFAULT_PAGE_SIZE.
    limit = fields.Int(load_default=None, validate=validate.Range(min=1))


class ExpenseFilterSchema(_PageSchema):
    """
    GET /groups/:id/expenses/filter

    Every filter is optional and they combine with AND. `tags` is a
    comma-separated list and matches expenses carrying ANY of the tags.
    """

    category_id = fields.Int(validate=validate.Range(min=1))
    min_amount = fields.Decimal()
    max_amount = fields.Decimal()
    start_date = fields.Date()
    end_date = fields.Date()
    search = fields.Str(validate=validate.Length(max=100))
    paid_by = fields.Int(validate=validate.Range(min=1))
    tags = fields.Str()
    sort_by = fields.Str(load_default="created_at", validate=validate.OneOf(SORTABLE_FIELDS))
    sort_order = fields.Str(load_default="desc", validate=validate.OneOf(("asc", "desc")))

    @validates_schema
    def validate_ranges(self, data: dict, **kwargs) -> None:
        low, high = data.get("min_amount"), data.get("max_amount")
        if low is not None and high is not None and low > high:
            raise ValidationError({"min_amount": [ErrorCode.INVALID_AMOUNT_RANGE]})

        start, end = data.get("start_date"), data.get("end_date")
        if start is not None and end is not None and start > end:
            raise ValidationError({"start_date": [ErrorCode.INVALID_DATE_RANGE]})

    @post_load
    def split_tags(self, data: dict, **kwargs) -> dict:
        if "tags" in data:
            data["tags"] = [t.strip() for t in data["tags"].split(",") if t.strip()]
        return data


class ExpenseSearchSchema(_PageSchema):
    """GET /expenses/search?q= — description or tag match across the caller's groups."""

    q = fields.Str(
        required=True,
        validate=validate.Length(min=2, max=100, error=ErrorCode.SEARCH_TOO_SHORT),
    )

    @post_load
    def strip_query(self, data: dict, **kwargs) -> dict:
        data["q"] = data["q"].strip()
        if len(data["q"]) < 2:
            raise ValidationError({"q": [ErrorCode.SEARCH_TOO_SHORT]})
        return data
