"""
schemas/validators.py — Field validators shared by the request schemas.

Kept free of Flask and SQLAlchemy so tests/unit/ can exercise every schema
without an application context.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import ValidationError

from groupledger.app.errors import ErrorCode


def validate_monetary_amount(value: Decimal) -> None:
    """
    Amounts must be strictly positive with at most 2 decimal places.

    More than 2 places is REJECTED with INVALID_AMOUNT_PRECISION, never
    rounded: Decimal("10.123").as_tuple().exponent == -3.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def validate_non_empty_after_trim(value: str) -> None:
    """validate.Length(min=1) lets "   " through; this does not."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def validate_tags(value: list[str]) -> None:
    if len(value) > 10:
        raise ValidationError("At most 10 tags may be attached to an expense.")
    for tag in value:
        if not tag.strip():
            raise ValidationError("Tags must not be blank.")
        if len(tag) > 30:
            raise ValidationError("Each tag must be at most 30 characters.")


def reject_duplicate_ids(ids: list[int], field: str) -> None:
    if len(ids) != len(set(ids)):
        raise ValidationError({field: [ErrorCode.DUPLICATE_SPLIT_USER]})
