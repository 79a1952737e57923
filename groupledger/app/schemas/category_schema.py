"""
schemas/category_schema.py — Request schemas for /categories.

Name uniqueness per user is checked in category_service (DUPLICATE_CATEGORY, 409).
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from groupledger.app.schemas.validators import validate_non_empty_after_trim

_name_validators = [
    validate.Length(min=1, max=50, error="Category name must be between 1 and 50 characters."),
    validate_non_empty_after_trim,
]


class CreateCategorySchema(Schema):
    name = fields.Str(required=True, validate=_name_validators)
    description = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=255))


class PatchCategorySchema(Schema):
    name = fields.Str(validate=_name_validators)
    description = fields.Str(allow_none=True, validate=validate.Length(max=255))
