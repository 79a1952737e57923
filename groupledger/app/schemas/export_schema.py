"""
schemas/export_schema.py — Query parameters for /export.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields, validate

from groupledger.app.errors import ErrorCode

EXPORT_FORMATS = ("detailed", "summary")


class ExportQuerySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    format = fields.Str(
        load_default="detailed",
        validate=validate.OneOf(EXPORT_FORMATS, error=ErrorCode.INVALID_EXPORT_FORMAT),
    )
