"""
schemas/settlement_schema.py — Request schema for recording a settlement.

Only the shape is checked here. Everything that decides whether the
settlement may be recorded (self-settlement, membership, expense scope,
overpayment) is the ledger engine's job, reached through
settlement_service.create_settlement.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from groupledger.app.schemas.validators import validate_monetary_amount

_positive_id = validate.Range(min=1, error="Must be a positive integer.")


class CreateSettlementSchema(Schema):
    """
    POST /groups/:id/settlements

      from_user_id : optional, defaults to the caller in the service
      to_user_id   : required
      amount       : positive, at most 2 decimal places
      expense_id   : optional; ties the payment to one expense
      note         : optional free text
    """

    from_user_id = fields.Int(strict=True, load_default=None, allow_none=True, validate=_positive_id)
    to_user_id = fields.Int(required=True, strict=True, validate=_positive_id)
    amount = fields.Decimal(required=True, validate=validate_monetary_amount)
    expense_id = fields.Int(strict=True, load_default=None, allow_none=True, validate=_positive_id)
    note = fields.Str(load_default="", validate=validate.Length(max=255))
