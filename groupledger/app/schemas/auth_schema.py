"""
schemas/auth_schema.py — Request schemas for /auth.

Shape only. Whether the email is already registered is a DB question and
is answered in auth_service.register_user (DUPLICATE_EMAIL, 409).
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, pre_load, validate, validates

from groupledger.app.schemas.validators import validate_non_empty_after_trim


def _normalise_email(data: dict) -> dict:
    if isinstance(data.get("email"), str):
        data = {**data, "email": data["email"].strip().lower()}
    return data


class RegisterSchema(Schema):
    """
    POST /auth/register

      name     : 1–100 chars, not blank
      email    : valid email, stored lower-cased
      password : min 8 chars, at least one letter and one digit
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            validate_non_empty_after_trim,
        ],
    )

    email = fields.Email(required=True, validate=validate.Length(max=255))

    password = fields.Str(required=True, load_only=True)

    avatar_url = fields.Url(load_default=None, allow_none=True)

    @pre_load
    def normalise(self, data, **kwargs):
        return _normalise_email(data)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """POST /auth/login. Credentials are checked in auth_service (401)."""

    email = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)

    @pre_load
    def normalise(self, data, **kwargs):
        return _normalise_email(data)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and /auth/logout: the raw refresh token."""

    refresh_token = fields.Str(required=True)
