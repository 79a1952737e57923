"""
schemas/group_schema.py — Request schemas for groups and memberships.

Existence and permission checks (USER_NOT_FOUND, ALREADY_MEMBER, FORBIDDEN)
need the database and live in group_service.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from groupledger.app.schemas.validators import validate_non_empty_after_trim

_user_id_field = fields.Int(
    strict=True,
    validate=validate.Range(min=1, error="user_id must be a positive integer."),
)


class CreateGroupSchema(Schema):
    """
    POST /groups

    `member_ids` adds users other than the creator at creation time; the
    creator is always added and may be omitted from the list.
    """

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=100, error="Group name must be between 1 and 100 characters."),
            validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )

    member_ids = fields.List(_user_id_field, load_default=list)


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Identify the user either by id or by email; exactly one is required.
    """

    user_id = fields.Int(
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )
    email = fields.Email()

    @validates_schema
    def validate_one_identifier(self, data: dict, **kwargs) -> None:
        if ("user_id" in data) == ("email" in data):
            raise ValidationError(
                "Provide exactly one of user_id or email.",
                field_name="user_id",
            )
