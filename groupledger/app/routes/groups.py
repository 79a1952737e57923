"""
routes/groups.py — Group and membership route handlers.

Parse, validate, call ONE service, commit, then send the ledger signal and
return the envelope. Signals go out only after the commit succeeded.

Endpoints (url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group (+ initial members)
  GET    /groups                        → 200  list caller's groups
  GET    /groups/:id                    → 200  group + members
  DELETE /groups/:id                    → 200  delete an empty group (creator only)
  POST   /groups/:id/members            → 201  add member (creator only)
  DELETE /groups/:id/members/:uid       → 200  remove member (creator, or self)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app import signals
from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from groupledger.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — The caller becomes creator and first member."""
    data = CreateGroupSchema().load(request.get_json(silent=True) or {})
    result = group_service.create_group(
        name=data["name"],
        creator_id=g.user_id,
        session=db.session,
        description=data.get("description"),
        member_ids=data["member_ids"],
    )
    db.session.commit()
    signals.emit(signals.group_created, current_app._get_current_object(), result["id"], result)
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    result = group_service.list_groups(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Only while the group has no expenses or settlements."""
    member_ids = group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    payload = {"deleted": True, "group_id": group_id, "member_ids": member_ids}
    signals.emit(signals.group_deleted, current_app._get_current_object(), group_id, payload)
    return jsonify({"data": {"deleted": True, "group_id": group_id}, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    """POST /groups/:id/members — Body carries either user_id or email."""
    data = AddMemberSchema().load(request.get_json(silent=True) or {})
    result = group_service.add_member(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        target_user_id=data.get("user_id"),
        email=data.get("email"),
    )
    db.session.commit()
    signals.emit(signals.member_added, current_app._get_current_object(), group_id, result)
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    group_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=target_uid,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200
