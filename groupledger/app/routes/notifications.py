"""
routes/notifications.py — The caller's in-app notifications.

Endpoints (url_prefix=/api/v1/notifications):
  GET    /notifications?unread=true   → 200  newest first + unread_count
  PATCH  /notifications/:id/read      → 200
  PATCH  /notifications/read-all      → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import notification_service

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("/", methods=["GET"])
@require_auth
def list_notifications():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    result = notification_service.list_notifications(
        user_id=g.user_id,
        session=db.session,
        unread_only=unread_only,
    )
    return jsonify({"data": result, "warnings": []}), 200


@notifications_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@require_auth
def mark_as_read(notification_id: int):
    result = notification_service.mark_as_read(notification_id, g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@notifications_bp.route("/read-all", methods=["PATCH"])
@require_auth
def mark_all_as_read():
    updated = notification_service.mark_all_as_read(g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"updated": updated}, "warnings": []}), 200
