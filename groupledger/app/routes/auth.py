"""
routes/auth.py — Authentication route handlers.

Each handler parses the body, validates it with a schema, calls ONE service
function, commits and returns {"data": ..., "warnings": []}. AppError and
ValidationError propagate to the handlers registered in app/__init__.py.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register  → 201
  POST   /auth/login     → 200
  POST   /auth/refresh   → 200
  POST   /auth/logout    → 200
  GET    /auth/me        → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import configured_limit, db, failed_request, limiter
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from groupledger.app.services import auth_service

auth_bp = Blueprint("auth", __name__)

# One counter across register, login and refresh. Only failed attempts count.
_auth_limit = limiter.shared_limit(
    configured_limit("AUTH_RATE_LIMIT"),
    scope="auth",
    deduct_when=failed_request,
)


@auth_bp.route("/register", methods=["POST"])
@_auth_limit
def register():
    """POST /auth/register — Create an account and return its first token pair."""
    data = RegisterSchema().load(request.get_json(silent=True) or {})
    result = auth_service.register_user(
        name=data["name"],
        email=data["email"],
        password=data["password"],
        session=db.session,
        avatar_url=data.get("avatar_url"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
@_auth_limit
def login():
    data = LoginSchema().load(request.get_json(silent=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
@_auth_limit
def refresh():
    """POST /auth/refresh — Exchange a refresh token for a new access token."""
    data = RefreshTokenSchema().load(request.get_json(silent=True) or {})
    result = auth_service.refresh_access_token(data["refresh_token"], db.session)
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    data = RefreshTokenSchema().load(request.get_json(silent=True) or {})
    auth_service.logout_user(data["refresh_token"], g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    result = auth_service.get_user(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
