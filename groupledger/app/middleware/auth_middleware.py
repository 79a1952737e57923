"""
middleware/auth_middleware.py — JWT authentication decorator.

@require_auth authenticates the request and stores the caller's id on
flask.g.user_id. It answers "who is calling?" only. Whether that user may
touch a group, expense or settlement is decided in the service layer,
which receives the id as a plain int.

Error codes (all 401):
  TOKEN_MISSING  no Authorization header
  TOKEN_INVALID  malformed header, bad signature, wrong token type, bad `sub`
  TOKEN_EXPIRED  signature fine but `exp` is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from groupledger.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

        @groups_bp.get("/")
        @require_auth
        def list_groups():
            user_id = g.user_id
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _invalid(message: str) -> AppError:
    return AppError(ErrorCode.TOKEN_INVALID, message, 401)


def authenticate_request() -> int:
    """
    Validates the Bearer token of the current request and returns its user id.

    Raises:
        AppError: 401 with TOKEN_MISSING, TOKEN_INVALID or TOKEN_EXPIRED.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    scheme, _, raw_token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not raw_token or " " in raw_token.strip():
        raise _invalid("Authorization header must be in the format: Bearer <token>.")

    try:
        payload = jwt.decode(
            raw_token.strip(),
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        raise _invalid("The access token is invalid or has been tampered with.")

    # Refresh tokens are opaque strings, but guard against a JWT minted for
    # another purpose with the same secret.
    if payload.get("type", "access") != "access":
        raise _invalid("The supplied token is not an access token.")

    try:
        return int(payload["sub"])
    except KeyError:
        raise _invalid("The access token is missing the required 'sub' claim.")
    except (TypeError, ValueError):
        raise _invalid("The 'sub' claim in the access token is not a valid user ID.")
