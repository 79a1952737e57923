"""
services/auth_service.py — Registration, login and token lifecycle.

  - Access token: JWT (HS256), sub = user id as str, type = "access".
  - Refresh token: random hex string handed to the client once; the DB
    keeps only its SHA-256 digest. Revoked on logout, not rotated on use.
  - Passwords: bcrypt with BCRYPT_LOG_ROUNDS. Never stored or logged raw.

current_app.config is read for secrets and lifetimes only. That is the one
Flask dependency in this service, which is why it is covered by the
integration tests rather than tests/unit/.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.refresh_token import RefreshToken
from groupledger.app.models.user import User

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes even for timezone=True columns."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _create_access_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "access",
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        # Two tokens minted in the same second still differ.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    raw_token = secrets.token_hex(32)
    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
    ))
    session.flush()
    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def _find_refresh_token(raw_refresh_token: str, session: Session) -> RefreshToken | None:
    return session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()


def build_user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        name: str,
        email: str,
        password: str,
        session: Session,
        avatar_url: str | None = None,
) -> dict:
    """
    Creates an account and logs it in.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    email = email.strip().lower()
    existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    password_hash = bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12)),
    ).decode("utf-8")

    user = User(name=name.strip(), email=email, password_hash=password_hash, avatar_url=avatar_url)
    session.add(user)
    session.flush()
    session.refresh(user)

    logger.info("registered user %s", user.id)
    return {"user": build_user_dict(user), **_build_token_pair(user.id, session)}


def login_user(email: str, password: str, session: Session) -> dict:
    """
    Raises:
      AppError(INVALID_CREDENTIALS, 401) — same error for an unknown email
      and a wrong password, so accounts cannot be enumerated.
    """
    user = session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()

    if user is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    return {"user": build_user_dict(user), **_build_token_pair(user.id, session)}


def refresh_access_token(raw_refresh_token: str, session: Session) -> dict:
    """
    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — unknown, revoked or expired.

    Returns: {"access_token": "..."}
    """
    record = _find_refresh_token(raw_refresh_token, session)
    now = datetime.now(timezone.utc)

    if record is None or record.revoked or _as_utc(record.expires_at) <= now:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            401,
        )

    return {"access_token": _create_access_token(record.user_id)}


def logout_user(raw_refresh_token: str, user_id: int, session: Session) -> None:
    """
    Revokes the caller's refresh token. A token belonging to someone else
    is treated as unknown.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401)
    """
    record = _find_refresh_token(raw_refresh_token, session)

    if record is None or record.revoked or record.user_id != user_id:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    record.revoked = True
    session.flush()


def get_user(user_id: int, session: Session) -> dict:
    """
    Raises:
      AppError(USER_NOT_FOUND, 404) — e.g. the account behind a still-valid
      access token no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(ErrorCode.USER_NOT_FOUND, f"User {user_id} not found.", 404)
    return build_user_dict(user)


def find_user_by_email(email: str, session: Session) -> dict:
    user = session.execute(
        select(User).where(User.email == email.strip().lower())
    ).scalar_one_or_none()
    if user is None:
        raise AppError(ErrorCode.USER_NOT_FOUND, f"No user with email '{email}'.", 404)
    return build_user_dict(user)
