"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

  - The app is created once per session with create_app("testing"), which
    points at TEST_DATABASE_URL or, by default, an in-memory SQLite database.
  - Tables are created once via db.create_all() at session start.
  - After each test every row is deleted, children before parents, so tests
    are isolated.
  - Rate-limit counters are cleared after each test as well.

Helper functions (not fixtures) cover the common setup calls:
  - register(client, ...)    → dict with user + tokens
  - login(client, ...)       → dict with user + tokens
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)  → group dict
  - add_member(...)          → HTTP response
  - make_expense(...)        → HTTP response
  - settle(...)              → HTTP response

They are plain functions so a test can call them with any arguments.
"""

from __future__ import annotations

import pytest

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.app.extensions import limiter


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    # Flask-SQLAlchemy keeps "sqlite://" on one shared connection (StaticPool).
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.session.remove()
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows and resets rate-limit counters after every test."""
    yield

    with app.app_context():
        limiter.reset()
        _db.session.rollback()
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


@pytest.fixture
def client(app):
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    name: str = "alice",
    email: str | None = None,
    password: str = "Password1",
) -> dict:
    """
    Registers a new user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    if email is None:
        email = f"{name.lower()}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str, password: str = "Password1") -> dict:
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_group(
    client,
    token: str,
    name: str = "Test Group",
    member_ids: list[int] | None = None,
) -> dict:
    """Creates a group; the token owner becomes creator and first member."""
    payload: dict = {"name": name}
    if member_ids is not None:
        payload["member_ids"] = member_ids
    resp = client.post(
        "/api/v1/groups/",
        json=payload,
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, user_id: int):
    """Adds a user to a group (creator token required). Returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    amount: str,
    splits: list[dict] | None = None,
    paid_by_user_id: int | None = None,
    description: str = "Test Expense",
    split_mode: str = "custom",
    **extra,
):
    """
    Creates an expense and returns the HTTP response.
    For split_mode='equal' leave `splits` as None; the server computes them.
    For split_mode='custom' pass splits as a list of {user_id, share} dicts.
    """
    payload: dict = {
        "description": description,
        "amount": amount,
        "split_mode": split_mode,
        **extra,
    }
    if paid_by_user_id is not None:
        payload["paid_by_user_id"] = paid_by_user_id
    if splits is not None:
        payload["splits"] = splits

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def settle(
    client,
    token: str,
    group_id: int,
    to_user_id: int,
    amount: str,
    expense_id: int | None = None,
    **extra,
):
    payload: dict = {"to_user_id": to_user_id, "amount": amount, **extra}
    if expense_id is not None:
        payload["expense_id"] = expense_id
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json=payload,
        headers=auth_headers(token),
    )


def setup_trio(client):
    """Alice (creator), Bob and Carol in one group."""
    alice = register(client, "Alice")
    bob = register(client, "Bob")
    carol = register(client, "Carol")
    group = make_group(
        client,
        alice["access_token"],
        member_ids=[bob["user"]["id"], carol["user"]["id"]],
    )
    return alice, bob, carol, group
