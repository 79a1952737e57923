"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/register  → 201
  POST /auth/login     → 200
  POST /auth/refresh   → 200
  POST /auth/logout    → 200
  GET  /auth/me        → 200
  GET  /users/by-email/:email → 200

Error cases:
  DUPLICATE_EMAIL       409 — email already registered (case-insensitive)
  INVALID_CREDENTIALS   401 — wrong password or unknown email
  REFRESH_TOKEN_INVALID 401 — invalid/revoked refresh token
  TOKEN_MISSING         401 — no Authorization header
  TOKEN_INVALID         401 — malformed token

Middleware and credential failures are 401. Membership failures (403) live
in the group, expense and settlement test files.
"""

from __future__ import annotations

from .conftest import auth_headers, register


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_success_returns_201_with_tokens(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice",
            "email": "alice@test.com",
            "password": "Password1",
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert "access_token"  in data
        assert "refresh_token" in data
        assert data["user"]["name"]  == "Alice"
        assert data["user"]["email"] == "alice@test.com"
        assert isinstance(data["user"]["id"], int)
        # password_hash must NEVER appear in the response
        assert "password"      not in data["user"]
        assert "password_hash" not in data["user"]

    def test_duplicate_email_is_case_insensitive(self, client):
        register(client, "Alice", email="shared@test.com")
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice Two", "email": "SHARED@test.com", "password": "Password1",
        })
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert error["field"] == "email"

    def test_weak_password_no_digit_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice", "email": "a@b.com", "password": "password",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["field"] == "password"

    def test_invalid_email_format_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "name": "Alice", "email": "notanemail", "password": "Password1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"

    def test_missing_fields_return_400(self, client):
        resp = client.post("/api/v1/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_200_with_tokens(self, client):
        register(client, "Alice")
        resp = client.post("/api/v1/auth/login", json={
            "email": "Alice@Test.com", "password": "Password1",
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert "access_token"  in data
        assert "refresh_token" in data
        assert data["user"]["name"] == "Alice"

    def test_wrong_password_returns_401_invalid_credentials(self, client):
        register(client, "Alice")
        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "WrongPass1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email_returns_same_error(self, client):
        resp = client.post("/api/v1/auth/login", json={
            "email": "ghost@test.com", "password": "Password1",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"


class TestLoginThrottle:

    BAD_LOGIN = {"email": "alice@test.com", "password": "WrongPass1"}

    def test_sixth_failed_login_returns_429(self, client):
        register(client, "Alice")
        for _ in range(5):
            resp = client.post("/api/v1/auth/login", json=self.BAD_LOGIN)
            assert resp.status_code == 401

        resp = client.post("/api/v1/auth/login", json=self.BAD_LOGIN)
        assert resp.status_code == 429
        assert resp.get_json()["error"]["code"] == "RATE_LIMITED"

    def test_locked_out_client_cannot_log_in_with_right_password(self, client):
        register(client, "Alice")
        for _ in range(5):
            client.post("/api/v1/auth/login", json=self.BAD_LOGIN)

        resp = client.post("/api/v1/auth/login", json={
            "email": "alice@test.com", "password": "Password1",
        })
        assert resp.status_code == 429

    def test_successful_logins_are_not_counted(self, client):
        register(client, "Alice")
        for _ in range(7):
            resp = client.post("/api/v1/auth/login", json={
                "email": "alice@test.com", "password": "Password1",
            })
            assert resp.status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh and /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestRefreshAndLogout:

    def test_refresh_returns_new_access_token(self, client):
        data = register(client, "Alice")

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert resp.status_code == 200
        new_token = resp.get_json()["data"]["access_token"]
        assert new_token != data["access_token"]

        me = client.get("/api/v1/auth/me", headers=auth_headers(new_token))
        assert me.status_code == 200

    def test_invalid_refresh_token_returns_401(self, client):
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "not_a_real_token"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_revokes_refresh_token(self, client):
        data = register(client, "Alice")

        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": data["refresh_token"]},
            headers=auth_headers(data["access_token"]),
        )
        assert resp.status_code == 200

        again = client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert again.status_code == 401
        assert again.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_with_another_users_token_returns_401(self, client):
        alice = register(client, "Alice")
        bob = register(client, "Bob")

        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": bob["refresh_token"]},
            headers=auth_headers(alice["access_token"]),
        )
        assert resp.status_code == 401

    def test_logout_requires_access_token(self, client):
        data = register(client, "Alice")
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": data["refresh_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me and /users/by-email
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_current_user(self, client):
        data = register(client, "Alice")
        resp = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == data["user"]["id"]

    def test_missing_header_returns_token_missing(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_garbage_token_returns_token_invalid(self, client):
        resp = client.get("/api/v1/auth/me", headers=auth_headers("abc.def.ghi"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_lookup_by_email(self, client):
        alice = register(client, "Alice")
        bob = register(client, "Bob")
        resp = client.get("/api/v1/users/by-email/bob@test.com", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == bob["user"]["id"]

        missing = client.get("/api/v1/users/by-email/ghost@test.com", headers=auth_headers(alice["access_token"]))
        assert missing.status_code == 404
        assert missing.get_json()["error"]["code"] == "USER_NOT_FOUND"
