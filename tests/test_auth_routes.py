"""
tests/test_auth_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> auth dependencies ->
AuthService -> SQLite, plus cookie handling and the error envelope. Unit
tests of the route functions would miss the exception handlers and the
Set-Cookie attributes, which are most of the HTTP contract.

Coverage:
  - signup 201 / 409, validation 422 (including passwords over 72 UTF-8 bytes)
  - login 200 with refresh cookie attributes, 401 with identical bodies
  - refresh via cookie, 401 without / after logout
  - logout idempotent, clears cookie
  - logout-all, /me, admin gate
  - health endpoint

Fixtures used (from conftest.py):
  - api_client: (client, service, admin_token)
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.service import AuthService
from core.config import get_settings

COOKIE = get_settings().refresh_cookie_name


def _set_cookie_headers(resp) -> list[str]:
    return [v for k, v in resp.headers.multi_items() if k.lower() == "set-cookie"]


def _signup_and_login(client: TestClient, email: str, password: str = "pw123") -> dict:
    assert client.post("/api/v1/auth/signup", json={"email": email, "password": password, "name": "N"}).status_code == 201
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"access": resp.json()["access_token"], "refresh": resp.cookies.get(COOKIE)}


class TestSignup:
    def test_signup_returns_public_user(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.post("/api/v1/auth/signup", json={"email": "New@Example.com", "password": "pw123", "name": "New"})
        assert resp.status_code == 201
        data = resp.json()
        assert data["email"] == "new@example.com"
        assert data["role"] == "user"
        assert "hashed_password" not in data
        assert "password" not in data

    def test_duplicate_signup_conflict(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        body = {"email": "twice@example.com", "password": "pw123", "name": "Twice"}
        assert client.post("/api/v1/auth/signup", json=body).status_code == 201
        resp = client.post("/api/v1/auth/signup", json={**body, "email": "TWICE@example.com"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_malformed_email_is_validation_error(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.post("/api/v1/auth/signup", json={"email": "not-an-email", "password": "pw123", "name": "X"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_over_byte_limit(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.post("/api/v1/auth/signup", json={"email": "m@x.com", "password": "é" * 60, "name": "M"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

        ok = client.post("/api/v1/auth/signup", json={"email": "m@x.com", "password": "é" * 36, "name": "M"})
        assert ok.status_code == 201
        login = client.post("/api/v1/auth/login", json={"email": "m@x.com", "password": "é" * 36})
        assert login.status_code == 200


class TestLogin:
    def test_login_sets_scoped_httponly_cookie(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        client.post("/api/v1/auth/signup", json={"email": "a@x.com", "password": "pw123", "name": "A"})

        resp = client.post("/api/v1/auth/login", json={"email": "A@X.com", "password": "pw123"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["email"] == "a@x.com"
        assert data["user"]["profile_complete"] is False
        assert "refresh_token" not in data
        assert resp.headers["cache-control"] == "no-store"

        cookie = next(h for h in _set_cookie_headers(resp) if h.startswith(f"{COOKIE}="))
        lowered = cookie.lower()
        assert "httponly" in lowered
        assert "path=/api/v1/auth" in lowered
        assert "max-age=604800" in lowered

    def test_bad_credentials_are_indistinguishable(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        client.post("/api/v1/auth/signup", json={"email": "b@x.com", "password": "right", "name": "B"})

        wrong_pw = client.post("/api/v1/auth/login", json={"email": "b@x.com", "password": "wrong"})
        unknown = client.post("/api/v1/auth/login", json={"email": "nobody@x.com", "password": "right"})

        assert wrong_pw.status_code == unknown.status_code == 401
        assert wrong_pw.json() == unknown.json()
        assert wrong_pw.json()["error"]["code"] == "invalid_credentials"
        assert not _set_cookie_headers(wrong_pw)

    def test_over_long_login_password_is_validation_error(
        self, api_client: tuple[TestClient, AuthService, str]
    ) -> None:
        client, _service, _token = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "n@x.com", "password": "é" * 60})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestRefreshAndLogout:
    def test_refresh_with_cookie(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        tokens = _signup_and_login(client, "c@x.com")

        resp = client.post("/api/v1/auth/refresh")

        assert resp.status_code == 200
        assert resp.json()["access_token"]
        assert resp.headers["cache-control"] == "no-store"
        # No rotation by default: the cookie is left alone.
        assert not _set_cookie_headers(resp)
        assert client.cookies.get(COOKIE) == tokens["refresh"]

    def test_refresh_without_cookie(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.post("/api/v1/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_or_expired_token"

    def test_refresh_with_unknown_token(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        client.cookies.set(COOKIE, "never-issued")
        resp = client.post("/api/v1/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_or_expired_token"

    def test_logout_clears_cookie_and_revokes(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        tokens = _signup_and_login(client, "d@x.com")

        resp = client.post("/api/v1/auth/logout")

        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out."
        cleared = [h for h in _set_cookie_headers(resp) if h.startswith(f"{COOKIE}=")]
        assert cleared and "max-age=0" in cleared[0].lower()

        # Replay the old token explicitly: the session is gone.
        client.cookies.set(COOKIE, tokens["refresh"])
        replay = client.post("/api/v1/auth/refresh")
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "invalid_or_expired_token"

    def test_logout_twice_and_without_cookie(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        tokens = _signup_and_login(client, "e@x.com")
        assert client.post("/api/v1/auth/logout").status_code == 200
        client.cookies.set(COOKIE, tokens["refresh"])
        assert client.post("/api/v1/auth/logout").status_code == 200
        client.cookies.clear()
        assert client.post("/api/v1/auth/logout").status_code == 200


class TestAuthenticatedRoutes:
    def test_me_with_bearer_token(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, admin_token = api_client
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {admin_token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "admin@example.com"
        assert resp.json()["role"] == "admin"

    def test_me_without_token(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_refresh_token_is_not_a_bearer_credential(
        self, api_client: tuple[TestClient, AuthService, str]
    ) -> None:
        client, _service, _token = api_client
        tokens = _signup_and_login(client, "f@x.com")
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['refresh']}"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_invalid"

    def test_logout_all(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, service, _token = api_client
        tokens = _signup_and_login(client, "g@x.com")
        service.login("g@x.com", "pw123")  # a second device

        resp = client.post("/api/v1/auth/logout-all", headers={"Authorization": f"Bearer {tokens['access']}"})

        assert resp.status_code == 200
        assert resp.json()["sessions_closed"] == 2
        client.cookies.set(COOKIE, tokens["refresh"])
        assert client.post("/api/v1/auth/refresh").status_code == 401

    def test_admin_gate(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, admin_token = api_client
        tokens = _signup_and_login(client, "h@x.com")

        as_user = client.get("/api/v1/auth/admin/ping", headers={"Authorization": f"Bearer {tokens['access']}"})
        as_admin = client.get("/api/v1/auth/admin/ping", headers={"Authorization": f"Bearer {admin_token}"})

        assert as_user.status_code == 403
        assert as_user.json()["error"]["code"] == "forbidden"
        assert as_admin.status_code == 200


class TestHealth:
    def test_health_no_auth_required(self, api_client: tuple[TestClient, AuthService, str]) -> None:
        client, _service, _token = api_client
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
