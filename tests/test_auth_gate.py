"""
tests/test_auth_gate.py -- Token source precedence and auth failures.

The gate resolves a token from, in order: the server session behind the
session cookie, the token cookie, then the Authorization: Bearer header.

Covers:
  - no credential at all -> 401 unauthenticated
  - Authorization header with the wrong scheme or no token -> 401 malformed_auth
  - bad or expired token -> 401 invalid_token
  - the session's token wins over a different valid Bearer header
  - GET /verify-token only looks at the header
  - repeated authenticated requests leave the store untouched
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.main import app


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestGateFailures:
    def test_no_credentials(self, client: TestClient) -> None:
        resp = client.get("/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    @pytest.mark.parametrize("header", ["Token abc", "Bearer ", "Bearer", "bearer abc"])
    def test_malformed_header(self, client: TestClient, header: str) -> None:
        resp = client.get("/me", headers={"Authorization": header})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "malformed_auth"

    def test_garbage_token(self, client: TestClient) -> None:
        resp = client.get("/me", headers=_bearer("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_expired_token(self, client: TestClient, signup) -> None:
        uid = signup().json()["user"]["id"]
        client.cookies.clear()
        expired = app.state.tokens.issue(uid, "ada@example.com", expires_in=timedelta(seconds=-1))
        resp = client.get("/me", headers=_bearer(expired))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_token"


class TestGatePrecedence:
    def test_bearer_header_alone_authenticates(self, client: TestClient, signup) -> None:
        uid = signup().json()["user"]["id"]
        client.cookies.clear()
        token = app.state.tokens.issue(uid, "ada@example.com")
        resp = client.get("/me", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["id"] == uid

    def test_token_cookie_authenticates(self, client: TestClient, signup) -> None:
        uid = signup().json()["user"]["id"]
        # Signup sets only the token cookie, no server session.
        assert "session" not in client.cookies
        resp = client.get("/me")
        assert resp.status_code == 200
        assert resp.json()["id"] == uid

    def test_session_wins_over_bearer_header(self, client: TestClient, logged_in) -> None:
        ada_id = logged_in["user"]["id"]
        grace = app.state.session_manager.create_user("Grace", "Hopper", "grace@example.com", "secret123")
        grace_token = app.state.tokens.issue(grace.id, grace.email)

        resp = client.get("/me", headers=_bearer(grace_token))
        assert resp.status_code == 200
        assert resp.json()["id"] == ada_id

    def test_malformed_header_ignored_when_session_present(self, client: TestClient, logged_in) -> None:
        resp = client.get("/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 200
        assert resp.json()["id"] == logged_in["user"]["id"]


class TestVerifyToken:
    def test_valid_bearer(self, client: TestClient, logged_in) -> None:
        resp = client.get("/verify-token", headers=_bearer(logged_in["token"]))
        assert resp.status_code == 200
        body = resp.json()
        assert body["valid"] is True
        assert body["user"]["id"] == logged_in["user"]["id"]
        assert body["user"]["email"] == "ada@example.com"

    def test_cookies_are_ignored(self, client: TestClient, logged_in) -> None:
        assert "token" in client.cookies
        resp = client.get("/verify-token")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_malformed_header(self, client: TestClient) -> None:
        resp = client.get("/verify-token", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "malformed_auth"


def test_gate_does_not_write(client: TestClient, logged_in) -> None:
    store = app.state.user_store
    uid = logged_in["user"]["id"]
    before = (store.get_by_id(uid), store.list_devices(uid))
    for _ in range(3):
        assert client.get("/me").status_code == 200
    assert (store.get_by_id(uid), store.list_devices(uid)) == before
