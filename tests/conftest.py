"""
tests/conftest.py -- Shared test fixtures for the account service.

This module provides:
  - make_test_store(): an isolated named shared-memory UserStore
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - client: TestClient over the real app with a fresh store per test
  - signup / login / logged_in: request helper fixtures
  - reset_rate_limits: autouse, clears the shared limiter between tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Env vars must be set before any api/auth/core import so get_settings() sees
a usable signing key on its first (cached) call.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET", "test-signing-key-0123456789-abcdefghij")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, configure_app_state
from auth.store import UserStore
from core.config import get_settings

DEFAULT_PASSWORD = "secret123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store() -> UserStore:
    """Create an isolated named shared-memory UserStore.

    A uuid suffix keeps every store distinct, so tests never see each other's
    rows even though the in-memory databases live in one process.
    """
    name = f"test_accounts_{uuid.uuid4().hex}"
    return UserStore(db_url=f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: UserStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        configure_app_state(app, get_settings(), store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_rate_limits() -> Generator[None, None, None]:
    """Every test starts with empty rate-limit counters."""
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_test_store()
    yield s
    s.close()


@pytest.fixture
def client(store: UserStore) -> Generator[TestClient, None, None]:
    """TestClient over the real app, backed by this test's own store.

    The client keeps cookies between requests like a browser, so a login in
    one call authenticates the next ones.
    """
    app.router.lifespan_context = _patch_lifespan(store)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


# ---------------------------------------------------------------------------
# Request helpers -- exposed as fixtures so test modules need no imports
# ---------------------------------------------------------------------------


@pytest.fixture
def signup(client: TestClient):
    """Return a function that POSTs /signup and returns the raw response."""

    def _signup(email: str = "ada@example.com", password: str = DEFAULT_PASSWORD, first_name: str = "Ada", last_name: str = "Lovelace"):
        body = {"firstName": first_name, "lastName": last_name, "email": email, "password": password}
        return client.post("/signup", json=body)

    return _signup


@pytest.fixture
def login(client: TestClient):
    """Return a function that POSTs /login and returns the raw response."""

    def _login(email: str = "ada@example.com", password: str = DEFAULT_PASSWORD, **kwargs):
        return client.post("/login", json={"email": email, "password": password}, **kwargs)

    return _login


@pytest.fixture
def logged_in(client: TestClient, signup, login) -> dict:
    """Sign up and log in the default user. Returns the login response body.

    The client now holds both the token and the session cookie.
    """
    assert signup().status_code == 201
    resp = login()
    assert resp.status_code == 200, resp.text
    return resp.json()
