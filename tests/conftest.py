"""
tests/conftest.py -- Shared fixtures for Folio unit and integration tests.

This module provides:
  - store: a private in-memory AuthStore per test
  - make_account(): insert an account with a real bcrypt hash
  - _make_test_store(): named shared-memory AuthStore for TestClient tests
  - _patch_lifespan(): wires that store into app.state, bypassing real startup
  - api_client: module-scoped (client, store) pair
  - login(): POST /api/login and return the bearer token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
TestClient because route handlers run in a thread pool. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread. The
named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

Environment must be set before any auth/core import: DEBUG so get_settings()
auto-generates SECRET_KEY instead of raising, and generous rate limits so a
test module can log in more than ten times a minute.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("RESET_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_services
from auth.models import Account, AccountStatus, Role
from auth.passwords import hash_password
from auth.store import AuthStore

PASSWORD = "shelf42books"


def make_account(
    store: AuthStore,
    email: str,
    role: Role = Role.student,
    password: str = PASSWORD,
    status: AccountStatus = AccountStatus.active,
    name: str | None = None,
) -> int:
    """Insert an account directly through the store and return its id."""
    return store.create_account(
        Account(
            email=email,
            name=name or email.split("@")[0].title(),
            role=role,
            hashed_password=hash_password(password),
            status=status,
        )
    )


def login(client: TestClient, email: str, password: str = PASSWORD, user_agent: str | None = None) -> str:
    """Log in through the API and return the bearer token."""
    headers = {"User-Agent": user_agent} if user_agent else {}
    resp = client.post("/api/login", json={"email": email, "password": password}, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Unit-test store
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    """A private in-memory store. Single-threaded use only."""
    s = AuthStore(db_url="sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Integration-test app
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> AuthStore:
    """Create an isolated named shared-memory store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    return AuthStore(db_url=f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: AuthStore):
    """Return an async context manager that replaces the real lifespan.

    Services are wired exactly as in production; only the store differs and
    the OAuth registry is mocked. The purge_task is a long-sleeping coroutine
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, store)
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AuthStore], None, None]:
    """Yield (client, store) for API integration tests.

    One database per test module. Tests that need isolation from each other
    create accounts with distinct emails.
    """
    store = _make_test_store(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    store.close()
