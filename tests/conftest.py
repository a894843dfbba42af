"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - FakeClock: a settable clock injected into TokenIssuer and SessionStore
  - engine / credentials / sessions / issuer / service: the auth stack wired
    against an isolated SQLite file per test
  - _patch_lifespan(): wires a test AuthService into app.state, bypassing
    the real startup
  - api_client: TestClient plus an admin access token for route tests

Design: each test gets its own SQLite file under tmp_path. A file database
(rather than :memory:) lets several threads open their own connections --
TestClient runs sync handlers on a threadpool, and the concurrent signup test
writes from many threads at once.

bcrypt runs at cost 4 in tests; the production default of 12 would make the
suite needlessly slow without testing anything extra.

The DEBUG env var must be set before any api/ or core/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import CredentialStore, create_db_engine
from auth.tokens import TokenIssuer
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
ACCESS_TTL = timedelta(minutes=15)
REFRESH_TTL = timedelta(days=7)


class FakeClock:
    """Callable clock frozen at a chosen instant until advanced."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Auth stack fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def hasher() -> Generator[PasswordHasher, None, None]:
    h = PasswordHasher(rounds=4, max_workers=4)
    yield h
    h.shutdown()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def engine(db_url):
    e = create_db_engine(db_url)
    yield e
    e.dispose()


@pytest.fixture
def credentials(engine, hasher) -> CredentialStore:
    return CredentialStore(engine, hasher)


@pytest.fixture
def sessions(engine, clock) -> SessionStore:
    return SessionStore(engine, clock=clock)


@pytest.fixture
def secret_key() -> str:
    return TEST_SECRET


@pytest.fixture
def issuer(clock, secret_key) -> TokenIssuer:
    return TokenIssuer(secret_key, ACCESS_TTL, REFRESH_TTL, clock=clock)


@pytest.fixture
def service(credentials, issuer, sessions) -> AuthService:
    return AuthService(credentials, issuer, sessions)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService, issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so routes hit the
    isolated test database instead of the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.token_issuer = issuer
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture
def api_client(engine, hasher) -> Generator[tuple[TestClient, AuthService, str], None, None]:
    """Yield (client, service, admin_token) for route tests.

    Runs on the real clock: TestClient requests happen in real time, so the
    issuer and session store must agree with it. The admin account
    (admin@example.com / adminpass123) exists before the client starts.
    """
    settings = get_settings()
    issuer = TokenIssuer.from_settings(settings)
    service = AuthService(CredentialStore(engine, hasher), issuer, SessionStore(engine))

    admin = service.credentials.register("admin@example.com", "adminpass123", "Admin", role=Role.ADMIN)
    admin_token = issuer.issue_access(admin).token

    app.router.lifespan_context = _patch_lifespan(service, issuer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service, admin_token
