"""
tests/conftest.py -- Shared test fixtures for TourGate unit and integration tests.

This module provides:
  - settings / store / clock / verifier / service / guard: unit-level fixtures
    built on a fresh in-memory SQLite store per test
  - RecordingDelivery: a fake reset-link delivery collaborator
  - api_client: TestClient with isolated stores and a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixture because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.guard import SessionGuard
from auth.models import Principal
from auth.service import AccountService
from auth.store import UserStore
from auth.tokens import CredentialVerifier
from core.config import Settings, get_settings

TEST_SECRET = "t" * 64


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDelivery:
    """Stands in for the email collaborator; records (email, token) pairs."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with = fail_with

    def __call__(self, principal: Principal, token: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((principal.email, token))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key=TEST_SECRET, debug=False, _env_file=None)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    # Start an hour in the past so tests can move forward without issuing
    # tokens that are already expired by wall-clock time.
    return FakeClock(datetime.now(timezone.utc) - timedelta(hours=1))


@pytest.fixture
def verifier() -> CredentialVerifier:
    return CredentialVerifier(rounds=4)


@pytest.fixture
def service(store, settings, verifier, clock) -> AccountService:
    return AccountService(store, settings, verifier=verifier, clock=clock)


@pytest.fixture
def guard(service, store) -> SessionGuard:
    return SessionGuard(service.codec, store)


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, service: AccountService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state through the same
    wire_services() the real lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, user_store, service)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc) - timedelta(hours=1))


@pytest.fixture(scope="module")
def api_client(api_clock) -> Generator[tuple[TestClient, UserStore, AccountService], None, None]:
    """Yield (client, user_store, service) for API integration tests.

    The service runs on api_clock so tests control token iat and
    password_changed_at. Rate limiting is switched off so the
    login-heavy tests do not trip the per-IP counter.
    """
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=db_url)
    service = AccountService(user_store, get_settings(), verifier=CredentialVerifier(rounds=4), clock=api_clock)

    app.router.lifespan_context = _patch_lifespan(user_store, service)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, service

    limiter.enabled = True
    user_store.close()
