"""
tests/conftest.py -- Shared test fixtures for Tokenward.

This module provides:
  - FakeClock: a controllable clock shared by issuer, validator and registry
  - make_service(): builds an AuthService on a given DB URL and clock
  - service / clock: function-scoped engine fixtures on plain in-memory SQLite
  - api_client: TestClient with an admin token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
TestClient because route handlers run in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

Environment must be set before any project import: get_settings() is read at
import time by api/ modules. SECRET_KEY is pinned so every Settings instance
(including ones created after get_settings.cache_clear()) signs alike;
BCRYPT_ROUNDS=4 keeps hashing fast; rate limits are relaxed so the suite
never trips them.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.revocation import RevocationRegistry
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import TokenIssuer, TokenValidator
from core.config import get_settings

TEST_TTL = 3600


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock frozen at a whole second; advance() moves it forward."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


def make_service(db_url: str, clock=None, ttl_seconds: int = TEST_TTL) -> AuthService:
    """Build an AuthService whose components share one DB URL and one clock."""
    settings = get_settings()
    kwargs = {"clock": clock} if clock is not None else {}
    registry = RevocationRegistry(db_url, **kwargs)
    return AuthService(
        store=CredentialStore(db_url),
        registry=registry,
        issuer=TokenIssuer(settings.secret_key, ttl_seconds, **kwargs),
        validator=TokenValidator(settings.secret_key, registry, **kwargs),
        bcrypt_rounds=settings.bcrypt_rounds,
        default_role=settings.default_role,
        allowed_roles=settings.allowed_roles,
    )


def shared_memory_url(name: str) -> str:
    """Named shared-memory SQLite URI, unique per call so tests never share state."""
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> Generator[AuthService, None, None]:
    svc = make_service("sqlite:///:memory:", clock=clock)
    yield svc
    svc.close()


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test service into app.state so TestClient routes use an isolated
    database. The purge task is a long-sleeping coroutine (a real asyncio.Task
    is required for .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.auth_service = auth_service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthService, str], None, None]:
    """Yield (client, service, admin_token) for API integration tests.

    The admin identity is registered directly through the service before the
    client starts; its token is used for admin-only requests.
    """
    auth_service = make_service(shared_memory_url("test_api"))
    auth_service.register("testadmin@example.edu", "adminpass123", role="admin")
    admin_token = auth_service.login("testadmin@example.edu", "adminpass123").token

    app.router.lifespan_context = _patch_lifespan(auth_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, auth_service, admin_token

    auth_service.close()
