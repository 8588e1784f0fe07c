"""
tests/conftest.py -- Shared test fixtures for DadMail auth tests.

This module provides:
  - settings: Settings instance with a fixed secret and cheap bcrypt rounds
  - engine / user_store / session_store / service: in-memory stores for unit tests
  - make_user(): helper that inserts a user straight into the store
  - api_client: TestClient wired to isolated in-memory components

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit tests run on one thread and use plain :memory:.

Environment must be set before any api/ import: api.main reads Settings at
import time for middleware configuration.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api/ or core/ so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")
os.environ.setdefault("SESSION_PURGE_INTERVAL_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from auth.factory import build_components
from auth.models import User
from auth.passwords import CredentialHasher
from auth.schema import make_engine
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

TEST_SECRET = os.environ["SECRET_KEY"]
TEST_PASSWORD = "password1"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def engine():
    eng = make_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def session_store(engine) -> SessionStore:
    return SessionStore(engine)


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    return CredentialHasher(min_length=8, rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, access_ttl_minutes=15, refresh_ttl_hours=168)


@pytest.fixture
def service(user_store, session_store, hasher, tokens) -> AuthService:
    return AuthService(user_store, session_store, hasher, tokens)


@pytest.fixture
def make_user(user_store, hasher):
    """Return a factory that inserts a user with TEST_PASSWORD."""

    def _make(email: str | None = None, role: str = "senior", full_name: str = "Test User") -> User:
        email = email or f"user-{uuid.uuid4().hex[:8]}@example.com"
        return user_store.create_user(email, hasher.hash(TEST_PASSWORD), full_name, role)

    return _make


# ---------------------------------------------------------------------------
# API integration fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(components):
    """Lifespan stand-in: attach prebuilt components, no purge loop, no engine disposal."""
    from api.main import attach_components

    @asynccontextmanager
    async def test_lifespan(app):
        attach_components(app, components)
        app.state.purge_task = None
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient backed by a fresh named shared-memory database.

    Module-scoped for speed; tests register their own uniquely named users.
    """
    from api.main import app

    db_name = f"test_auth_{uuid.uuid4().hex[:8]}"
    url = f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true"
    components = build_components(get_settings(), db_url=url)

    app.router.lifespan_context = _patch_lifespan(components)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    components.close()
