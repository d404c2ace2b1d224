"""
tests/conftest.py -- Shared test fixtures for the finder auth tests.

This module provides:
  - component fixtures (store, hasher, policy, issuer, sessions, resets,
    service) wired the same way api/main.py wires them
  - registered: an account created through AuthService.register
  - api_client: TestClient against the real app with a patched lifespan

Design: every fixture gets its own SQLite file under tmp_path. Plain
':memory:' would give each pooled connection a blank schema, and the
concurrency tests need several connections writing to one database.

DEBUG and ALLOWED_HOSTS must be set before api.main is imported: the module
reads get_settings() at import time to configure its middleware.
"""

from __future__ import annotations

import os
from collections.abc import Generator

# CRITICAL: set before any api/auth/core import so get_settings() can
# generate dev keys and TrustedHostMiddleware accepts TestClient's host.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from auth.hashing import CredentialHasher
from auth.lockout import LockoutPolicy
from auth.reset import ResetTokenFlow
from auth.service import AuthService
from auth.sessions import SessionRegistry
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import Settings
from tests.helpers import PASSWORD, RecordingNotifier, make_client, make_settings

# Rate limits are exercised explicitly in test_auth_routes.py; everywhere else
# they would make test order matter.
limiter.enabled = False

# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(database_url=f"sqlite:///{tmp_path / 'auth.db'}")


@pytest.fixture
def store(settings: Settings) -> Generator[UserStore, None, None]:
    user_store = UserStore(settings.database_url)
    yield user_store
    user_store.close()


@pytest.fixture
def hasher(settings: Settings) -> CredentialHasher:
    return CredentialHasher(rounds=settings.bcrypt_rounds)


@pytest.fixture
def policy(settings: Settings) -> LockoutPolicy:
    return LockoutPolicy(settings.max_login_attempts, settings.lockout_seconds)


@pytest.fixture
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture
def sessions(store: UserStore, issuer: TokenIssuer, settings: Settings) -> SessionRegistry:
    return SessionRegistry(store, issuer, settings)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def resets(store, hasher, policy, notifier, settings) -> ResetTokenFlow:
    return ResetTokenFlow(store, hasher, policy, notifier, settings)


@pytest.fixture
def service(store, hasher, policy, issuer, sessions, resets) -> AuthService:
    return AuthService(store, hasher, policy, issuer, sessions, resets)


@pytest.fixture
def registered(service: AuthService):
    """A registered account: (AuthSession, email, password)."""
    result = service.register("Reader@Example.com", PASSWORD, "Reader")
    return result.value, "reader@example.com", PASSWORD


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def api_client(settings: Settings, notifier: RecordingNotifier) -> Generator[TestClient, None, None]:
    """TestClient against the real app and routes, backed by an isolated database."""
    yield from make_client(settings, notifier)
