"""
tests/helpers.py -- Settings factory, test doubles, and the TestClient builder.

Kept out of conftest.py so test modules can import them directly. This
module imports api.main, so conftest.py must have set DEBUG and
ALLOWED_HOSTS before it is first imported (pytest loads conftest first).
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from api.main import app, build_auth_service
from auth.store import UserStore
from core.config import Settings

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012"

PASSWORD = "correct horse battery"


def make_settings(**overrides) -> Settings:
    """Settings with fixed keys, the cheapest bcrypt cost, and CSRF off."""
    values = {
        "debug": False,
        "access_token_secret": ACCESS_SECRET,
        "refresh_token_secret": REFRESH_SECRET,
        "bcrypt_rounds": 4,
        "csrf_protection": False,
    }
    values.update(overrides)
    return Settings(**values)


class RecordingNotifier:
    """ResetNotifier that keeps (email, reset_url, expires_minutes) tuples."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, int]] = []

    def send_password_reset(self, email: str, reset_url: str, expires_minutes: int) -> bool:
        self.sent.append((email, reset_url, expires_minutes))
        return True

    @property
    def last_token(self) -> str:
        _email, url, _minutes = self.sent[-1]
        return parse_qs(urlparse(url).query)["token"][0]


def _patch_lifespan(settings: Settings, user_store: UserStore, notifier: RecordingNotifier):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store into app.state and swaps the reset notifier for a
    recorder so no mail is attempted.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.auth_service = build_auth_service(settings, user_store)
        app.state.auth_service.resets.notifier = notifier
        yield

    return test_lifespan


def make_client(settings: Settings, notifier: RecordingNotifier) -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app backed by settings.database_url."""
    user_store = UserStore(settings.database_url)
    app.router.lifespan_context = _patch_lifespan(settings, user_store, notifier)
    # Server errors must surface as the 500 envelope, not as test exceptions.
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    user_store.close()
