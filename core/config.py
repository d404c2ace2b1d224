"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the finder auth API happen here. No module
should call os.getenv() or os.environ.get() directly -- the app assembly in
api/main.py calls get_settings() once and hands the Settings instance to every
component constructor.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. access_token_secret -> ACCESS_TOKEN_SECRET).

  @model_validator: the "before" hook generates missing signing keys in dev
      mode (DEBUG=true) with a warning; the "after" hook refuses to start in
      production mode without them.

Security notes:
  Signing keys shorter than 32 chars are rejected outright. HS256 relies on
  key entropy -- a short key weakens every token issued with it.

  Access and refresh tokens are signed with independent keys so a leaked
  refresh key cannot forge access tokens. Identical keys are rejected.

  Settings is frozen: nothing mutates configuration after startup.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("finder.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'finder_auth.db'}"

_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Token signing
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Password hashing and lockout
    # ------------------------------------------------------------------

    # 12 rounds is roughly 100-250ms per hash on current server hardware.
    bcrypt_rounds: int = 12
    max_login_attempts: int = 5
    lockout_seconds: int = 30 * 60

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Replaying a refresh token that was already rotated away is a theft
    # signal; when enabled every session of that user is revoked.
    revoke_sessions_on_refresh_reuse: bool = True
    max_sessions_per_user: int = 10

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    reset_token_ttl_seconds: int = 15 * 60
    reset_url_base: str = "http://localhost:3000/reset-password"

    # SMTP (optional -- empty smtp_user means reset emails are logged, not sent)
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_address: str = "no-reply@localhost"
    smtp_use_tls: bool = True

    # ------------------------------------------------------------------
    # HTTP perimeter
    # ------------------------------------------------------------------

    csrf_protection: bool = True
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def generate_dev_keys(cls, data):
        """Fill in random signing keys in dev mode.

        Runs before field validation because the model is frozen. Sessions do
        not survive a restart with generated keys -- acceptable for local dev.
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).strip().lower() in ("1", "true", "yes", "on")
        if not debug:
            return data
        for field in ("access_token_secret", "refresh_token_secret"):
            if not data.get(field):
                data[field] = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated %s. Sessions will not persist across restarts.",
                    field.upper(),
                )
        return data

    @model_validator(mode="after")
    def validate_signing_keys(self) -> "Settings":
        """Refuse to start with missing, short, or shared signing keys.

        A missing key in production would invalidate every session on each
        restart (or worse, run with a guessable key), so it is a hard startup
        failure rather than a per-request error.
        """
        for field in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, field)
            if not value:
                raise ValueError(
                    f"{field.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            if len(value) < _MIN_KEY_LENGTH:
                raise ValueError(f"{field.upper()} must be at least {_MIN_KEY_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ.")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.max_login_attempts < 1:
            raise ValueError("MAX_LOGIN_ATTEMPTS must be at least 1.")
        if self.max_sessions_per_user < 1:
            raise ValueError("MAX_SESSIONS_PER_USER must be at least 1.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    Only the app assembly (api/main.py) should call this; components take the
    Settings instance as a constructor argument.

    In tests: build Settings(...) directly, or call get_settings.cache_clear()
    after changing environment variables.
    """
    return Settings()
