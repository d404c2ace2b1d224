"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores own persistence,
LockoutPolicy owns lockout transitions, services do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """A registered account.

    email is stored normalized (trimmed, lower-case) and is unique across all
    users. password_hash is bcrypt output and never leaves the auth package --
    response models expose only id, email, and display_name.

    password_changed_at is None until the first change or reset. Access tokens
    whose issued-at precedes it are rejected as stale.

    account_locked_until is only meaningful while it lies in the future; an
    expired value may linger in storage until the next login transition.

    reset_token_hash holds the SHA-256 digest of the outstanding reset token,
    never the token itself.
    """

    email: str
    password_hash: str
    display_name: str
    id: str | None = None  # opaque hex id assigned by the store on insert
    password_changed_at: datetime | None = None
    login_attempts: int = 0
    account_locked_until: datetime | None = None
    reset_token_hash: str | None = None
    reset_expires_at: datetime | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None
    refresh_tokens: list[RefreshTokenEntry] = field(default_factory=list)


@dataclass
class RefreshTokenEntry:
    """One live session: the digest of an issued refresh token and its expiry.

    token_hash is SHA-256 of the raw JWT. The raw token is returned to the
    client once and never persisted.
    """

    token_hash: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class TokenPair:
    """An access/refresh pair handed back by register, login, and refresh."""

    access_token: str
    refresh_token: str
