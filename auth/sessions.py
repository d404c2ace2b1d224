"""
auth/sessions.py -- Registry of live refresh tokens per user.

A refresh token is valid only while BOTH hold:
  - its signature and expiry check out (TokenIssuer.decode_refresh), and
  - its digest is still a live entry in the user's session set.

Refresh tokens are single-use. rotate() retires the presented entry as a
tombstone and inserts its successor in one transaction, so of several
concurrent refreshes with the same token exactly one wins; the others get
TOKEN_REVOKED.

Presenting a token whose entry is a tombstone means it was already exchanged
once -- possibly stolen and replayed. With
Settings.revoke_sessions_on_refresh_reuse the registry then revokes every
session of that user. A token that was logged out or evicted by the session
cap has no entry at all and is simply refused with TOKEN_REVOKED.
"""

from __future__ import annotations

import logging
from datetime import datetime

from auth.errors import AuthError, Err, Ok, Result
from auth.store import UserStore
from auth.tokens import TokenIssuer, hash_token
from core.clock import utcnow
from core.config import Settings

logger = logging.getLogger("finder.auth.sessions")


class SessionRegistry:
    def __init__(self, store: UserStore, issuer: TokenIssuer, settings: Settings) -> None:
        self.store = store
        self.issuer = issuer
        self.max_sessions = settings.max_sessions_per_user
        self.revoke_on_reuse = settings.revoke_sessions_on_refresh_reuse

    def issue(self, user_id: str, now: datetime | None = None) -> str:
        """Create a refresh token for user_id, record it, and return it."""
        now = now or utcnow()
        token, expires_at = self.issuer.issue_refresh(user_id, now)
        self.store.add_refresh_token(user_id, hash_token(token), expires_at, self.max_sessions, now)
        return token

    def verify(self, token: str, now: datetime | None = None) -> Result[str]:
        """Check a presented refresh token without consuming it.

        Returns Ok(user_id) or Err(TOKEN_INVALID | TOKEN_EXPIRED | TOKEN_REVOKED).
        """
        decoded = self.issuer.decode_refresh(token)
        if isinstance(decoded, Err):
            return decoded
        user_id = decoded.value["sub"]
        if not self.store.has_refresh_token(user_id, hash_token(token), now):
            return Err(AuthError.TOKEN_REVOKED)
        return Ok(user_id)

    def rotate(self, token: str, now: datetime | None = None) -> Result[tuple[str, str]]:
        """Consume a refresh token and return Ok((user_id, successor_token)).

        The presented token becomes permanently unusable whether or not the
        caller ever receives the successor.
        """
        now = now or utcnow()
        decoded = self.issuer.decode_refresh(token)
        if isinstance(decoded, Err):
            return decoded
        user_id = decoded.value["sub"]
        successor, expires_at = self.issuer.issue_refresh(user_id, now)
        rotated = self.store.rotate_refresh_token(user_id, hash_token(token), hash_token(successor), expires_at, now)
        if not rotated:
            if self.store.was_rotated(user_id, hash_token(token)):
                self._on_reuse(user_id)
            return Err(AuthError.TOKEN_REVOKED)
        return Ok((user_id, successor))

    def revoke(self, user_id: str, token: str | None = None) -> int:
        """Revoke one session (token given) or all sessions of user_id.

        Returns the number of sessions removed.
        """
        if token is None:
            removed = self.store.clear_refresh_tokens(user_id)
            logger.info("Revoked all sessions for user %s (%d removed)", user_id, removed)
            return removed
        return 1 if self.store.remove_refresh_token(user_id, hash_token(token)) else 0

    def _on_reuse(self, user_id: str) -> None:
        if self.revoke_on_reuse:
            removed = self.store.clear_refresh_tokens(user_id)
            logger.warning(
                "Refresh token reuse detected for user %s -- revoked %d remaining sessions",
                user_id,
                removed,
            )
        else:
            logger.warning("Refresh token reuse detected for user %s", user_id)
