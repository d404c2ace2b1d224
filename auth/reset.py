"""
auth/reset.py -- Single-use password reset tokens.

request(email):
  Unknown email -> nothing happens, same response as a known one (prevents
  account enumeration). Known email -> a fresh 256-bit token is generated,
  only its digest and a 15 minute expiry are stored (replacing any earlier
  request), and the raw token goes out-of-band inside the reset URL.

redeem(token, new_password):
  The presented token is digested and matched against an unexpired stored
  digest. Wrong, expired, and already-used tokens all yield
  RESET_TOKEN_NOT_FOUND. A match sets the new password, clears the reset
  fields, stamps password_changed_at, unlocks the account, and revokes every
  refresh token -- all in one conditional UPDATE transaction, which is what
  makes the token single-use even under concurrent redemption.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode

from auth.errors import AuthError, Err, Ok, Result
from auth.hashing import CredentialHasher
from auth.lockout import LockoutPolicy, LockoutState
from auth.notify import ResetNotifier
from auth.store import UserStore
from auth.tokens import generate_reset_token, hash_token
from core.clock import utcnow
from core.config import Settings

logger = logging.getLogger("finder.auth.reset")


class ResetTokenFlow:
    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        policy: LockoutPolicy,
        notifier: ResetNotifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.policy = policy
        self.notifier = notifier
        self.ttl = timedelta(seconds=settings.reset_token_ttl_seconds)
        self.reset_url_base = settings.reset_url_base

    def request(self, email: str, now: datetime | None = None) -> None:
        """Start a reset for email if such an account exists. Always returns None."""
        user = self.store.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return
        now = now or utcnow()
        token = generate_reset_token()
        self.store.set_reset_token(user.id, hash_token(token), now + self.ttl)
        reset_url = f"{self.reset_url_base}?{urlencode({'token': token})}"
        self.notifier.send_password_reset(user.email, reset_url, int(self.ttl.total_seconds() // 60))
        logger.info("Password reset requested for user %s", user.id)

    def redeem(self, token: str, new_password: str, now: datetime | None = None) -> Result[str]:
        """Consume token and set new_password. Returns Ok(user_id) or Err(RESET_TOKEN_NOT_FOUND)."""
        now = now or utcnow()
        token_hash = hash_token(token)
        if not self.store.reset_token_pending(token_hash, now):
            return Err(AuthError.RESET_TOKEN_NOT_FOUND)
        # Single use is still enforced by the conditional UPDATE below.
        password_hash = self.hasher.hash(new_password)
        user_id = self.store.redeem_reset_token(
            token_hash,
            password_hash,
            self.policy.on_password_reset(LockoutState()),
            now,
        )
        if user_id is None:
            return Err(AuthError.RESET_TOKEN_NOT_FOUND)
        logger.info("Password reset completed for user %s; all sessions revoked", user_id)
        return Ok(user_id)
