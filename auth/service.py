"""
auth/service.py -- Orchestration of the authentication endpoints.

AuthService is the only auth component with an HTTP-facing contract. Every
operation returns Ok(value) or Err(AuthError); the route layer maps each
variant onto a status code and the uniform error envelope. Nothing here
raises for an expected failure.

Each operation is a load -> transition -> persist unit against UserStore.
Mutations are persisted before the result is returned, and no operation
returns partially-applied state.

Login ordering matters:
  1. unknown email       -> burn one dummy bcrypt verify, INVALID_CREDENTIALS
  2. locked account      -> ACCOUNT_LOCKED, no bcrypt, counters untouched
  3. wrong password      -> failure transition; ACCOUNT_LOCKED if it just
                            locked, INVALID_CREDENTIALS otherwise
  4. correct password    -> success transition + last_login, token pair
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthError, Err, Ok, Result
from auth.hashing import CredentialHasher
from auth.lockout import LockoutPolicy, LockoutState
from auth.models import TokenPair, User
from auth.reset import ResetTokenFlow
from auth.sessions import SessionRegistry
from auth.store import UserStore, normalize_email
from auth.tokens import TokenIssuer, issued_before
from core.clock import to_iso, utcnow

logger = logging.getLogger("finder.auth")


@dataclass(frozen=True)
class AuthSession:
    """A user together with a freshly issued token pair."""

    user: User
    tokens: TokenPair


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        policy: LockoutPolicy,
        issuer: TokenIssuer,
        sessions: SessionRegistry,
        resets: ResetTokenFlow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.policy = policy
        self.issuer = issuer
        self.sessions = sessions
        self.resets = resets

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, display_name: str) -> Result[AuthSession]:
        email = normalize_email(email)
        if self.store.email_exists(email):
            return Err(AuthError.EMAIL_ALREADY_EXISTS)
        user = User(email=email, password_hash=self.hasher.hash(password), display_name=display_name.strip())
        try:
            user.id = self.store.create_user(user)
        except IntegrityError:
            # A concurrent registration won the UNIQUE(email) race.
            return Err(AuthError.EMAIL_ALREADY_EXISTS)
        logger.info("Registered user %s", user.id)
        return Ok(AuthSession(user=user, tokens=self._issue_pair(user.id)))

    def login(self, email: str, password: str, now: datetime | None = None) -> Result[AuthSession]:
        now = now or utcnow()
        user = self.store.get_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.burn(password)
            return Err(AuthError.INVALID_CREDENTIALS)

        state = LockoutState(user.login_attempts, user.account_locked_until)
        if self.policy.is_locked(state, now):
            logger.info("Login refused for locked user %s", user.id)
            return Err(AuthError.ACCOUNT_LOCKED)

        if not self.hasher.verify(password, user.password_hash):
            applied = self.store.apply_lockout(user.id, lambda s: self.policy.on_failure(s, now))
            if applied is not None and self.policy.is_locked(applied[1], now):
                before, updated = applied
                if not self.policy.is_locked(before, now):
                    logger.warning(
                        "User %s locked until %s after %d failed logins",
                        user.id,
                        updated.account_locked_until.isoformat(),
                        updated.login_attempts,
                    )
                return Err(AuthError.ACCOUNT_LOCKED)
            logger.info("Failed login for user %s", user.id)
            return Err(AuthError.INVALID_CREDENTIALS)

        self.store.apply_lockout(user.id, self.policy.on_success, last_login=to_iso(now))
        user.login_attempts = 0
        user.account_locked_until = None
        user.last_login = now
        logger.info("User %s logged in", user.id)
        return Ok(AuthSession(user=user, tokens=self._issue_pair(user.id, now)))

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str, now: datetime | None = None) -> Result[TokenPair]:
        """Exchange a refresh token for a new pair. The presented token is consumed."""
        now = now or utcnow()
        rotated = self.sessions.rotate(refresh_token, now)
        if isinstance(rotated, Err):
            return rotated
        user_id, successor = rotated.value
        if self.store.get_by_id(user_id) is None:
            self.sessions.revoke(user_id)
            return Err(AuthError.TOKEN_INVALID)
        return Ok(TokenPair(access_token=self.issuer.issue_access(user_id, now), refresh_token=successor))

    def authenticate(self, access_token: str) -> Result[User]:
        """Resolve a bearer access token to its user.

        Beyond signature and expiry, the token must have been issued no
        earlier than the user's last password change.
        """
        decoded = self.issuer.decode_access(access_token)
        if isinstance(decoded, Err):
            return decoded
        claims = decoded.value
        user = self.store.get_by_id(claims["sub"])
        if user is None:
            return Err(AuthError.TOKEN_INVALID)
        if issued_before(claims, user.password_changed_at):
            return Err(AuthError.TOKEN_INVALID)
        return Ok(user)

    def logout(self, user: User, refresh_token: str | None = None) -> Result[int]:
        """Revoke one refresh token of user, or all of them when none is given."""
        removed = self.sessions.revoke(user.id, refresh_token)
        logger.info("User %s logged out (%d session(s) revoked)", user.id, removed)
        return Ok(removed)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        now: datetime | None = None,
    ) -> Result[None]:
        """Replace the password of an authenticated user.

        Every access token issued before this call becomes stale and every
        refresh token is revoked, so all devices must log in again.
        """
        if not self.hasher.verify(current_password, user.password_hash):
            return Err(AuthError.INVALID_CREDENTIALS)
        if new_password == current_password:
            return Err(AuthError.SAME_PASSWORD)
        if not self.store.update_password(user.id, self.hasher.hash(new_password), now or utcnow()):
            return Err(AuthError.USER_NOT_FOUND)
        logger.info("User %s changed password; all sessions revoked", user.id)
        return Ok(None)

    def forgot_password(self, email: str, now: datetime | None = None) -> Result[None]:
        self.resets.request(email, now)
        return Ok(None)

    def reset_password(self, token: str, new_password: str, now: datetime | None = None) -> Result[None]:
        redeemed = self.resets.redeem(token, new_password, now)
        if isinstance(redeemed, Err):
            return redeemed
        return Ok(None)

    def _issue_pair(self, user_id: str, now: datetime | None = None) -> TokenPair:
        now = now or utcnow()
        return TokenPair(
            access_token=self.issuer.issue_access(user_id, now),
            refresh_token=self.sessions.issue(user_id, now),
        )
