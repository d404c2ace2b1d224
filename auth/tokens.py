"""
auth/tokens.py -- Signed, time-bounded bearer tokens.

Security design decisions:
  JWT: python-jose with HS256. Two token classes with independent keys:
       access  -- Settings.access_token_secret, 15 minute lifetime
       refresh -- Settings.refresh_token_secret, 7 day lifetime
       A leaked refresh key therefore cannot mint access tokens, and a token
       of one class never verifies as the other (the "typ" claim is checked
       as well).

  iat: issued-at is written with microsecond precision (RFC 7519 NumericDate
       may be fractional). Access tokens are rejected when iat precedes the
       user's password_changed_at, and a change followed by a new login in the
       same second must not leave the pre-change token alive.

  jti: every refresh token carries a random id so two tokens issued to the
       same user in the same instant still differ (their digests are UNIQUE
       in storage).

  Digests: hash_token() is plain SHA-256. Refresh and reset tokens carry at
       least 128 bits of randomness, so a fast unsalted digest is enough to
       make a stolen database useless; bcrypt's slowness buys nothing here.

Verification never raises for bad input. It returns Ok(claims) or
Err(TOKEN_INVALID | TOKEN_EXPIRED); callers that also need registry or
password-change checks layer them on top (see auth/sessions.py and
auth/service.py).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import AuthError, Err, Ok, Result
from core.clock import utcnow
from core.config import Settings

_ALGORITHM = "HS256"

ACCESS = "access"
REFRESH = "refresh"


def hash_token(raw: str) -> str:
    """Return the SHA-256 hex digest used to store refresh and reset tokens."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def generate_reset_token() -> str:
    """Return a 256-bit URL-safe random token for password reset links."""
    return secrets.token_urlsafe(32)


class TokenIssuer:
    """Create and verify access and refresh JWTs.

    Keys and lifetimes come from Settings at construction time and are never
    changed afterwards.
    """

    def __init__(self, settings: Settings) -> None:
        self._keys = {
            ACCESS: settings.access_token_secret,
            REFRESH: settings.refresh_token_secret,
        }
        self._lifetimes = {
            ACCESS: timedelta(seconds=settings.access_token_ttl_seconds),
            REFRESH: timedelta(seconds=settings.refresh_token_ttl_seconds),
        }

    def issue_access(self, user_id: str, now: datetime | None = None) -> str:
        token, _expires_at = self._encode(ACCESS, user_id, now or utcnow())
        return token

    def issue_refresh(self, user_id: str, now: datetime | None = None) -> tuple[str, datetime]:
        """Return (token, expires_at). expires_at is what the session registry stores."""
        return self._encode(REFRESH, user_id, now or utcnow(), jti=secrets.token_urlsafe(16))

    def decode_access(self, token: str) -> Result[dict]:
        return self._decode(ACCESS, token)

    def decode_refresh(self, token: str) -> Result[dict]:
        return self._decode(REFRESH, token)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _encode(self, kind: str, user_id: str, now: datetime, jti: str | None = None) -> tuple[str, datetime]:
        expires_at = now + self._lifetimes[kind]
        payload = {
            "sub": user_id,
            "typ": kind,
            "iat": now.timestamp(),
            "exp": expires_at,
        }
        if jti is not None:
            payload["jti"] = jti
        return jwt.encode(payload, self._keys[kind], algorithm=_ALGORITHM), expires_at

    def _decode(self, kind: str, token: str) -> Result[dict]:
        try:
            claims = jwt.decode(token, self._keys[kind], algorithms=[_ALGORITHM])
        except ExpiredSignatureError:
            return Err(AuthError.TOKEN_EXPIRED)
        except JWTError:
            return Err(AuthError.TOKEN_INVALID)
        if claims.get("typ") != kind or not claims.get("sub") or not isinstance(claims.get("iat"), (int, float)):
            return Err(AuthError.TOKEN_INVALID)
        return Ok(claims)


def issued_before(claims: dict, instant: datetime | None) -> bool:
    """Return True if the token's iat precedes instant (None never matches)."""
    if instant is None:
        return False
    return float(claims["iat"]) < instant.timestamp()
