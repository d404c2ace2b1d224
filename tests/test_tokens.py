"""
tests/test_tokens.py -- TokenIssuer signing and verification.

Covers:
  - access and refresh tokens decode with their own key only
  - expired tokens map to TOKEN_EXPIRED, garbage to TOKEN_INVALID
  - refresh tokens issued in the same instant differ (jti)
  - issued_before() compares at sub-second precision
"""

from __future__ import annotations

from datetime import timedelta

from jose import jwt

from auth.errors import AuthError, Err, Ok
from auth.tokens import TokenIssuer, generate_reset_token, hash_token, issued_before
from core.clock import utcnow
from tests.helpers import ACCESS_SECRET, make_settings


class TestAccessTokens:
    def test_round_trip(self, issuer: TokenIssuer) -> None:
        decoded = issuer.decode_access(issuer.issue_access("u1"))
        assert isinstance(decoded, Ok)
        assert decoded.value["sub"] == "u1"
        assert decoded.value["typ"] == "access"

    def test_lifetime_is_fifteen_minutes(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        claims = issuer.decode_access(issuer.issue_access("u1", now)).value
        assert claims["exp"] - int(now.timestamp()) in (900, 901)

    def test_expired(self, issuer: TokenIssuer) -> None:
        token = issuer.issue_access("u1", utcnow() - timedelta(hours=1))
        assert issuer.decode_access(token) == Err(AuthError.TOKEN_EXPIRED)

    def test_garbage(self, issuer: TokenIssuer) -> None:
        assert issuer.decode_access("not.a.jwt") == Err(AuthError.TOKEN_INVALID)
        assert issuer.decode_access("") == Err(AuthError.TOKEN_INVALID)

    def test_wrong_key(self, issuer: TokenIssuer) -> None:
        other = TokenIssuer(
            make_settings(
                access_token_secret="another-access-secret-0123456789abcdef",
                refresh_token_secret="another-refresh-secret-0123456789abcd",
            )
        )
        assert issuer.decode_access(other.issue_access("u1")) == Err(AuthError.TOKEN_INVALID)

    def test_missing_subject_rejected(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        token = jwt.encode(
            {"typ": "access", "iat": now.timestamp(), "exp": now + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        assert issuer.decode_access(token) == Err(AuthError.TOKEN_INVALID)


class TestTokenClasses:
    def test_refresh_token_is_not_an_access_token(self, issuer: TokenIssuer) -> None:
        token, _ = issuer.issue_refresh("u1")
        assert isinstance(issuer.decode_access(token), Err)

    def test_access_token_is_not_a_refresh_token(self, issuer: TokenIssuer) -> None:
        assert isinstance(issuer.decode_refresh(issuer.issue_access("u1")), Err)

    def test_refresh_claims_signed_with_access_key_rejected(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        token = jwt.encode(
            {"sub": "u1", "typ": "refresh", "iat": now.timestamp(), "exp": now + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        assert issuer.decode_refresh(token) == Err(AuthError.TOKEN_INVALID)


class TestRefreshTokens:
    def test_expiry_returned_with_token(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        token, expires_at = issuer.issue_refresh("u1", now)
        assert expires_at == now + timedelta(days=7)
        assert issuer.decode_refresh(token).value["sub"] == "u1"

    def test_same_instant_tokens_differ(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        first, _ = issuer.issue_refresh("u1", now)
        second, _ = issuer.issue_refresh("u1", now)
        assert first != second


class TestIssuedBefore:
    def test_sub_second_precision(self, issuer: TokenIssuer) -> None:
        now = utcnow()
        claims = issuer.decode_access(issuer.issue_access("u1", now)).value
        assert issued_before(claims, now + timedelta(milliseconds=1))
        assert not issued_before(claims, now)

    def test_none_never_matches(self) -> None:
        assert not issued_before({"iat": 0}, None)


def test_hash_token_is_sha256_hex() -> None:
    digest = hash_token("abc")
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_reset_tokens_are_random_and_url_safe() -> None:
    tokens = {generate_reset_token() for _ in range(20)}
    assert len(tokens) == 20
    assert all(len(t) >= 43 and "/" not in t and "+" not in t for t in tokens)
