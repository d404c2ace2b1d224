"""
core/clock.py -- UTC time helpers shared by every expiry check.

All lockout windows, token expiries, and reset-token expiries are compared
through is_still_valid() so the login, refresh, and reset paths cannot drift
apart on boundary handling. An instant equal to "now" is already expired.

Timestamps are persisted as fixed-width ISO 8601 strings (always with
microseconds and a +00:00 offset) so lexicographic order in SQL matches
chronological order.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_still_valid(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """Return True if expires_at lies strictly in the future.

    None means "no expiry recorded" and is never valid.
    """
    if expires_at is None:
        return False
    return expires_at > (now or utcnow())


def to_iso(value: datetime) -> str:
    """Serialize an aware datetime as fixed-width UTC ISO 8601."""
    if value.tzinfo is None:
        raise ValueError("naive datetimes are not accepted; pass a timezone-aware value")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
