"""
tests/test_clock.py -- Expiry boundary and timestamp serialization.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.clock import from_iso, is_still_valid, to_iso

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestIsStillValid:
    def test_future_instant_is_valid(self) -> None:
        assert is_still_valid(NOW + timedelta(microseconds=1), NOW)

    def test_instant_equal_to_now_is_expired(self) -> None:
        assert not is_still_valid(NOW, NOW)

    def test_past_instant_is_expired(self) -> None:
        assert not is_still_valid(NOW - timedelta(seconds=1), NOW)

    def test_none_is_never_valid(self) -> None:
        assert not is_still_valid(None, NOW)


class TestIsoRoundTrip:
    def test_fixed_width(self) -> None:
        assert to_iso(NOW) == "2026-03-01T12:00:00.000000+00:00"

    def test_other_offsets_normalized_to_utc(self) -> None:
        plus_two = NOW.astimezone(timezone(timedelta(hours=2)))
        assert to_iso(plus_two) == to_iso(NOW)

    def test_string_order_matches_time_order(self) -> None:
        earlier = NOW - timedelta(microseconds=1)
        assert to_iso(earlier) < to_iso(NOW)

    def test_naive_datetime_rejected(self) -> None:
        with pytest.raises(ValueError):
            to_iso(datetime(2026, 3, 1, 12, 0, 0))

    def test_parse(self) -> None:
        assert from_iso(to_iso(NOW)) == NOW
        assert from_iso(None) is None
        assert from_iso("") is None
