"""
tests/test_lockout.py -- Pure lockout transitions (no storage involved).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.lockout import UNLOCKED, LockoutPolicy, LockoutState

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _fail_n(policy: LockoutPolicy, n: int, now: datetime = NOW) -> LockoutState:
    state = UNLOCKED
    for _ in range(n):
        state = policy.on_failure(state, now)
    return state


class TestOnFailure:
    def test_below_threshold_counts_without_locking(self) -> None:
        policy = LockoutPolicy(max_attempts=5, lockout_seconds=1800)
        state = _fail_n(policy, 4)
        assert state == LockoutState(login_attempts=4, account_locked_until=None)
        assert not policy.is_locked(state, NOW)

    def test_threshold_failure_locks_for_window(self) -> None:
        policy = LockoutPolicy(max_attempts=5, lockout_seconds=1800)
        state = _fail_n(policy, 5)
        assert state.login_attempts == 5
        assert state.account_locked_until == NOW + timedelta(minutes=30)
        assert policy.is_locked(state, NOW)

    def test_failure_while_locked_changes_nothing(self) -> None:
        policy = LockoutPolicy(max_attempts=5, lockout_seconds=1800)
        locked = _fail_n(policy, 5)
        assert policy.on_failure(locked, NOW + timedelta(minutes=1)) == locked

    def test_failure_after_lock_expiry_restarts_count(self) -> None:
        policy = LockoutPolicy(max_attempts=5, lockout_seconds=1800)
        locked = _fail_n(policy, 5)
        later = NOW + timedelta(minutes=31)
        state = policy.on_failure(locked, later)
        assert state == LockoutState(login_attempts=1, account_locked_until=None)

    def test_threshold_of_one_locks_immediately(self) -> None:
        policy = LockoutPolicy(max_attempts=1, lockout_seconds=60)
        assert policy.is_locked(policy.on_failure(UNLOCKED, NOW), NOW)


class TestIsLocked:
    def test_lock_ends_exactly_at_expiry(self) -> None:
        policy = LockoutPolicy()
        state = LockoutState(login_attempts=5, account_locked_until=NOW)
        assert not policy.is_locked(state, NOW)
        assert policy.is_locked(state, NOW - timedelta(microseconds=1))

    def test_unlocked_state(self) -> None:
        assert not LockoutPolicy().is_locked(UNLOCKED, NOW)


class TestReset:
    def test_success_clears_everything(self) -> None:
        policy = LockoutPolicy()
        assert policy.on_success(LockoutState(3, None)) == UNLOCKED

    def test_password_reset_clears_active_lock(self) -> None:
        policy = LockoutPolicy()
        locked = _fail_n(policy, 5)
        assert policy.on_password_reset(locked) == UNLOCKED
