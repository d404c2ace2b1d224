"""
auth/lockout.py -- Brute-force lockout as a pure state machine.

States over (login_attempts, account_locked_until):
  Unlocked -- account_locked_until is None or not in the future
  Locked   -- account_locked_until is in the future

Transitions:
  failure while Unlocked  -> attempts + 1; reaching the threshold locks the
                             account for lockout_seconds
  failure after a lock has expired -> the stale lock is dropped and counting
                             restarts at 1
  failure while Locked    -> no change (login refuses before verifying)
  success                 -> attempts 0, lock cleared
  password reset          -> attempts 0, lock cleared, unconditionally

LockoutPolicy never touches storage. UserStore.apply_lockout() runs a
transition inside a compare-and-swap loop so concurrent failures cannot lose
an increment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from core.clock import is_still_valid, utcnow


@dataclass(frozen=True)
class LockoutState:
    login_attempts: int = 0
    account_locked_until: datetime | None = None


UNLOCKED = LockoutState()


class LockoutPolicy:
    """Lockout transitions parameterized by threshold and window length."""

    def __init__(self, max_attempts: int = 5, lockout_seconds: int = 30 * 60) -> None:
        self.max_attempts = max_attempts
        self.lock_window = timedelta(seconds=lockout_seconds)

    def is_locked(self, state: LockoutState, now: datetime | None = None) -> bool:
        return is_still_valid(state.account_locked_until, now)

    def on_failure(self, state: LockoutState, now: datetime | None = None) -> LockoutState:
        now = now or utcnow()
        if self.is_locked(state, now):
            return state
        attempts = state.login_attempts + 1
        if state.account_locked_until is not None:
            # The previous lock has run out; its failures no longer count.
            attempts = 1
        if attempts >= self.max_attempts:
            return LockoutState(login_attempts=attempts, account_locked_until=now + self.lock_window)
        return LockoutState(login_attempts=attempts, account_locked_until=None)

    def on_success(self, state: LockoutState) -> LockoutState:
        return UNLOCKED

    def on_password_reset(self, state: LockoutState) -> LockoutState:
        return UNLOCKED
