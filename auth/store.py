"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_entry are the mappers.
Services and dependencies never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Refresh and reset tokens are stored only as SHA-256 digests.

Atomicity (several requests may race on the same user row):
  apply_lockout()          -- compare-and-swap UPDATE guarded by the values it
                              read; a lost race re-reads and re-applies the
                              pure transition, so no failure is ever dropped.
  rotate_refresh_token()   -- conditional UPDATE that turns the presented
                              token into a tombstone, and INSERT of its
                              successor, in one transaction. Only one of
                              several concurrent rotations sees rowcount 1;
                              the rest find the token already retired.
  redeem_reset_token()     -- conditional UPDATE on (id, digest, unexpired)
                              so a token can only be consumed once.

Timestamps are fixed-width UTC ISO 8601 strings (core.clock.to_iso), which
makes SQL string comparison chronological.

DB path: auth/finder_auth.db by default (Settings.database_url).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.lockout import LockoutState
from auth.models import RefreshTokenEntry, User
from core.clock import from_iso, to_iso, utcnow

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # normalized
    Column("password_hash", Text, nullable=False),
    Column("display_name", String(100), nullable=False),
    Column("password_changed_at", String(32)),
    Column("login_attempts", Integer, nullable=False, server_default="0"),
    Column("account_locked_until", String(32)),
    Column("reset_token_hash", String(64), index=True),
    Column("reset_expires_at", String(32)),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),  # insertion order
    Column("user_id", String(32), nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("rotated_at", String(32)),  # set once the token has been exchanged
)

_CAS_RETRIES = 20


def _live_session(user_id: str, now_iso: str):
    """WHERE clause for sessions of user_id that are unexpired and not rotated away."""
    return (
        (_refresh_tokens.c.user_id == user_id)
        & _refresh_tokens.c.rotated_at.is_(None)
        & (_refresh_tokens.c.expires_at > now_iso)
    )


class ConcurrentUpdateError(RuntimeError):
    """Raised when a compare-and-swap update keeps losing races."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and their refresh-token sessions.

    Usage:
        store = UserStore("sqlite:///auth.db")
        user_id = store.create_user(User(email="a@x.com", password_hash=digest, display_name="A"))
        user = store.get_by_email("A@x.com ")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        The email is normalized before insert. Raises
        sqlalchemy.exc.IntegrityError if the email is already registered;
        callers treat that as a lost race against a concurrent registration.
        """
        user_id = uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=normalize_email(user.email),
                    password_hash=user.password_hash,
                    display_name=user.display_name,
                    login_attempts=0,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
        return user_id

    def get_by_id(self, user_id: str, include_sessions: bool = False) -> User | None:
        """Look up a user by id. Returns None if not found.

        include_sessions=True also loads the live refresh-token entries.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            return None
        user = _row_to_user(row)
        if include_sessions:
            user.refresh_tokens = self.list_refresh_tokens(user_id)
        return user

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (normalized before matching)."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(_users.c.id).where(_users.c.email == normalize_email(email))).first()
        return found is not None

    # ------------------------------------------------------------------
    # Lockout
    # ------------------------------------------------------------------

    def apply_lockout(
        self,
        user_id: str,
        transition: Callable[[LockoutState], LockoutState],
        **extra_fields,
    ) -> tuple[LockoutState, LockoutState] | None:
        """Atomically apply a lockout transition to a user's counters.

        Reads (login_attempts, account_locked_until), computes the new state
        with the pure transition, and writes it back only if the row still
        holds the values that were read. On a lost race the loop re-reads and
        tries again. extra_fields (e.g. last_login) are written in the same
        UPDATE.

        Returns (before, after): the state the transition was applied to and
        the state written, or None if the user does not exist.
        """
        for _ in range(_CAS_RETRIES):
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(_users.c.login_attempts, _users.c.account_locked_until).where(_users.c.id == user_id)
                ).first()
                if row is None:
                    return None
                current = LockoutState(row.login_attempts, from_iso(row.account_locked_until))
                updated = transition(current)
                if updated == current and not extra_fields:
                    return current, current
                result = conn.execute(
                    _users.update()
                    .where(
                        (_users.c.id == user_id)
                        & (_users.c.login_attempts == row.login_attempts)
                        & (_users.c.account_locked_until == row.account_locked_until)
                    )
                    .values(
                        login_attempts=updated.login_attempts,
                        account_locked_until=_iso_or_none(updated.account_locked_until),
                        **extra_fields,
                    )
                )
                conn.commit()
            if result.rowcount == 1:
                return current, updated
        raise ConcurrentUpdateError(f"lockout update for user {user_id} did not converge")

    # ------------------------------------------------------------------
    # Passwords and reset tokens
    # ------------------------------------------------------------------

    def update_password(
        self,
        user_id: str,
        password_hash: str,
        changed_at: datetime,
        revoke_sessions: bool = True,
    ) -> bool:
        """Store a new password hash and stamp password_changed_at.

        With revoke_sessions=True every refresh token of the user is deleted
        in the same transaction. Returns False if the user does not exist.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, password_changed_at=to_iso(changed_at))
            )
            if result.rowcount != 1:
                return False
            if revoke_sessions:
                conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
        return True

    def set_reset_token(self, user_id: str, token_hash: str, expires_at: datetime) -> None:
        """Replace any outstanding reset token with a new digest and expiry."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(reset_token_hash=token_hash, reset_expires_at=to_iso(expires_at))
            )
            conn.commit()

    def reset_token_pending(self, token_hash: str, now: datetime) -> bool:
        """Return True if some user holds token_hash as an unexpired reset token."""
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_users.c.id).where(
                    (_users.c.reset_token_hash == token_hash) & (_users.c.reset_expires_at > to_iso(now))
                )
            ).first()
        return found is not None

    def redeem_reset_token(
        self,
        token_hash: str,
        password_hash: str,
        lockout: LockoutState,
        now: datetime,
    ) -> str | None:
        """Consume a reset token and apply the new password in one transaction.

        Matches only an unexpired digest. On success the reset fields are
        cleared, password_changed_at is stamped, the lockout counters are
        overwritten with `lockout`, and every refresh token of the user is
        deleted. Returns the user id, or None if nothing matched (wrong,
        expired, or already-redeemed token -- deliberately indistinguishable).
        """
        now_iso = to_iso(now)
        live = (_users.c.reset_token_hash == token_hash) & (_users.c.reset_expires_at > now_iso)
        with self.engine.begin() as conn:
            row = conn.execute(select(_users.c.id).where(live)).first()
            if row is None:
                return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & live)
                .values(
                    password_hash=password_hash,
                    password_changed_at=now_iso,
                    reset_token_hash=None,
                    reset_expires_at=None,
                    login_attempts=lockout.login_attempts,
                    account_locked_until=_iso_or_none(lockout.account_locked_until),
                )
            )
            if result.rowcount != 1:
                return None
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == row.id))
        return row.id

    # ------------------------------------------------------------------
    # Refresh-token sessions
    #
    # A rotated-away token keeps its row as a tombstone (rotated_at set)
    # until it expires, so a later replay can be told apart from a token
    # that was logged out or evicted (those rows are deleted outright).
    # ------------------------------------------------------------------

    def add_refresh_token(
        self,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
        max_sessions: int,
        now: datetime | None = None,
    ) -> None:
        """Append a session; drop expired rows and evict the oldest live ones beyond max_sessions."""
        now_iso = to_iso(now or utcnow())
        with self.engine.begin() as conn:
            conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.expires_at <= now_iso)
                )
            )
            conn.execute(
                _refresh_tokens.insert().values(
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=to_iso(expires_at),
                    created_at=now_iso,
                )
            )
            surplus = (
                select(_refresh_tokens.c.id)
                .where((_refresh_tokens.c.user_id == user_id) & _refresh_tokens.c.rotated_at.is_(None))
                .order_by(_refresh_tokens.c.id.desc())
                .offset(max_sessions)
            )
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.id.in_(surplus.scalar_subquery())))

    def rotate_refresh_token(
        self,
        user_id: str,
        old_hash: str,
        new_hash: str,
        new_expires_at: datetime,
        now: datetime | None = None,
    ) -> bool:
        """Atomically retire a live session and insert its successor.

        The presented entry becomes a tombstone rather than being deleted.
        Returns False (writing nothing) if old_hash is not a live session of
        user_id.
        """
        now_iso = to_iso(now or utcnow())
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where(_live_session(user_id, now_iso) & (_refresh_tokens.c.token_hash == old_hash))
                .values(rotated_at=now_iso)
            )
            if result.rowcount != 1:
                return False
            conn.execute(
                _refresh_tokens.insert().values(
                    user_id=user_id,
                    token_hash=new_hash,
                    expires_at=to_iso(new_expires_at),
                    created_at=now_iso,
                )
            )
        return True

    def was_rotated(self, user_id: str, token_hash: str) -> bool:
        """Return True if token_hash is a tombstone: a session of user_id that was already rotated away."""
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_refresh_tokens.c.id).where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.token_hash == token_hash)
                    & _refresh_tokens.c.rotated_at.is_not(None)
                )
            ).first()
        return found is not None

    def has_refresh_token(self, user_id: str, token_hash: str, now: datetime | None = None) -> bool:
        """Return True if token_hash is a live (unexpired, not rotated) session of user_id."""
        with self.engine.connect() as conn:
            found = conn.execute(
                select(_refresh_tokens.c.id).where(
                    _live_session(user_id, to_iso(now or utcnow())) & (_refresh_tokens.c.token_hash == token_hash)
                )
            ).first()
        return found is not None

    def list_refresh_tokens(self, user_id: str, now: datetime | None = None) -> list[RefreshTokenEntry]:
        """Return the user's live sessions, oldest first. Expired rows and tombstones are skipped."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where(_live_session(user_id, to_iso(now or utcnow())))
                .order_by(_refresh_tokens.c.id)
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def remove_refresh_token(self, user_id: str, token_hash: str) -> bool:
        """Delete one live session. user_id is part of the WHERE clause so a caller
        cannot revoke somebody else's session."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.user_id == user_id)
                    & (_refresh_tokens.c.token_hash == token_hash)
                    & _refresh_tokens.c.rotated_at.is_(None)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def clear_refresh_tokens(self, user_id: str) -> int:
        """Delete every session of a user, tombstones included. Returns the number of live sessions removed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _refresh_tokens.delete().where(
                    (_refresh_tokens.c.user_id == user_id) & _refresh_tokens.c.rotated_at.is_(None)
                )
            )
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _iso_or_none(value: datetime | None) -> str | None:
    return to_iso(value) if value is not None else None


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        display_name=row.display_name,
        password_changed_at=from_iso(row.password_changed_at),
        login_attempts=row.login_attempts,
        account_locked_until=from_iso(row.account_locked_until),
        reset_token_hash=row.reset_token_hash,
        reset_expires_at=from_iso(row.reset_expires_at),
        last_login=from_iso(row.last_login),
        created_at=from_iso(row.created_at),
    )


def _row_to_entry(row) -> RefreshTokenEntry:
    return RefreshTokenEntry(
        id=row.id,
        token_hash=row.token_hash,
        expires_at=from_iso(row.expires_at),
        created_at=from_iso(row.created_at),
    )
