"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. AuthStore is the repository for accounts,
sessions and reset tokens; the _row_to_* functions are the mappers. Services
and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The state transitions that must be linearizable are single conditional
  UPDATEs (compare-and-set), never read-then-write:
    - revoke_session():        ... WHERE session_id = :id AND revoked_at IS NULL
    - consume_reset_token():   ... WHERE token_hash = :h AND consumed_at IS NULL
                                     AND expires_at > :now
  Two racing requests both issue the UPDATE; the database lets exactly one of
  them match the row, and rowcount tells each caller which one it was.

Timestamps are UTC ISO-8601 strings with a fixed microsecond field, so string
comparison in SQL is time comparison.

Timeouts: the SQLite busy timeout (or the driver connect timeout elsewhere) and
the pool checkout timeout are both bounded by Settings.store_timeout_seconds.
A store that cannot answer in time raises sqlalchemy.exc.OperationalError /
TimeoutError; the guard treats that as Unauthenticated.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Account, AccountStatus, DeviceInfo, ResetToken, Role, Session
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-cased
    Column("name", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="student"),
    Column("department", String(255)),
    Column("status", String(20), nullable=False, server_default="active"),
    Column("preferences", Text),  # JSON blob owned by the UI
    Column("profile_picture", Text),  # reference owned by the upload service
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("session_id", String(64), primary_key=True),
    Column("account_id", Integer, nullable=False),
    Column("browser", String(100), nullable=False),
    Column("os", String(100), nullable=False),
    Column("device", String(20), nullable=False),
    Column("ip_address", String(45), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_activity_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
    Index("ix_sessions_account_revoked", "account_id", "revoked_at"),
)

_reset_tokens = Table(
    "reset_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("account_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("consumed_at", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuthStore:
    """Repository for Account, Session and ResetToken records.

    Usage:
        store = AuthStore("sqlite:///:memory:")
        account_id = store.create_account(Account(email="a@b.com", name="A", role=Role.student, hashed_password=h))
        account = store.get_account_by_email("A@B.com")
        store.close()
    """

    # Columns update_account() may write. Checked before any SQL is built.
    _ACCOUNT_FIELDS: frozenset = frozenset(
        {"email", "name", "role", "department", "status", "preferences", "profile_picture", "hashed_password"}
    )

    def __init__(self, db_url: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        db_url = db_url or settings.database_url
        timeout = timeout if timeout is not None else settings.store_timeout_seconds
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        elif db_url.startswith("postgresql"):
            connect_args["connect_timeout"] = max(1, int(timeout))
        engine_kwargs: dict = {"connect_args": connect_args}
        if not db_url.startswith("sqlite"):
            engine_kwargs["pool_timeout"] = timeout
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def has_accounts(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return (result or 0) > 0

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        The credential service turns that into DuplicateEmail; the UNIQUE
        constraint is what settles two concurrent registrations.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=_normalize_email(account.email),
                    name=account.name,
                    hashed_password=account.hashed_password,
                    role=account.role.value,
                    department=account.department,
                    status=account.status.value,
                    preferences=json.dumps(account.preferences),
                    profile_picture=account.profile_picture,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_account(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_email(self, email: str) -> Account | None:
        """Look up an account by email, case-insensitively."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == _normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def email_taken(self, email: str, exclude_account_id: int | None = None) -> bool:
        """Return True if another account already uses this email."""
        query = select(_accounts.c.id).where(_accounts.c.email == _normalize_email(email))
        if exclude_account_id is not None:
            query = query.where(_accounts.c.id != exclude_account_id)
        with self.engine.connect() as conn:
            return conn.execute(query).first() is not None

    def list_accounts(self, offset: int = 0, limit: int = 50) -> list[Account]:
        """Return accounts newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _accounts.select().order_by(_accounts.c.created_at.desc(), _accounts.c.id.desc()).offset(offset).limit(limit)
            ).fetchall()
        return [_row_to_account(r) for r in rows]

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_accounts)).scalar() or 0

    def search_accounts(self, query: str, role: Role | None = None, limit: int = 20) -> list[Account]:
        """Substring match on name or email, optionally restricted to one role."""
        # % and _ in the query match themselves, not any character.
        escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        stmt = _accounts.select().where(
            or_(
                func.lower(_accounts.c.name).like(pattern, escape="\\"),
                _accounts.c.email.like(pattern, escape="\\"),
            )
        )
        if role is not None:
            stmt = stmt.where(_accounts.c.role == role.value)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt.order_by(_accounts.c.name).limit(limit)).fetchall()
        return [_row_to_account(r) for r in rows]

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: see _ACCOUNT_FIELDS. Enums are stored by value,
        preferences as JSON, email lower-cased.

        Raises ValueError for unknown fields and IntegrityError if a new email
        collides with another account. Returns False if account_id was not found.
        """
        unknown = set(fields) - self._ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if not fields:
            return False
        values = dict(fields)
        if "email" in values:
            values["email"] = _normalize_email(values["email"])
        if "role" in values:
            values["role"] = Role(values["role"]).value
        if "status" in values:
            values["status"] = AccountStatus(values["status"]).value
        if "preferences" in values:
            values["preferences"] = json.dumps(values["preferences"])
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, account_id: int) -> None:
        with self.engine.connect() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=to_iso(utcnow())))
            conn.commit()

    def set_password(self, account_id: int, hashed_password: str, keep_session_id: str | None = None) -> int:
        """Write a new password hash and revoke the account's other sessions.

        One transaction: nobody can observe the new password alongside a
        session that should have died with the old one. Returns the number of
        sessions revoked.
        """
        now = to_iso(utcnow())
        with self.engine.begin() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(hashed_password=hashed_password))
            return _revoke_account_sessions(conn, account_id, now, keep_session_id)

    def delete_account(self, account_id: int) -> bool:
        """Delete an account, revoking its sessions and dropping its reset tokens.

        Sessions are kept (revoked) rather than deleted so an audit of past
        logins survives; purge_sessions() removes them later. Returns False if
        the account did not exist.
        """
        now = to_iso(utcnow())
        with self.engine.begin() as conn:
            _revoke_account_sessions(conn, account_id, now)
            conn.execute(_reset_tokens.delete().where(_reset_tokens.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: Session) -> None:
        info = session.device_info
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    session_id=session.session_id,
                    account_id=session.account_id,
                    browser=info.browser[:100],
                    os=info.os[:100],
                    device=info.device[:20],
                    ip_address=info.ip_address[:45],
                    created_at=session.created_at,
                    last_activity_at=session.last_activity_at,
                    revoked_at=None,
                )
            )
            conn.commit()

    def get_session(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.session_id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_live_sessions(self, account_id: int, created_after: datetime, active_after: datetime) -> list[Session]:
        """Return the account's unrevoked, unexpired sessions, most recently active first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select()
                .where(
                    (_sessions.c.account_id == account_id)
                    & _sessions.c.revoked_at.is_(None)
                    & (_sessions.c.created_at > to_iso(created_after))
                    & (_sessions.c.last_activity_at > to_iso(active_after))
                )
                .order_by(_sessions.c.last_activity_at.desc(), _sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def touch_session(self, session_id: str, at: datetime) -> bool:
        """Stamp last_activity_at. Revoked sessions are left untouched."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.session_id == session_id) & _sessions.c.revoked_at.is_(None))
                .values(last_activity_at=to_iso(at))
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_session(self, session_id: str, at: datetime) -> bool:
        """Compare-and-set revoked_at. True only for the caller that flipped it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.session_id == session_id) & _sessions.c.revoked_at.is_(None))
                .values(revoked_at=to_iso(at))
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_account_sessions(self, account_id: int, at: datetime, keep_session_id: str | None = None) -> int:
        """Revoke every live session of an account except keep_session_id. Returns the count."""
        with self.engine.begin() as conn:
            return _revoke_account_sessions(conn, account_id, to_iso(at), keep_session_id)

    def purge_sessions(self, before: datetime) -> int:
        """Delete sessions revoked, or created, before the cutoff."""
        cutoff = to_iso(before)
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where((_sessions.c.revoked_at < cutoff) | (_sessions.c.created_at < cutoff))
            )
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def replace_reset_token(self, token: ResetToken) -> int:
        """Store a new reset token, dropping the account's unconsumed ones.

        Only the newest emailed link works; older links die when a new one is
        requested.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _reset_tokens.delete().where(
                    (_reset_tokens.c.account_id == token.account_id) & _reset_tokens.c.consumed_at.is_(None)
                )
            )
            result = conn.execute(
                _reset_tokens.insert().values(
                    token_hash=token.token_hash,
                    account_id=token.account_id,
                    created_at=token.created_at or to_iso(utcnow()),
                    expires_at=token.expires_at,
                    consumed_at=None,
                )
            )
            return result.inserted_primary_key[0]

    def get_reset_token(self, token_hash: str) -> ResetToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def count_reset_tokens(self, account_id: int | None = None) -> int:
        query = select(func.count()).select_from(_reset_tokens)
        if account_id is not None:
            query = query.where(_reset_tokens.c.account_id == account_id)
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def consume_reset_token(self, token_hash: str, hashed_password: str, at: datetime) -> int | None:
        """Atomically consume a reset token and apply the password it authorizes.

        In one transaction:
          1. compare-and-set consumed_at (only if unconsumed and unexpired)
          2. write the new password hash
          3. revoke every session of the account

        Returns the account id on success, None if the token did not match
        (unknown, expired, or already consumed -- the caller classifies).
        """
        now = to_iso(at)
        with self.engine.begin() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where(
                    (_reset_tokens.c.token_hash == token_hash)
                    & _reset_tokens.c.consumed_at.is_(None)
                    & (_reset_tokens.c.expires_at > now)
                )
                .values(consumed_at=now)
            )
            if result.rowcount != 1:
                return None
            account_id = conn.execute(
                select(_reset_tokens.c.account_id).where(_reset_tokens.c.token_hash == token_hash)
            ).scalar_one()
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(hashed_password=hashed_password))
            _revoke_account_sessions(conn, account_id, now)
        return account_id

    def purge_reset_tokens(self, at: datetime) -> int:
        """Delete expired and consumed reset tokens."""
        now = to_iso(at)
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.delete().where((_reset_tokens.c.expires_at <= now) | _reset_tokens.c.consumed_at.is_not(None))
            )
            conn.commit()
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


def _revoke_account_sessions(conn, account_id: int, now: str, keep_session_id: str | None = None) -> int:
    condition = (_sessions.c.account_id == account_id) & _sessions.c.revoked_at.is_(None)
    if keep_session_id is not None:
        condition = condition & (_sessions.c.session_id != keep_session_id)
    result = conn.execute(_sessions.update().where(condition).values(revoked_at=now))
    return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    preferences = json.loads(row.preferences) if row.preferences else {}
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        department=row.department,
        status=AccountStatus(row.status),
        preferences=preferences,
        profile_picture=row.profile_picture,
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_session(row) -> Session:
    return Session(
        session_id=row.session_id,
        account_id=row.account_id,
        device_info=DeviceInfo(browser=row.browser, os=row.os, device=row.device, ip_address=row.ip_address),
        created_at=row.created_at,
        last_activity_at=row.last_activity_at,
        revoked_at=row.revoked_at,
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        id=row.id,
        token_hash=row.token_hash,
        account_id=row.account_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
        consumed_at=row.consumed_at,
    )
