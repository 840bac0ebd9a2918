"""
auth/sessions.py -- Session registry: the revocable record of every login.

A bearer token is only a capability; the Session row it names is the source of
truth. The guard looks the session up on every request (a primary-key read),
which is what lets "sign out this device" take effect immediately instead of
waiting for the token's exp.

A session is valid while all three hold:
  - revoked_at is NULL
  - created_at is within session_max_age_seconds   (absolute ceiling)
  - last_activity_at is within session_idle_timeout_seconds
The idle window is what the client heartbeat keeps open. Missing heartbeats
never revoke anything; the session simply ages out.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import Forbidden, NotFound
from auth.models import DeviceInfo, Session
from auth.store import AuthStore, to_iso, utcnow
from core.config import get_settings

logger = logging.getLogger("folio.auth.sessions")


class SessionRegistry:
    """Open, enumerate, refresh and revoke sessions.

    clock is injectable so tests can move time without sleeping.
    """

    def __init__(
        self,
        store: AuthStore,
        max_age_seconds: int | None = None,
        idle_timeout_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.max_age = timedelta(seconds=max_age_seconds or settings.session_max_age_seconds)
        self.idle_timeout = timedelta(seconds=idle_timeout_seconds or settings.session_idle_timeout_seconds)
        self.clock = clock

    def open(self, account_id: int, device_info: DeviceInfo) -> Session:
        """Create a session for a login that has just been verified."""
        now = to_iso(self.clock())
        session = Session(
            session_id=secrets.token_urlsafe(32),
            account_id=account_id,
            device_info=device_info,
            created_at=now,
            last_activity_at=now,
        )
        self.store.insert_session(session)
        logger.info(
            "Session opened for account %d (%s on %s, %s)",
            account_id,
            device_info.browser,
            device_info.os,
            device_info.ip_address,
        )
        return session

    def list(self, account_id: int, current_session_id: str | None = None) -> list[Session]:
        """Return live sessions, most recently active first, with is_current flagged."""
        now = self.clock()
        sessions = self.store.list_live_sessions(
            account_id,
            created_after=now - self.max_age,
            active_after=now - self.idle_timeout,
        )
        for session in sessions:
            session.is_current = session.session_id == current_session_id
        return sessions

    def get_valid(self, session_id: str) -> Session | None:
        """Return the session if it may still authorize requests, else None."""
        session = self.store.get_session(session_id)
        if session is None or session.is_revoked:
            return None
        now = self.clock()
        if session.created_at <= to_iso(now - self.max_age):
            return None
        if session.last_activity_at <= to_iso(now - self.idle_timeout):
            return None
        return session

    def is_valid(self, session_id: str) -> bool:
        return self.get_valid(session_id) is not None

    def touch(self, session_id: str) -> bool:
        """Extend the idle window. Idempotent; never resurrects a revoked session."""
        return self.store.touch_session(session_id, self.clock())

    def revoke(self, session_id: str, requesting_account_id: int, as_admin: bool = False) -> bool:
        """Revoke one session on behalf of its owner (or an admin).

        Returns True if this call revoked it, False if it was already revoked.

        Raises:
            NotFound:  no such session.
            Forbidden: the session belongs to someone else and as_admin is False.
        """
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFound("Session not found.")
        if session.account_id != requesting_account_id and not as_admin:
            logger.warning(
                "Account %d attempted to revoke session of account %d",
                requesting_account_id,
                session.account_id,
            )
            raise Forbidden("You can only revoke your own sessions.")
        revoked = self.store.revoke_session(session_id, self.clock())
        if revoked:
            logger.info("Session revoked for account %d by account %d", session.account_id, requesting_account_id)
        return revoked

    def revoke_all_except_current(self, account_id: int, current_session_id: str) -> int:
        """Sign out every other device. Returns how many sessions were revoked."""
        count = self.store.revoke_account_sessions(account_id, self.clock(), keep_session_id=current_session_id)
        logger.info("Revoked %d other session(s) for account %d", count, account_id)
        return count

    def revoke_all(self, account_id: int) -> int:
        count = self.store.revoke_account_sessions(account_id, self.clock())
        logger.info("Revoked all %d session(s) for account %d", count, account_id)
        return count

    def purge(self) -> int:
        """Delete session rows that can no longer be valid (older than the max age)."""
        return self.store.purge_sessions(before=self.clock() - self.max_age)
