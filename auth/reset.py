"""
auth/reset.py -- Forgot-password / reset-password flow.

Security design:
  request_reset() does the same synchronous work for known and unknown
  emails: it hands issue_and_send() to a dispatcher the route runs after the
  response is flushed. The account lookup, the token write and the email all
  happen there, so nothing observable distinguishes "we emailed you" from
  "no such account".

  consume_reset() is a single transaction in the store (compare-and-set on
  consumed_at + new password hash + revocation of every session). Two requests
  racing on the same token cannot both succeed: the loser's UPDATE matches no
  row and it is told AlreadyUsed.

  Failure reasons are coarse. Unknown, malformed and expired tokens are all
  InvalidOrExpiredToken; only a token that was genuinely consumed reports
  AlreadyUsed. Both carry the same caller-facing message.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AlreadyUsed, InvalidOrExpiredToken
from auth.mailer import ResetMailer
from auth.models import ResetToken
from auth.passwords import check_password_policy, hash_password
from auth.store import AuthStore, to_iso, utcnow
from auth.tokens import generate_reset_token, hash_reset_token
from core.config import get_settings

logger = logging.getLogger("folio.auth.reset")

# Signature of BackgroundTasks.add_task: dispatch(func, *args).
Dispatcher = Callable[..., Any]


def _run_now(func: Callable[..., Any], *args: Any) -> None:
    func(*args)


class ResetTokenService:
    def __init__(
        self,
        store: AuthStore,
        mailer: ResetMailer,
        expire_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.expire = timedelta(seconds=expire_seconds or get_settings().reset_token_expire_seconds)
        self.clock = clock

    def request_reset(self, email: str, dispatch: Dispatcher = _run_now) -> None:
        """Queue issuing and mailing a reset token for email.

        The caller-side work is the same for every address: one dispatch call.
        Routes pass BackgroundTasks.add_task, so the lookup, the token write and
        SMTP all run after the response has been sent.
        """
        dispatch(self.issue_and_send, email)

    def issue_and_send(self, email: str) -> bool:
        """Store a fresh token for an active account and mail it.

        Returns False when no active account owns the email or the store
        write failed; nothing is sent then.
        """
        try:
            account = self.store.get_account_by_email(email)
            if account is None or not account.is_active:
                logger.info("Password reset requested for unknown or inactive email")
                return False

            raw_token = generate_reset_token()
            now = self.clock()
            self.store.replace_reset_token(
                ResetToken(
                    token_hash=hash_reset_token(raw_token),
                    account_id=account.id,
                    created_at=to_iso(now),
                    expires_at=to_iso(now + self.expire),
                )
            )
        except SQLAlchemyError:
            logger.exception("Could not issue a password reset token")
            return False
        logger.info("Password reset token issued for account %d", account.id)
        self.mailer.send_reset_link(account.email, raw_token, int(self.expire.total_seconds() // 60))
        return True

    def consume_reset(self, raw_token: str, new_password: str) -> int:
        """Apply a new password authorized by a reset token.

        Returns the account id. Every session of that account is revoked.

        Raises:
            WeakPassword:           the new password fails the policy (token untouched).
            InvalidOrExpiredToken:  unknown, malformed or expired token.
            AlreadyUsed:            the token was consumed earlier.
        """
        check_password_policy(new_password)
        token_hash = hash_reset_token(raw_token)
        now = self.clock()
        account_id = self.store.consume_reset_token(token_hash, hash_password(new_password), now)
        if account_id is not None:
            logger.info("Password reset completed for account %d; all sessions revoked", account_id)
            return account_id

        token = self.store.get_reset_token(token_hash)
        if token is None or token.expires_at <= to_iso(now):
            raise InvalidOrExpiredToken()
        logger.warning("Reuse of consumed reset token for account %d", token.account_id)
        raise AlreadyUsed()

    def purge(self) -> int:
        """Delete expired and consumed tokens."""
        return self.store.purge_reset_tokens(self.clock())
