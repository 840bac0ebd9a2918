"""
auth/credentials.py -- Credential store operations on top of AuthStore.

verify() is the only way to turn an email + password into an Account. It is
constant-time in the sense that matters: bcrypt runs exactly once on every
call, whether the email is unknown, the password is wrong, or the account is
suspended, and every one of those outcomes raises the same InvalidCredentials.
Do NOT inline get_account_by_email() + verify_password() elsewhere -- that
reintroduces the timing oracle.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail, InvalidCredentials, NotFound, SamePassword
from auth.models import Account, AccountStatus, Role
from auth.passwords import DUMMY_HASH, check_password_policy, hash_password, verify_password
from auth.store import AuthStore

logger = logging.getLogger("folio.auth.credentials")


class CredentialService:
    def __init__(self, store: AuthStore) -> None:
        self.store = store

    def verify(self, email: str, password: str) -> Account:
        """Return the account for valid credentials or raise InvalidCredentials."""
        account = self.store.get_account_by_email(email)
        if account is None:
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentials()
        if not verify_password(password, account.hashed_password):
            raise InvalidCredentials()
        if not account.is_active:
            logger.info("Login refused for non-active account %d (%s)", account.id, account.status.value)
            raise InvalidCredentials()
        return account

    def create(
        self,
        email: str,
        password: str,
        role: Role = Role.student,
        name: str = "",
        department: str | None = None,
        status: AccountStatus = AccountStatus.active,
    ) -> Account:
        """Provision an account after policy and uniqueness checks.

        Raises:
            WeakPassword:    the password fails check_password_policy().
            DuplicateEmail:  another account already has this email
                             (including one created concurrently).
        """
        check_password_policy(password)
        if self.store.email_taken(email):
            raise DuplicateEmail()
        account = Account(
            email=email,
            name=name.strip() or email.split("@", 1)[0],
            role=role,
            hashed_password=hash_password(password),
            department=department,
            status=status,
        )
        try:
            account_id = self.store.create_account(account)
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        logger.info("Account %d created with role %s", account_id, role.value)
        return self._require(account_id)

    def change_password(
        self,
        account_id: int,
        current_password: str,
        new_password: str,
        keep_session_id: str | None = None,
    ) -> int:
        """Replace the password after re-verifying the current one.

        Every session except keep_session_id (the caller's) is revoked in the
        same transaction. Returns the number of sessions revoked.

        Raises InvalidCredentials, SamePassword or WeakPassword.
        """
        account = self._require(account_id)
        if not verify_password(current_password, account.hashed_password):
            raise InvalidCredentials("Current password is incorrect.")
        if new_password == current_password:
            raise SamePassword()
        check_password_policy(new_password)
        revoked = self.store.set_password(account_id, hash_password(new_password), keep_session_id=keep_session_id)
        logger.info("Password changed for account %d; %d other session(s) revoked", account_id, revoked)
        return revoked

    def update_profile(
        self,
        account_id: int,
        name: str,
        email: str,
        preferences: dict | None = None,
    ) -> Account:
        """Update display name, email and UI preferences."""
        if self.store.email_taken(email, exclude_account_id=account_id):
            raise DuplicateEmail("Email already in use.")
        fields: dict = {"name": name.strip(), "email": email}
        if preferences is not None:
            fields["preferences"] = preferences
        try:
            updated = self.store.update_account(account_id, **fields)
        except IntegrityError as exc:
            raise DuplicateEmail("Email already in use.") from exc
        if not updated:
            raise NotFound("Account not found.")
        return self._require(account_id)

    def delete(self, account_id: int, password: str) -> None:
        """Self-service deletion. The password must be re-entered."""
        account = self._require(account_id)
        if not verify_password(password, account.hashed_password):
            raise InvalidCredentials("Password is incorrect.")
        self.store.delete_account(account_id)
        logger.info("Account %d deleted by its owner", account_id)

    def _require(self, account_id: int) -> Account:
        account = self.store.get_account(account_id)
        if account is None:
            raise NotFound("Account not found.")
        return account
