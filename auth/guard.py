"""
auth/guard.py -- Request-time authorization decision.

    Unauthenticated --(valid token + valid session + active account)--> Authenticated(role)
    Authenticated(role) --(role in allowed set)--> Authorized

Every rejection is one of two kinds and nothing else leaks out:
  Unauthenticated (401): missing, malformed, forged, expired token; revoked,
      aged-out or foreign session; deleted or suspended account; or the store
      failed to answer. The client should log in again.
  Forbidden (403): identity is fine, the role is not in the route's set. The
      client should not be sent to the login page.

Fail closed: any exception from the store while reading the session or the
account is Unauthenticated, never a pass. The activity stamp written afterwards
is not part of the decision; a failed write is logged and the request proceeds.

Roles are compared against an explicit allowed set declared per route. Admin
is not implicitly a librarian; a route open to both lists both.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import Forbidden, TokenError, Unauthenticated
from auth.models import Account, Claims, Role
from auth.sessions import SessionRegistry
from auth.tokens import validate
from core.config import get_settings

logger = logging.getLogger("folio.auth.guard")

# Route-level allowed sets. Kept here so every rule is auditable in one place.
ADMIN_ONLY: frozenset[Role] = frozenset({Role.admin})
STAFF: frozenset[Role] = frozenset({Role.admin, Role.librarian})
ANY_ROLE: frozenset[Role] = frozenset(Role)


class AuthorizationGuard:
    def __init__(self, registry: SessionRegistry, touch_on_request: bool | None = None) -> None:
        self.registry = registry
        self.store = registry.store
        self.touch_on_request = get_settings().touch_on_request if touch_on_request is None else touch_on_request

    def authenticate(self, token: str | None) -> tuple[Claims, Account]:
        """Resolve a bearer token to verified claims and the live account.

        Raises Unauthenticated on any failure.
        """
        if not token:
            raise Unauthenticated()
        try:
            claims = validate(token)
        except TokenError as exc:
            logger.debug("Bearer token rejected: %s", type(exc).__name__)
            raise Unauthenticated() from exc

        try:
            session = self.registry.get_valid(claims.session_id)
            if session is None or session.account_id != claims.account_id:
                raise Unauthenticated()
            account = self.store.get_account(claims.account_id)
            if account is None or not account.is_active:
                raise Unauthenticated()
            # Role changed since the token was minted: make the caller re-login.
            if account.role is not claims.role:
                raise Unauthenticated()
        except SQLAlchemyError as exc:
            logger.warning("Store unavailable during authorization; failing closed: %s", exc)
            raise Unauthenticated() from exc

        if self.touch_on_request:
            try:
                self.registry.touch(claims.session_id)
            except SQLAlchemyError as exc:
                logger.warning("Could not record activity for session %s: %s", claims.session_id[:8], exc)
        return claims, account

    def require(self, token: str | None, allowed_roles: Iterable[Role]) -> Claims:
        """Return the caller's claims if authenticated and permitted, else raise."""
        claims, _account = self.authenticate(token)
        check_role(claims, allowed_roles)
        return claims


def check_role(claims: Claims, allowed_roles: Iterable[Role]) -> None:
    """Raise Forbidden unless the token's role is in the allowed set."""
    if claims.role not in frozenset(allowed_roles):
        logger.info("Account %d with role %s denied", claims.account_id, claims.role.value)
        raise Forbidden()
