"""
auth/dependencies.py -- FastAPI Depends() helpers wrapping the authorization guard.

The bearer token comes from the Authorization: Bearer <token> header only.
There is no cookie path: the library client keeps the token itself and
resends it, so there is no ambient credential for a cross-site request to ride.

get_current_identity() authenticates (401 on failure).
require_roles(*roles) builds a dependency that authenticates, then checks the
route's allowed set (403 on failure).

Usage:
    @router.get("/admin/users")
    def list_users(identity: Identity = Depends(require_roles(Role.admin))): ...

    @router.get("/librarian/users")
    def search(identity: Identity = Depends(require_roles(Role.admin, Role.librarian))): ...

The guard raises AuthError subclasses; api/main.py maps them to 401/403 with
the standard error envelope.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from auth.guard import AuthorizationGuard, check_role
from auth.models import Account, Claims, Role


@dataclass
class Identity:
    """The authenticated caller: verified token claims plus the live account row."""

    claims: Claims
    account: Account

    @property
    def account_id(self) -> int:
        return self.claims.account_id

    @property
    def session_id(self) -> str:
        return self.claims.session_id


def bearer_token(request: Request) -> str | None:
    """Extract the token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, value = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def get_current_identity(request: Request) -> Identity:
    """Require a valid token on a live session. Raises Unauthenticated (401)."""
    guard: AuthorizationGuard = request.app.state.guard
    claims, account = guard.authenticate(bearer_token(request))
    return Identity(claims=claims, account=account)


def require_roles(*roles: Role):
    """Return a dependency admitting only callers whose role is in `roles`."""
    allowed = frozenset(roles)

    def dependency(request: Request) -> Identity:
        identity = get_current_identity(request)
        check_role(identity.claims, allowed)
        return identity

    dependency.__name__ = f"require_{'_'.join(sorted(r.value for r in allowed))}"
    return dependency
