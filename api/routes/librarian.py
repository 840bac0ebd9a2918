"""
api/routes/librarian.py -- Circulation-desk lookups. Admins and librarians.

Routes:
  GET /api/librarian/users?q=   -- student accounts whose name or email contains q
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import AccountResponse
from auth.dependencies import Identity, require_roles
from auth.guard import STAFF
from auth.models import Role
from auth.store import AuthStore

router = APIRouter(prefix="/librarian")


@router.get("/users", response_model=list[AccountResponse])
def search_students(
    request: Request,
    q: str = Query("", max_length=100),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_roles(*STAFF)),
) -> list[AccountResponse]:
    store: AuthStore = request.app.state.store
    return [AccountResponse.from_account(a) for a in store.search_accounts(q, role=Role.student, limit=limit)]
