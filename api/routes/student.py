"""
api/routes/student.py -- Patron-facing endpoints.

Routes:
  GET /api/student/profile   -- the caller's account; open to every role
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import AccountResponse
from auth.dependencies import Identity, require_roles
from auth.guard import ANY_ROLE

router = APIRouter(prefix="/student")


@router.get("/profile", response_model=AccountResponse)
def student_profile(identity: Identity = Depends(require_roles(*ANY_ROLE))) -> AccountResponse:
    return AccountResponse.from_account(identity.account)
