"""
api/routes/profile.py -- The caller's own account.

Routes:
  GET    /api/profile                   -- account fields
  PUT    /api/profile                   -- update name, email, preferences
  POST   /api/profile/change-password   -- re-verify, set a new password, sign out other devices
  DELETE /api/profile                   -- delete the account (password required)

All routes require a valid session; any role may use them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import (
    AccountDeleteRequest,
    AccountResponse,
    PasswordChange,
    ProfileUpdate,
    ProfileUpdateResponse,
    SuccessResponse,
)
from auth.credentials import CredentialService
from auth.dependencies import Identity, get_current_identity

router = APIRouter()


@router.get("/profile", response_model=AccountResponse)
def get_profile(identity: Identity = Depends(get_current_identity)) -> AccountResponse:
    return AccountResponse.from_account(identity.account)


@router.put("/profile", response_model=ProfileUpdateResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
) -> ProfileUpdateResponse:
    """Email must stay unique across accounts (400 duplicate_email)."""
    credentials: CredentialService = request.app.state.credentials
    account = credentials.update_profile(identity.account_id, body.name, body.email, body.preferences)
    return ProfileUpdateResponse(user=AccountResponse.from_account(account))


@router.post("/profile/change-password", response_model=SuccessResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse:
    """The calling session survives; every other session of the account is revoked."""
    credentials: CredentialService = request.app.state.credentials
    credentials.change_password(
        identity.account_id,
        body.current_password,
        body.new_password,
        keep_session_id=identity.session_id,
    )
    return SuccessResponse(message="Password changed successfully")


@router.delete("/profile", response_model=SuccessResponse)
def delete_profile(
    request: Request,
    body: AccountDeleteRequest,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse:
    credentials: CredentialService = request.app.state.credentials
    credentials.delete(identity.account_id, body.password)
    return SuccessResponse(message="Account deleted successfully")
