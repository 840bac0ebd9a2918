"""
api/routes/admin.py -- Account and session administration. Admin role only.

Routes:
  GET    /api/admin/users                       -- paged account list
  POST   /api/admin/users                       -- provision an account with any role/status
  PUT    /api/admin/users/{account_id}          -- edit name/email/role/department/status
  DELETE /api/admin/users/{account_id}          -- delete an account (cascades)
  GET    /api/admin/users/{account_id}/sessions -- that account's live sessions
  DELETE /api/admin/users/{account_id}/sessions -- sign the account out everywhere
  DELETE /api/admin/sessions/{session_id}       -- revoke any single session

Guards:
  An admin cannot suspend, demote or delete their own account. There is then
  always at least one admin left: the one making the request.
  Suspending an account or changing its role revokes all its sessions. Tokens
  carry the role, so a role change would fail closed anyway; revoking makes the
  sign-out explicit.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    AccountListResponse,
    AccountResponse,
    AdminAccountCreate,
    AdminAccountUpdate,
    RevokeAllResponse,
    SessionListResponse,
    SessionResponse,
    SuccessResponse,
)
from auth.credentials import CredentialService
from auth.dependencies import Identity, require_roles
from auth.errors import DuplicateEmail, NotFound
from auth.guard import ADMIN_ONLY
from auth.models import Account, AccountStatus, Role
from auth.sessions import SessionRegistry
from auth.store import AuthStore

logger = logging.getLogger("folio.api.admin")

router = APIRouter(prefix="/admin")

_require_admin = require_roles(*ADMIN_ONLY)


def _get_target(store: AuthStore, account_id: int) -> Account:
    account = store.get_account(account_id)
    if account is None:
        raise NotFound("User not found.")
    return account


def _self_action(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=400, detail={"code": code, "message": message})


@router.get("/users", response_model=AccountListResponse)
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(_require_admin),
) -> AccountListResponse:
    store: AuthStore = request.app.state.store
    accounts = store.list_accounts(offset=(page - 1) * limit, limit=limit)
    return AccountListResponse(
        users=[AccountResponse.from_account(a) for a in accounts],
        total=store.count_accounts(),
        page=page,
        limit=limit,
    )


@router.post("/users", response_model=AccountResponse, status_code=201)
def create_user(
    request: Request,
    body: AdminAccountCreate,
    identity: Identity = Depends(_require_admin),
) -> AccountResponse:
    credentials: CredentialService = request.app.state.credentials
    account = credentials.create(
        body.email,
        body.password,
        role=body.role,
        name=body.name,
        department=body.department,
        status=body.status,
    )
    logger.info("Admin %d provisioned account %d (%s)", identity.account_id, account.id, account.role.value)
    return AccountResponse.from_account(account)


@router.put("/users/{account_id}", response_model=AccountResponse)
def update_user(
    request: Request,
    account_id: int,
    body: AdminAccountUpdate,
    identity: Identity = Depends(_require_admin),
) -> AccountResponse:
    store: AuthStore = request.app.state.store
    registry: SessionRegistry = request.app.state.registry
    target = _get_target(store, account_id)

    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )

    if target.id == identity.account_id:
        if updates.get("status", AccountStatus.active) is not AccountStatus.active:
            raise _self_action("self_suspension", "You cannot suspend your own account.")
        if updates.get("role", Role.admin) is not Role.admin:
            raise _self_action("self_demotion", "You cannot change your own role.")

    if "email" in updates and store.email_taken(updates["email"], exclude_account_id=account_id):
        raise DuplicateEmail("Email already in use.")

    try:
        store.update_account(account_id, **updates)
    except IntegrityError as exc:
        raise DuplicateEmail("Email already in use.") from exc

    suspended = updates.get("status", target.status) is not AccountStatus.active and target.is_active
    role_changed = updates.get("role", target.role) is not target.role
    if suspended or role_changed:
        registry.revoke_all(account_id)

    logger.info("Admin %d updated account %d: %s", identity.account_id, account_id, sorted(updates))
    return AccountResponse.from_account(_get_target(store, account_id))


@router.delete("/users/{account_id}", response_model=SuccessResponse)
def delete_user(
    request: Request,
    account_id: int,
    identity: Identity = Depends(_require_admin),
) -> SuccessResponse:
    store: AuthStore = request.app.state.store
    if account_id == identity.account_id:
        raise _self_action("self_deletion", "You cannot delete your own account.")
    _get_target(store, account_id)
    store.delete_account(account_id)
    logger.info("Admin %d deleted account %d", identity.account_id, account_id)
    return SuccessResponse(message="User deleted successfully")


@router.get("/users/{account_id}/sessions", response_model=SessionListResponse)
def list_user_sessions(
    request: Request,
    account_id: int,
    identity: Identity = Depends(_require_admin),
) -> SessionListResponse:
    store: AuthStore = request.app.state.store
    registry: SessionRegistry = request.app.state.registry
    _get_target(store, account_id)
    sessions = registry.list(account_id, current_session_id=identity.session_id)
    return SessionListResponse(sessions=[SessionResponse.from_session(s) for s in sessions])


@router.delete("/users/{account_id}/sessions", response_model=RevokeAllResponse)
def revoke_user_sessions(
    request: Request,
    account_id: int,
    identity: Identity = Depends(_require_admin),
) -> RevokeAllResponse:
    store: AuthStore = request.app.state.store
    registry: SessionRegistry = request.app.state.registry
    _get_target(store, account_id)
    return RevokeAllResponse(revoked=registry.revoke_all(account_id))


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
def revoke_any_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(_require_admin),
) -> SuccessResponse:
    registry: SessionRegistry = request.app.state.registry
    registry.revoke(session_id, identity.account_id, as_admin=True)
    return SuccessResponse(message="Session revoked successfully")
