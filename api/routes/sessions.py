"""
api/routes/sessions.py -- The caller's signed-in devices.

Routes:
  GET    /api/sessions                -- live sessions, newest activity first, current one flagged
  DELETE /api/sessions                -- sign out every other device
  DELETE /api/sessions/{session_id}   -- sign out one device (own sessions only)
  POST   /api/sessions/refresh        -- heartbeat; extends the idle window

IDOR guard: DELETE /sessions/{id} passes the caller's account id to the
registry, which raises Forbidden for a session owned by someone else.
Revoking the current session is allowed; the next request gets 401.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import RevokeAllResponse, SessionListResponse, SessionResponse, SuccessResponse
from auth.dependencies import Identity, get_current_identity
from auth.sessions import SessionRegistry

router = APIRouter()


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(request: Request, identity: Identity = Depends(get_current_identity)) -> SessionListResponse:
    registry: SessionRegistry = request.app.state.registry
    sessions = registry.list(identity.account_id, current_session_id=identity.session_id)
    return SessionListResponse(sessions=[SessionResponse.from_session(s) for s in sessions])


@router.delete("/sessions", response_model=RevokeAllResponse)
def revoke_other_sessions(request: Request, identity: Identity = Depends(get_current_identity)) -> RevokeAllResponse:
    registry: SessionRegistry = request.app.state.registry
    revoked = registry.revoke_all_except_current(identity.account_id, identity.session_id)
    return RevokeAllResponse(revoked=revoked)


@router.delete("/sessions/{session_id}", response_model=SuccessResponse)
def revoke_session(
    request: Request,
    session_id: str,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse:
    """Already-revoked sessions succeed quietly; the end state is the same."""
    registry: SessionRegistry = request.app.state.registry
    registry.revoke(session_id, identity.account_id)
    return SuccessResponse(message="Session revoked successfully")


@router.post("/sessions/refresh", response_model=SuccessResponse)
def refresh_session(request: Request, identity: Identity = Depends(get_current_identity)) -> SuccessResponse:
    registry: SessionRegistry = request.app.state.registry
    registry.touch(identity.session_id)
    return SuccessResponse()
