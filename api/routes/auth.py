"""
api/routes/auth.py -- Login, logout, registration and password-reset endpoints.

Routes:
  POST /api/login                  -- password login; opens a session, returns a bearer token
  POST /api/logout                 -- revokes the caller's current session
  POST /api/register               -- self-service student registration
  POST /api/forgot-password        -- request a reset link; always {success: true}
  POST /api/reset-password         -- consume a reset token and set a new password
  GET  /api/auth/providers         -- list enabled external login providers (public)
  GET  /api/auth/google            -- redirect to Google
  GET  /api/auth/google/callback   -- finish Google login, hand the token to the front end

Security:
  Login, register, forgot-password and reset-password are rate-limited per IP.
  Login failure is one response for unknown email, wrong password and a
  suspended account. CredentialService.verify() equalizes bcrypt timing.
  Forgot-password answers before the mail is sent (BackgroundTasks) and
  answers the same for every email.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import (
    AccountResponse,
    FailureResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    OAuthProviderInfo,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SuccessResponse,
)
from auth.credentials import CredentialService
from auth.dependencies import Identity, get_current_identity
from auth.devices import parse_user_agent
from auth.errors import AuthError, InvalidCredentials
from auth.models import Account, Role
from auth.oauth import get_enabled_providers, get_verified_email
from auth.passwords import password_strength
from auth.reset import ResetTokenService
from auth.sessions import SessionRegistry
from auth.store import AuthStore
from auth.tokens import mint
from core.config import get_settings

logger = logging.getLogger("folio.api.auth")

_settings = get_settings()

# Auth policy:
# - POST /api/login, /api/register, /api/forgot-password, /api/reset-password: public
# - GET  /api/auth/providers, /api/auth/google, /api/auth/google/callback:   public
# - POST /api/logout: requires a valid session (get_current_identity)
router = APIRouter()


def _start_session(request: Request, account: Account) -> str:
    """Open a session for an account whose identity was just proven; return its token."""
    registry: SessionRegistry = request.app.state.registry
    store: AuthStore = request.app.state.store
    device_info = parse_user_agent(
        request.headers.get("user-agent"),
        request.client.host if request.client else None,
    )
    session = registry.open(account.id, device_info)
    store.update_last_login(account.id)
    return mint(account, session.session_id)


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Login / logout
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify email + password and open a new session.

    Every credential failure gets the same 401 body.
    """
    credentials: CredentialService = request.app.state.credentials
    try:
        account = credentials.verify(body.email, body.password)
    except InvalidCredentials:
        logger.info("Failed login from %s", request.client.host if request.client else "unknown")
        return _no_store(
            JSONResponse(
                status_code=401,
                content=FailureResponse(message="Invalid credentials").model_dump(mode="json", by_alias=True),
            )
        )

    token = _start_session(request, account)
    account = request.app.state.store.get_account(account.id) or account
    return _no_store(
        JSONResponse(
            status_code=200,
            content=LoginResponse(
                token=token,
                expires_in=_settings.token_expire_seconds,
                user=AccountResponse.from_account(account),
            ).model_dump(mode="json", by_alias=True),
        )
    )


@router.post("/logout", response_model=SuccessResponse)
def logout(request: Request, identity: Identity = Depends(get_current_identity)) -> SuccessResponse:
    """End the caller's current session. Other devices stay signed in."""
    registry: SessionRegistry = request.app.state.registry
    registry.revoke(identity.session_id, identity.account_id)
    return SuccessResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)
@router.post("/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a student account. Staff accounts are provisioned by an admin."""
    if not _settings.self_registration_enabled:
        raise HTTPException(
            status_code=403,
            detail={"code": "registration_disabled", "message": "Self-registration is disabled."},
        )
    credentials: CredentialService = request.app.state.credentials
    account = credentials.create(body.email, body.password, role=Role.student, name=body.name)
    return RegisterResponse(
        user=AccountResponse.from_account(account),
        password_strength=password_strength(body.password),
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(_settings.reset_rate_limit)
@router.post("/forgot-password", response_model=SuccessResponse)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
) -> SuccessResponse:
    """Always {success: true}. Whether an email goes out is not observable here."""
    reset_service: ResetTokenService = request.app.state.reset_service
    reset_service.request_reset(body.email, dispatch=background_tasks.add_task)
    return SuccessResponse(message="If an account exists for that email, a reset link has been sent.")


@limiter.limit(_settings.reset_rate_limit)
@router.post("/reset-password", response_model=SuccessResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    """Consume a reset token. Every session of the account is revoked on success."""
    reset_service: ResetTokenService = request.app.state.reset_service
    try:
        reset_service.consume_reset(body.token, body.password)
    except AuthError as exc:
        return _no_store(
            JSONResponse(
                status_code=400,
                content=FailureResponse(message=exc.message).model_dump(mode="json", by_alias=True),
            )
        )
    return _no_store(
        JSONResponse(
            status_code=200,
            content=SuccessResponse(message="Password has been reset. Please sign in.").model_dump(mode="json", by_alias=True),
        )
    )


# ---------------------------------------------------------------------------
# External login
# ---------------------------------------------------------------------------


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return configured external providers; the login page renders one button each."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


@router.get("/auth/google")
async def google_redirect(request: Request) -> RedirectResponse:
    """Send the browser to Google. authlib stores the OAuth state in the session cookie."""
    if "google" not in {p["name"] for p in get_enabled_providers()}:
        return RedirectResponse("/login?error=oauth_failed", status_code=302)
    client = request.app.state.oauth.create_client("google")
    redirect_uri = str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request) -> RedirectResponse:
    """Exchange the code, match the verified email to an active account, open a session.

    No account is ever created here. Unknown and inactive emails both land on
    the same login error.
    """
    if "google" not in {p["name"] for p in get_enabled_providers()}:
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    client = request.app.state.oauth.create_client("google")
    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    try:
        email = get_verified_email(token)
    except ValueError:
        logger.warning("Google login rejected: unverified or missing email")
        return RedirectResponse("/login?error=oauth_failed", status_code=302)

    store: AuthStore = request.app.state.store
    account = store.get_account_by_email(email)
    if account is None or not account.is_active:
        return RedirectResponse("/login?error=not_provisioned", status_code=302)

    bearer = _start_session(request, account)
    resp = RedirectResponse(f"/auth/google?token={quote(bearer)}", status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp
