"""
api/main.py -- FastAPI application entry point for the Folio auth core.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the catalog front end
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- OAuth state cookie for authlib (not the auth session)

Lifespan builds the store and the services on app.state at startup, starts the
purge task, and tears both down symmetrically at shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.librarian import router as librarian_router
from api.routes.profile import router as profile_router
from api.routes.sessions import router as sessions_router
from api.routes.student import router as student_router
from auth.credentials import CredentialService
from auth.errors import AuthError
from auth.guard import AuthorizationGuard
from auth.mailer import ResetMailer
from auth.oauth import oauth as oauth_client
from auth.reset import ResetTokenService
from auth.sessions import SessionRegistry
from auth.store import AuthStore
from core.config import get_settings

_VERSION = "1.0.0"

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("folio.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Garbage-collect dead sessions and spent reset tokens on an interval.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and ends the loop.
    """
    while True:
        await asyncio.sleep(settings.purge_interval_seconds)
        try:
            sessions = app.state.registry.purge()
            tokens = app.state.reset_service.purge()
        except SQLAlchemyError:
            logger.exception("Purge pass failed; retrying next interval")
            continue
        logger.info("Purged %d session(s) and %d reset token(s)", sessions, tokens)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_services(app: FastAPI, store: AuthStore) -> None:
    """Wire the services around a store and publish them on app.state.

    Split out of lifespan so tests can wire an in-memory store the same way.
    """
    registry = SessionRegistry(store)
    app.state.store = store
    app.state.registry = registry
    app.state.credentials = CredentialService(store)
    app.state.reset_service = ResetTokenService(store, ResetMailer(settings))
    app.state.guard = AuthorizationGuard(registry)
    app.state.oauth = oauth_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: store, services, purge task. Shutdown: the reverse."""
    logger.info("Folio auth API starting up")
    store = AuthStore()
    build_services(app, store)
    if not store.has_accounts():
        logger.warning("No accounts exist yet. Bootstrap one with: python main.py create-admin")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    store.close()
    logger.info("Folio auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Folio Auth API",
    description="Accounts, sessions, password reset and role checks for the Folio library catalog.",
    version=_VERSION,
    lifespan=lifespan,
    # Interactive docs only in development.
    docs_url="/docs" if settings.debug else None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# authlib keeps the OAuth state value here between the redirect to Google and
# the callback. It holds nothing else; auth sessions live in the store.
app.add_middleware(SessionMiddleware, secret_key=settings.secret_key, https_only=not settings.debug)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(profile_router, prefix="/api", tags=["Profile"])
app.include_router(sessions_router, prefix="/api", tags=["Sessions"])
app.include_router(admin_router, prefix="/api", tags=["Admin"])
app.include_router(librarian_router, prefix="/api", tags=["Librarian"])
app.include_router(student_router, prefix="/api", tags=["Student"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the auth taxonomy to its HTTP status. The message is already caller-safe."""
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error and a Retry-After hint."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail={"code", "message"}. A dict
    detail is used as the error field directly; str(dict) would be a Python
    repr, not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log only. The client receives a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Not rate limited: load balancers and monitors must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Report liveness plus whether the store answers."""
    try:
        request.app.state.store.ping()
        database = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: store unavailable")
        database = "unavailable"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=_VERSION,
        components={"app": "ok", "database": database},
    )
