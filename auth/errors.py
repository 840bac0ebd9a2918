"""
auth/errors.py -- Error taxonomy for the authentication core.

Every failure the auth services can report is an AuthError subclass carrying
an HTTP status_code, a stable machine-readable code, and a caller-safe message.
api/main.py turns any AuthError that escapes a route into the standard error
envelope, so route handlers only catch the ones whose response contract
differs (login and reset-password answer with {success: false, message}).

Messages are deliberately vague where precision would build an oracle:
  - InvalidCredentials reads the same for unknown email and wrong password.
  - InvalidOrExpiredToken covers unknown, expired, and malformed reset tokens.
  - Unauthenticated covers missing, malformed, expired, forged, and revoked
    bearer tokens alike.

The token-level errors (TokenExpired, MalformedToken, SignatureMismatch) are
raised by auth.tokens.validate() for logging and tests only. The guard folds
all of them into Unauthenticated before anything reaches a client.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth-core failures mapped to HTTP responses."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class InvalidCredentials(AuthError):
    status_code = 400
    code = "invalid_credentials"
    message = "Invalid credentials."


class DuplicateEmail(AuthError):
    status_code = 400
    code = "duplicate_email"
    message = "Email already registered."


class WeakPassword(AuthError):
    status_code = 400
    code = "weak_password"
    message = "Password does not meet the password policy."


class SamePassword(AuthError):
    status_code = 400
    code = "same_password"
    message = "New password must differ from the current password."


# ---------------------------------------------------------------------------
# Bearer tokens (internal -- never surfaced to callers)
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class TokenExpired(TokenError):
    pass


class MalformedToken(TokenError):
    pass


class SignatureMismatch(TokenError):
    pass


# ---------------------------------------------------------------------------
# Authorization guard and session ownership
# ---------------------------------------------------------------------------


class Unauthenticated(AuthError):
    """No usable identity: re-authenticate."""

    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class Forbidden(AuthError):
    """Identity is fine, permission is not: deny without a login prompt."""

    status_code = 403
    code = "forbidden"
    message = "You do not have permission to perform this action."


class NotFound(AuthError):
    status_code = 404
    code = "not_found"
    message = "Not found."


# ---------------------------------------------------------------------------
# Reset flow
# ---------------------------------------------------------------------------


class InvalidOrExpiredToken(AuthError):
    status_code = 400
    code = "invalid_reset_token"
    message = "Password reset failed."


class AlreadyUsed(AuthError):
    status_code = 400
    code = "reset_token_used"
    message = "Password reset failed."
