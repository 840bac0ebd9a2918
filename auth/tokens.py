"""
auth/tokens.py -- Bearer token minting/validation and reset-token secrets.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (account id), role, sid (session id), iat and exp. The token is a
       short-lived capability; the Session row it names is what actually keeps
       a login alive, so revocation never has to wait for exp.

  validate() is a pure function of the token and the key. It raises a
       TokenError subclass describing what went wrong (for logs and tests);
       the authorization guard collapses every one of them into
       Unauthenticated so a forger learns nothing from the response.

  Reset tokens: secrets.token_urlsafe(32) gives 256 bits of entropy. We store
       HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) and a leaked
       database cannot be replayed against /api/reset-password without the key.
       bcrypt's slowness buys nothing for high-entropy secrets.

  SECRET_KEY: sourced from core.config.get_settings(), read once at import and
       never returned by any API.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from jose.exceptions import JWTClaimsError

from auth.errors import MalformedToken, SignatureMismatch, TokenExpired
from auth.models import Account, Claims, Role
from core.config import get_settings

logger = logging.getLogger("folio.auth.tokens")

_settings = get_settings()

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "role", "sid", "iat", "exp")


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


def mint(account: Account, session_id: str, expire_seconds: int = 0) -> str:
    """Encode a signed bearer token for an account's freshly opened session.

    Args:
        account:        The authenticated account. Its role is embedded.
        session_id:     The Session this token rides on.
        expire_seconds: Lifetime override. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(account.id),
        "role": account.role.value,
        "sid": session_id,
        "iat": int(now.timestamp()),
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def validate(token: str) -> Claims:
    """Verify signature and expiry and return the token's claims.

    Does NOT consult the session registry -- that is the guard's job.

    Raises:
        TokenExpired:       signature fine, exp in the past.
        SignatureMismatch:  token parses but was not signed with our key
                            (or was altered after signing).
        MalformedToken:     not a JWT, wrong algorithm, or missing/invalid claims.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise MalformedToken() from exc
    if header.get("alg") != _ALGORITHM:
        raise MalformedToken()

    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired() from exc
    except JWTClaimsError as exc:
        raise MalformedToken() from exc
    except JWTError as exc:
        # python-jose verifies the signature before any claim, so a JWTError
        # that is neither of the above is a signature failure.
        raise SignatureMismatch() from exc

    if any(name not in payload for name in _REQUIRED_CLAIMS):
        raise MalformedToken()
    try:
        return Claims(
            account_id=int(payload["sub"]),
            role=Role(payload["role"]),
            session_id=str(payload["sid"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )
    except (TypeError, ValueError) as exc:
        raise MalformedToken() from exc


# ---------------------------------------------------------------------------
# Reset-token secrets
# ---------------------------------------------------------------------------


def generate_reset_token() -> str:
    """Return a new URL-safe reset token with 256 bits of entropy."""
    return secrets.token_urlsafe(32)


def hash_reset_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look tokens up by hash via a UNIQUE index.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()
