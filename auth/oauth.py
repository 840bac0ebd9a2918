"""
auth/oauth.py -- Authlib registry for external (Google) login.

The auth core does not implement federated login. It only accepts a verified
email from the provider and, when an active local account owns that email,
opens an ordinary local session for it. Accounts are never created here; a
librarian or admin provisions them first.

Security notes:
  Email verification is mandatory. get_verified_email() raises ValueError if
  the provider does not confirm the email is verified. An unverified address
  could belong to an attacker who typed in a victim's email.

  OAuth state (CSRF protection) is handled by authlib through Starlette's
  SessionMiddleware, which api/main.py installs.

Layer rule: no imports from api/ or client/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import get_settings

logger = logging.getLogger("folio.auth.oauth")

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name="google",
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")


def get_enabled_providers() -> list[dict]:
    """Return [{"name", "label"}] for every provider with credentials configured."""
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google"})
    return providers


def get_verified_email(token: dict) -> str:
    """Extract the provider-verified email from an OIDC token response.

    Some providers omit email_verified entirely; that counts as unverified.

    Raises:
        ValueError: no userinfo, unverified email, or no email at all.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError("OAuth: no userinfo in token response")
    if not userinfo.get("email_verified", False):
        raise ValueError("OAuth: email is not verified by the provider")
    email = userinfo.get("email")
    if not email:
        raise ValueError("OAuth: missing email claim in userinfo")
    return email
