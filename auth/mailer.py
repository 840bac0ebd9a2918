"""
auth/mailer.py -- Outbound mail for the reset flow.

Delivery infrastructure is out of scope for the auth core; this is the thin
collaborator it calls. With SMTP configured, messages go out through smtplib.
Without it (local development), the message is logged instead, with the
recipient redacted, so a developer can still follow the link from the log.

send_reset_link() never raises: it runs as a background task after the
forgot-password response has been sent, and an exception there would only be
lost in the server log anyway. Failures are logged and reported as False.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from urllib.parse import quote

from core.config import Settings, get_settings

logger = logging.getLogger("folio.auth.mailer")

_SMTP_TIMEOUT = 30


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class ResetMailer:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.mail_from)

    def reset_url(self, raw_token: str) -> str:
        return f"{self.settings.app_base_url.rstrip('/')}/reset-password?token={quote(raw_token)}"

    def send_reset_link(self, to_email: str, raw_token: str, expires_minutes: int) -> bool:
        url = self.reset_url(raw_token)
        body = (
            "We received a request to reset your library account password.\n\n"
            f"Open this link to choose a new password (valid for {expires_minutes} minutes):\n{url}\n\n"
            "If you did not ask for this, you can ignore this email. Your password will not change."
        )
        if not self.is_configured:
            logger.info("Mail not configured; reset link for %s: %s", _redact(to_email), url)
            return True

        msg = EmailMessage()
        msg["Subject"] = "Reset your library password"
        msg["From"] = self.settings.mail_from
        msg["To"] = to_email
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=_SMTP_TIMEOUT) as server:
                if self.settings.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.settings.smtp_user:
                    server.login(self.settings.smtp_user, self.settings.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send reset email to %s", _redact(to_email))
            return False
        logger.info("Reset email sent to %s", _redact(to_email))
        return True
