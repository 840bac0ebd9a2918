"""
tests/test_mailer.py -- ResetMailer in dev (log-only) and SMTP modes.

smtplib.SMTP is patched; no network traffic.
"""

from __future__ import annotations

import logging
import smtplib
from unittest.mock import MagicMock, patch

from auth.mailer import ResetMailer
from core.config import get_settings


def _smtp_settings():
    return get_settings().model_copy(
        update={"smtp_host": "mail.uni.edu", "smtp_user": "folio", "smtp_password": "pw", "smtp_use_tls": True}
    )


def test_dev_mode_logs_link_with_redacted_address(caplog) -> None:
    mailer = ResetMailer(get_settings().model_copy(update={"smtp_host": ""}))
    with caplog.at_level(logging.INFO, logger="folio.auth.mailer"):
        assert mailer.send_reset_link("ada.lovelace@uni.edu", "tok123", 60) is True
    assert "/reset-password?token=tok123" in caplog.text
    assert "ada.lovelace@uni.edu" not in caplog.text
    assert "ad***@uni.edu" in caplog.text


def test_smtp_send() -> None:
    mailer = ResetMailer(_smtp_settings())
    server = MagicMock()
    with patch("auth.mailer.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = server
        assert mailer.send_reset_link("ada@uni.edu", "tok123", 60) is True

    smtp_cls.assert_called_once_with("mail.uni.edu", 587, timeout=30)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("folio", "pw")
    message = server.send_message.call_args.args[0]
    assert message["To"] == "ada@uni.edu"
    assert "tok123" in message.get_content()


def test_smtp_failure_reports_false() -> None:
    mailer = ResetMailer(_smtp_settings())
    with patch("auth.mailer.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
        assert mailer.send_reset_link("ada@uni.edu", "tok123", 60) is False
