"""
client/errors.py -- Exceptions raised by FolioClient.
"""

from __future__ import annotations

from typing import Optional

import requests


class ClientError(Exception):
    """A non-2xx answer from the server."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code


class SessionExpired(ClientError):
    """The server rejected the token (401). The local token has been dropped."""


def error_from(resp: requests.Response) -> ClientError:
    """Build a ClientError from either error shape the server uses.

    Most routes answer {"error": {"code", "message"}}; login and
    reset-password answer {"success": false, "message"}.
    """
    message = resp.reason or f"HTTP {resp.status_code}"
    code = None
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        if isinstance(payload.get("error"), dict):
            message = payload["error"].get("message", message)
            code = payload["error"].get("code")
        elif payload.get("message"):
            message = payload["message"]
    cls = SessionExpired if resp.status_code == 401 else ClientError
    return cls(resp.status_code, message, code)
