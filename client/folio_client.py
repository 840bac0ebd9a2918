"""
client/folio_client.py -- HTTP client for the Folio auth API.

Holds the bearer token between calls and sends it as Authorization: Bearer.
The local session ends in exactly one way besides logout(): the server
answering 401. Every other failure (4xx, 5xx, network) is raised to the
caller and leaves the token in place.

Usage:
    client = FolioClient("http://localhost:8080")
    client.login("ada@uni.edu", "secret1")
    client.sessions()
    client.logout()
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from client.errors import ClientError, error_from
from client.heartbeat import SessionHeartbeat

logger = logging.getLogger("folio.client")

DEFAULT_TIMEOUT = 10
DEFAULT_HEARTBEAT_SECONDS = 5 * 60


class FolioClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        heartbeat_interval: Optional[float] = DEFAULT_HEARTBEAT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.heartbeat_interval = heartbeat_interval
        self._http = session or requests.Session()
        self._http.max_redirects = 3
        self.token: Optional[str] = None
        self.user: Optional[dict] = None
        self._heartbeat: Optional[SessionHeartbeat] = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        headers = kwargs.pop("headers", {})
        token = self.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        resp = self._http.request(method, f"{self.base_url}{path}", headers=headers, timeout=self.timeout, **kwargs)
        if resp.status_code == 401 and token:
            logger.info("Server rejected the session token; signing out locally")
            self.invalidate()
        if not resp.ok:
            raise error_from(resp)
        return resp

    def invalidate(self) -> None:
        """Forget the token locally. Does not contact the server."""
        self.token = None
        self.user = None
        if self._heartbeat is not None:
            self._heartbeat.stop(wait=False)
            self._heartbeat = None

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> dict:
        """Sign in and start the heartbeat. Raises ClientError on bad credentials."""
        data = self._request("POST", "/api/login", json={"email": email, "password": password}).json()
        self.token = data["token"]
        self.user = data.get("user")
        if self.heartbeat_interval:
            self._heartbeat = SessionHeartbeat(self, interval_seconds=self.heartbeat_interval)
            self._heartbeat.start()
        return data

    def logout(self) -> None:
        """Revoke the current session on the server, then forget it locally.

        The local state is cleared even if the server cannot be reached.
        """
        if self._heartbeat is not None:
            self._heartbeat.stop()
            self._heartbeat = None
        if self.token is None:
            return
        try:
            self._request("POST", "/api/logout")
        except (ClientError, requests.RequestException) as exc:
            logger.warning("Logout request failed: %s", exc)
        finally:
            self.invalidate()

    def register(self, name: str, email: str, password: str) -> dict:
        return self._request("POST", "/api/register", json={"name": name, "email": email, "password": password}).json()

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def profile(self) -> dict:
        return self._request("GET", "/api/profile").json()

    def update_profile(self, name: str, email: str, preferences: Optional[dict] = None) -> dict:
        body: dict = {"name": name, "email": email}
        if preferences is not None:
            body["preferences"] = preferences
        data = self._request("PUT", "/api/profile", json=body).json()
        self.user = data.get("user", self.user)
        return data

    def change_password(self, current_password: str, new_password: str) -> dict:
        return self._request(
            "POST",
            "/api/profile/change-password",
            json={"currentPassword": current_password, "newPassword": new_password},
        ).json()

    def delete_account(self, password: str) -> dict:
        data = self._request("DELETE", "/api/profile", json={"password": password}).json()
        self.invalidate()
        return data

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def sessions(self) -> list[dict]:
        return self._request("GET", "/api/sessions").json()["sessions"]

    def revoke_session(self, session_id: str) -> dict:
        return self._request("DELETE", f"/api/sessions/{session_id}").json()

    def revoke_other_sessions(self) -> int:
        return self._request("DELETE", "/api/sessions").json()["revoked"]

    def refresh(self) -> None:
        """Heartbeat. Raises SessionExpired on 401, ClientError or RequestException otherwise."""
        self._request("POST", "/api/sessions/refresh")

    # ------------------------------------------------------------------
    # Password reset (no token needed)
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> dict:
        return self._request("POST", "/api/forgot-password", json={"email": email}).json()

    def reset_password(self, token: str, password: str) -> dict:
        return self._request("POST", "/api/reset-password", json={"token": token, "password": password}).json()
