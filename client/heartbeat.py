"""
client/heartbeat.py -- Keep a logged-in client's server session alive.

A daemon thread calls POST /api/sessions/refresh every interval_seconds
(default five minutes) while the client holds a token. A failed beat (network
error, 5xx, anything but 401) is logged and retried on the next tick. A 401
means the session is gone server-side: the client drops its token and the
loop ends. logout() stops the loop.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

import requests

from client.errors import ClientError, SessionExpired

if TYPE_CHECKING:
    from client.folio_client import FolioClient

logger = logging.getLogger("folio.client.heartbeat")


class SessionHeartbeat:
    def __init__(self, client: "FolioClient", interval_seconds: float = 300) -> None:
        self.client = client
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="folio-heartbeat")
        self._thread.start()
        logger.debug("Heartbeat started (every %ss)", self.interval_seconds)

    def stop(self, wait: bool = True) -> None:
        self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)

    def beat(self) -> bool:
        """Send one refresh. Returns False once the session is over, True otherwise."""
        if not self.client.is_authenticated:
            return False
        try:
            self.client.refresh()
        except SessionExpired:
            logger.info("Heartbeat got 401; session ended")
            return False
        except (ClientError, requests.RequestException) as exc:
            logger.debug("Heartbeat failed, will retry: %s", exc)
        return True

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            if not self.beat():
                break
