from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Optional, Protocol

import httpx
import structlog

from ..common.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class ConnectivityService(Protocol):
    def is_connected(self) -> bool:
        raise NotImplementedError


class StaticConnectivity(ConnectivityService):
    """Connectivity switched by hand (kiosk "force offline" mode)."""

    def __init__(self, connected: bool = True):
        self._connected = connected

    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        self._connected = connected


class HttpConnectivityService(ConnectivityService):
    """Probes a health URL; the answer is cached for `cache_seconds`."""

    def __init__(
        self,
        check_url: str,
        *,
        timeout: float = 2.0,
        cache_seconds: float = 5.0,
        clock: Optional[Clock] = None,
        client: Optional[httpx.Client] = None,
    ):
        self._check_url = check_url
        self._timeout = timeout
        self._cache = timedelta(seconds=cache_seconds)
        self._clock = clock or SystemClock()
        self._client = client
        self._lock = threading.Lock()
        self._checked_at: Optional[datetime] = None
        self._last: bool = False

    def _probe(self) -> bool:
        try:
            if self._client is not None:
                response = self._client.get(self._check_url)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(self._check_url)
        except httpx.HTTPError as exc:
            logger.info("connectivity_probe_failed", url=self._check_url, error=str(exc))
            return False
        return response.status_code < 500

    def is_connected(self) -> bool:
        with self._lock:
            now = self._clock.now()
            if self._checked_at is None or now - self._checked_at >= self._cache:
                connected = self._probe()
                if connected != self._last:
                    logger.info("connectivity_changed", connected=connected)
                self._last = connected
                self._checked_at = now
            return self._last
