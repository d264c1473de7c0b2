from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import httpx
import structlog

from ..core.enums import SyncOperation
from ..core.exceptions import SyncPermanentError, SyncTransientError

logger = structlog.get_logger(__name__)


class RemoteGateway(Protocol):
    """Access to the authoritative copy of every synced entity."""

    def fetch(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        """Current remote payload, or None when the entity does not exist remotely."""
        raise NotImplementedError

    def apply(
        self,
        operation: SyncOperation,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


class HttpRemoteGateway(RemoteGateway):
    """Talks to the server node's replica endpoints.

    Network errors, 5xx and 429 are transient; any other 4xx means the server rejected
    the entry itself.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _url(self, entity_type: str, entity_id: str) -> str:
        return f"{self.base_url}/api/sync/entities/{entity_type}/{entity_id}"

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return self._client.request(method, url, headers=self._headers(), **kwargs)
            with httpx.Client(timeout=self._timeout) as client:
                return client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise SyncTransientError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        try:
            message = response.json().get("message") or response.text
        except ValueError:
            message = response.text
        if status >= 500 or status == 429:
            raise SyncTransientError(f"Remote unavailable ({status}): {message}")
        raise SyncPermanentError(f"Remote rejected the change ({status}): {message}")

    def fetch(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        response = self._send("GET", self._url(entity_type, entity_id))
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return response.json().get("data")

    def apply(
        self,
        operation: SyncOperation,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]],
    ) -> Optional[Dict[str, Any]]:
        url = self._url(entity_type, entity_id)
        if operation == SyncOperation.DELETE:
            response = self._send("DELETE", url)
        else:
            response = self._send("PUT", url, json={"operation": operation.value, "data": data})
        self._raise_for_status(response)
        logger.debug("remote_applied", operation=operation.value, entity_type=entity_type, entity_id=entity_id)
        return response.json().get("data")
