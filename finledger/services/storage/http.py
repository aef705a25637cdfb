"""
HTTP Snapshot Store

Talks to the snapshot server's REST contract:

    GET  {base_url}/api/data/{key}  -> snapshot JSON (six arrays)
    POST {base_url}/api/data/{key}  <- snapshot JSON, full replace

Transport failures (timeouts, refused connections) are retried with
exponential backoff. HTTP error statuses are not retried: the server
answered, and repeating the same request will not change its mind.
"""

from typing import Optional
from urllib.parse import quote

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finledger.models.ledger import LedgerSnapshot
from finledger.services.storage.interface import (
    ConnectionError,
    SnapshotDecodeError,
    SnapshotStoreInterface,
    StorageError,
)


class HttpSnapshotStore(SnapshotStoreInterface):
    """
    Snapshot store backed by a remote server.

    Usage:
        store = HttpSnapshotStore("http://localhost:3000")
        snapshot = await store.load("alice@example.com")
        await store.save("alice@example.com", snapshot)
        await store.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Server root, without the /api/data suffix
            timeout: Per-request timeout in seconds
            retry_attempts: Attempts per call on transport errors
            backoff_multiplier: Scales the exponential backoff (0 disables waiting)
            client: Pre-built client (tests inject a MockTransport here)
        """
        if not base_url:
            raise ValueError("base_url is required")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self._backoff = backoff_multiplier
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        """HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _path(self, key: str) -> str:
        return f"/api/data/{quote(key, safe='@')}"

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(
                    multiplier=self._backoff,
                    min=2 * self._backoff,
                    max=10,
                ),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    response = await client.request(method, self._path(key), **kwargs)
        except httpx.TransportError as e:
            raise ConnectionError(f"Snapshot server unreachable: {e}")

        if response.is_error:
            raise StorageError(
                f"{method} snapshot for {key} failed with status {response.status_code}"
            )
        return response

    async def load(self, key: str) -> LedgerSnapshot:
        response = await self._request("GET", key)
        try:
            return LedgerSnapshot.from_json_dict(response.json())
        except ValueError as e:
            raise SnapshotDecodeError(f"Server returned an invalid snapshot: {e}")

    async def save(self, key: str, snapshot: LedgerSnapshot) -> bool:
        await self._request("POST", key, json=snapshot.to_json_dict())
        return True
