"""HTTP transport for the client: an abortable streaming request.

A connector opens one streaming request per task. The connection yields
raw byte chunks exactly as they arrive; leaving the ``open()`` context
closes the underlying HTTP connection, which is how a local abort reaches
the server.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

import httpx

from ..core.constants import MEDIA_TYPE, TASK_ID_HEADER
from ..core.errors import TransportError

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/slow"


class Connection(Protocol):
    """One open task stream."""
    task_id: str | None

    def chunks(self) -> AsyncIterator[bytes]: ...

    async def request_stop(self) -> bool: ...


class Connector(Protocol):
    """Opens task streams; ``open()`` is an async context manager."""

    def open(self): ...


class HttpConnection:
    """A streaming response from ``GET /api/slow``."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response, base_url: str):
        self._client = client
        self._base_url = base_url
        self._response = response
        self.task_id: str | None = response.headers.get(TASK_ID_HEADER)

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"Stream interrupted: {e}") from e

    async def request_stop(self) -> bool:
        """Ask the server to cancel this task over a separate request."""
        if not self.task_id:
            return False
        try:
            response = await self._client.post(f"{self._base_url}{STREAM_PATH}/{self.task_id}/cancel")
        except httpx.HTTPError as e:
            raise TransportError(f"Cancel request failed: {e}") from e
        return response.status_code == 200


class HttpConnector:
    """Connector for a stepstream server at ``base_url``."""

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        total_steps: int | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.total_steps = total_steps
        self._client = client

    @asynccontextmanager
    async def open(self):
        params = {"total_steps": self.total_steps} if self.total_steps else None
        headers = {"Accept": MEDIA_TYPE, "Cache-Control": "no-cache"}

        # Streaming responses must not time out between steps
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=None),
        )
        try:
            async with client.stream("GET", self.base_url + STREAM_PATH, params=params, headers=headers) as response:
                if response.status_code != 200:
                    raise TransportError(f"HTTP error! status: {response.status_code}")
                logger.info("Connected to %s (task %s)", response.url, response.headers.get(TASK_ID_HEADER))
                yield HttpConnection(client, response, self.base_url)
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def list_tasks(self) -> list[dict]:
        """Fetch the server's live task list."""
        async with httpx.AsyncClient(base_url=self.base_url, timeout=10.0) as client:
            try:
                response = await client.get("/api/tasks")
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise TransportError(f"Request failed: {e}") from e
            return response.json()["tasks"]
