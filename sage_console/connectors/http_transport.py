"""
HTTP Transport

Callback-style ``post(request, callback)`` primitive on top of an
``httpx.AsyncClient``. Each call is scheduled on the running event loop and
its outcome is delivered as ``callback(error, response, body)``.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

import httpx

from sage_console.config import settings

logger = logging.getLogger(__name__)


@dataclass
class TransportRequest:
    """A single JSON POST."""

    url: str
    json: Dict[str, Any]
    headers: Dict[str, str] = field(
        default_factory=lambda: {"accept": "application/json"}
    )


TransportCallback = Callable[[Optional[BaseException], Optional[httpx.Response], Any], None]


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            pass
    return response.text


class HttpxTransport:
    """
    Shared HTTP client used by every query session.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        max_connections: int = 10,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            timeout: Per-request timeout in seconds
            max_connections: Connection pool limit
            client: Pre-built client (tests inject one with a mock transport)
        """
        self.timeout = timeout
        self.max_connections = max_connections
        self._client: Optional[httpx.AsyncClient] = client
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._client is not None

    @property
    def pending_calls(self) -> int:
        return len(self._tasks)

    def initialize(self) -> None:
        """Create the underlying client. Safe to call repeatedly; reopens a closed transport."""
        self._closed = False
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(max_connections=self.max_connections),
        )
        logger.info(
            f"HTTP transport ready (timeout={self.timeout}s, "
            f"max_connections={self.max_connections})"
        )

    def post(self, request: TransportRequest, callback: TransportCallback) -> None:
        """
        Send ``request`` in the background and report through ``callback``.

        Must be called from within a running event loop.
        """
        if self._closed:
            logger.error(f"HTTP call to {request.url} rejected: transport is closed")
            self._report(callback, RuntimeError("HTTP transport is closed"), None, None)
            return
        if self._client is None:
            self.initialize()
        client = self._client
        task = asyncio.get_running_loop().create_task(self._post(client, request, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _post(
        self,
        client: httpx.AsyncClient,
        request: TransportRequest,
        callback: TransportCallback,
    ) -> None:
        response: Optional[httpx.Response] = None
        body: Any = None
        error: Optional[BaseException] = None
        try:
            response = await client.post(
                request.url, json=request.json, headers=request.headers
            )
            body = _decode_body(response)
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = e
        except asyncio.CancelledError:
            logger.debug(f"HTTP call to {request.url} cancelled")
            raise
        except Exception as e:
            # Request construction failures (invalid URL, unencodable text).
            logger.warning(f"HTTP call to {request.url!r} failed: {type(e).__name__}: {e}")
            error = e
        self._report(callback, error, response, body)

    def _report(
        self,
        callback: TransportCallback,
        error: Optional[BaseException],
        response: Optional[httpx.Response],
        body: Any,
    ) -> None:
        try:
            callback(error, response, body)
        except Exception as e:
            logger.error(f"Transport callback failed: {type(e).__name__}: {e}")

    async def close(self) -> None:
        """Cancel in-flight calls and close the client. Later calls fail."""
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("HTTP transport closed")


# Global transport instance
_default_transport: Optional[HttpxTransport] = None


def get_default_transport() -> HttpxTransport:
    """
    Get or create the default HTTP transport.

    Returns:
        HttpxTransport: Default transport instance
    """
    global _default_transport

    if _default_transport is None:
        _default_transport = HttpxTransport(
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            max_connections=settings.HTTP_MAX_CONNECTIONS,
        )

    return _default_transport


async def close_default_transport() -> None:
    """Close the default HTTP transport."""
    global _default_transport

    if _default_transport is not None:
        await _default_transport.close()

    _default_transport = None
