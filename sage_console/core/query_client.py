"""
Query Client Adapter

Defines the client/stream/subscription contract used by the session
controller, and the SaGe implementation of it.

SaGe evaluates a SPARQL query in time quanta: every HTTP round-trip returns
one page of solution bindings plus a ``next`` token that resumes the
suspended query plan. ``SageResultStream`` turns that page loop into a
push-based stream that only fetches pages while someone is subscribed.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from typing import Any, Callable, Optional, Protocol

from sage_console.connectors.http_transport import TransportRequest
from sage_console.core.errors import StreamProtocolError
from sage_console.core.transport_instrumentation import PostFunction

logger = logging.getLogger(__name__)

ItemHandler = Callable[[Any], None]
ErrorHandler = Callable[[BaseException], None]
CompleteHandler = Callable[[], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class ResultStream(Protocol):
    def subscribe(
        self,
        on_item: ItemHandler,
        on_error: ErrorHandler,
        on_complete: CompleteHandler,
    ) -> Subscription: ...


class QueryClient(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def execute(self, query: str) -> ResultStream: ...


ClientFactory = Callable[[str, PostFunction], QueryClient]


class StreamSubscription:
    """Handle binding one subscriber to a SageResultStream."""

    def __init__(
        self,
        stream: "SageResultStream",
        on_item: ItemHandler,
        on_error: ErrorHandler,
        on_complete: CompleteHandler,
    ) -> None:
        self._stream = stream
        self.on_item = on_item
        self.on_error = on_error
        self.on_complete = on_complete
        self.closed = False

    def unsubscribe(self) -> None:
        """Detach from the stream. Calling it again is a no-op."""
        if self.closed:
            return
        self.closed = True
        self._stream._detach(self)


def _decode_page(body: Any) -> tuple[list[Any], Any, bool]:
    """Return ``(bindings, next_token, has_next)`` for one SaGe response."""
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except ValueError as e:
            raise StreamProtocolError(f"Invalid JSON page: {e}") from e
    if not isinstance(body, dict):
        raise StreamProtocolError(f"Unexpected page type: {type(body).__name__}")
    bindings = body.get("bindings")
    if bindings is None:
        bindings = []
    if not isinstance(bindings, list):
        raise StreamProtocolError("Page 'bindings' must be a list")
    next_token = body.get("next")
    has_next = body.get("hasNext")
    if has_next is None:
        has_next = next_token is not None
    return bindings, next_token, bool(has_next)


class SageResultStream:
    """
    Single-consumer stream of solution bindings for one query.

    Pages are requested one at a time and only while a subscriber is
    attached. A page that lands after ``unsubscribe()`` is kept and handed to
    the next subscriber, so re-subscribing continues where delivery stopped.
    Exactly one terminal event is delivered, after all items.
    """

    def __init__(self, client: "SageQueryClient", query: str) -> None:
        self._client = client
        self._query = query
        self._next: Any = None
        self._pending: deque[Any] = deque()
        self._in_flight = False
        self._terminal: Optional[tuple[str, Optional[BaseException]]] = None
        self._terminated = False
        self._subscriber: Optional[StreamSubscription] = None
        self._page_count = 0

    @property
    def query(self) -> str:
        return self._query

    @property
    def page_count(self) -> int:
        return self._page_count

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def held_items(self) -> int:
        return len(self._pending)

    def subscribe(
        self,
        on_item: ItemHandler,
        on_error: ErrorHandler,
        on_complete: CompleteHandler,
    ) -> StreamSubscription:
        if self._subscriber is not None:
            raise RuntimeError("SageResultStream supports a single subscriber")
        if self._terminated:
            raise RuntimeError("SageResultStream has already terminated")
        subscription = StreamSubscription(self, on_item, on_error, on_complete)
        self._subscriber = subscription
        self._pump()
        return subscription

    def _detach(self, subscription: StreamSubscription) -> None:
        if self._subscriber is subscription:
            self._subscriber = None

    def _pump(self) -> None:
        # Handlers may unsubscribe or close the client re-entrantly.
        while self._subscriber is not None and self._pending:
            subscriber = self._subscriber
            subscriber.on_item(self._pending.popleft())

        subscriber = self._subscriber
        if subscriber is None or self._terminated:
            return

        if self._terminal is not None:
            kind, error = self._terminal
            self._terminated = True
            self._subscriber = None
            subscriber.closed = True
            if kind == "error":
                subscriber.on_error(error)
            else:
                subscriber.on_complete()
            return

        if not self._in_flight and self._client.is_open:
            self._fetch()

    def _fetch(self) -> None:
        self._in_flight = True
        self._client._send(
            {"query": self._query, "defaultGraph": self._client.default_graph, "next": self._next},
            self._on_page,
        )

    def _on_page(self, err: Any, response: Any, body: Any) -> None:
        self._in_flight = False
        if not self._client.is_open or self._terminal is not None:
            logger.debug("Dropping SaGe page received after close")
            return

        self._page_count += 1
        if err is not None:
            if not isinstance(err, BaseException):
                err = StreamProtocolError(str(err))
            self._terminal = ("error", err)
        else:
            try:
                bindings, next_token, has_next = _decode_page(body)
            except StreamProtocolError as e:
                self._terminal = ("error", e)
            else:
                self._pending.extend(bindings)
                self._next = next_token
                if not has_next:
                    self._terminal = ("complete", None)
                logger.debug(
                    f"SaGe page {self._page_count}: {len(bindings)} bindings, has_next={has_next}"
                )
        self._pump()


class SageQueryClient:
    """
    Client for one SaGe endpoint.

    The transport ``post`` function is injected so callers can wrap it (for
    instance with InstrumentedTransport) without touching the client.
    """

    def __init__(
        self,
        endpoint: str,
        post: PostFunction,
        *,
        default_graph: Optional[str] = None,
    ) -> None:
        self.endpoint = endpoint
        self.default_graph = default_graph or endpoint
        self._post = post
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if self._open:
            return
        self._open = True
        logger.debug(f"SaGe client opened: {self.endpoint}")

    def close(self) -> None:
        """Stop issuing requests. Responses already in flight become no-ops."""
        if not self._open:
            return
        self._open = False
        logger.debug(f"SaGe client closed: {self.endpoint}")

    def execute(self, query: str) -> SageResultStream:
        return SageResultStream(self, query)

    def _send(self, payload: dict[str, Any], callback: Callable[[Any, Any, Any], None]) -> None:
        self._post(TransportRequest(url=self.endpoint, json=payload), callback)
