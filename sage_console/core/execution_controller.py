"""
Execution Session Controller

Owns the lifecycle of the single active query session: builds a query client
per execution, instruments its transport, subscribes to its result stream
and routes every item through the result aggregator.

State machine:

    idle ──start──> running ──pause──> paused ──resume──> running
                       │                  │
                       ├──stop────────────┴──> stopped
                       ├──complete───────────> completed
                       └──error──────────────> failed

stopped/completed/failed are terminal for a session; ``start`` always
creates a new session. All transitions are synchronous and run on the event
loop thread, so no two of them interleave.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from sage_console.config import settings
from sage_console.core.errors import (
    InvalidTransitionError,
    ItemErrorLimitExceeded,
    QueryValidationError,
)
from sage_console.core.query_client import (
    ClientFactory,
    QueryClient,
    ResultStream,
    SageQueryClient,
    Subscription,
)
from sage_console.core.result_aggregator import ResultAggregator
from sage_console.core.stats_recorder import StatsRecorder
from sage_console.core.transport_instrumentation import (
    InstrumentedTransport,
    PostFunction,
)
from sage_console.models.session import (
    TERMINAL_STATES,
    ErrorInfo,
    ResultPage,
    SessionSnapshot,
    SessionState,
    StatsSnapshot,
)

logger = logging.getLogger(__name__)

RedrawListener = Callable[[], None]


@dataclass
class Session:
    """One query execution attempt and the resources it owns."""

    query: str
    endpoint: str
    aggregator: ResultAggregator
    recorder: StatsRecorder
    session_id: str = field(default_factory=lambda: str(uuid4()))
    state: SessionState = SessionState.IDLE
    started_at: Optional[float] = None
    client: Optional[QueryClient] = None
    stream: Optional[ResultStream] = None
    subscription: Optional[Subscription] = None
    instrumentation: Optional[InstrumentedTransport] = None
    stats: StatsSnapshot = field(default_factory=StatsSnapshot)
    last_error: Optional[ErrorInfo] = None
    item_errors: int = 0
    # Bumped whenever the current subscription is released; handlers bound to
    # an older generation are ignored.
    subscription_seq: int = 0


def _to_result(item: Any) -> Any:
    """Convert a stream item into a plain result row."""
    to_dict = getattr(item, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if hasattr(item, "__dataclass_fields__") and not isinstance(item, type):
        return asdict(item)
    return item


class ExecutionSessionController:
    """
    Start/pause/resume/stop control over one query session at a time.

    Usage:
        controller = ExecutionSessionController(transport.post)
        controller.add_listener(redraw)
        controller.start("SELECT * WHERE { ?s ?p ?o }", endpoint)
        ...
        controller.pause()
        controller.resume()
        controller.stop()
    """

    def __init__(
        self,
        post: PostFunction,
        *,
        client_factory: ClientFactory = SageQueryClient,
        bucket_size: Optional[int] = None,
        default_endpoint: Optional[str] = None,
        item_error_limit: Optional[int] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            post: Transport primitive handed (instrumented) to each client.
            client_factory: Builds a query client for ``(endpoint, post)``.
            bucket_size: Result bucket capacity (defaults to settings).
            default_endpoint: Endpoint used when start() gets none.
            item_error_limit: Soft item failures tolerated before the session
                fails; 0 tolerates any number.
            clock: Wall-clock source (epoch seconds).
            monotonic: Monotonic source for per-call latency.
        """
        self._post = post
        self._client_factory = client_factory
        self._bucket_size = int(
            bucket_size if bucket_size is not None else settings.RESULT_BUCKET_SIZE
        )
        if self._bucket_size < 1:
            raise ValueError(f"bucket_size must be >= 1, got {self._bucket_size}")
        self._default_endpoint = (
            default_endpoint if default_endpoint is not None else settings.DEFAULT_ENDPOINT
        )
        self._item_error_limit = int(
            item_error_limit
            if item_error_limit is not None
            else settings.ITEM_ERROR_ESCALATION_LIMIT
        )
        self._clock = clock
        self._monotonic = monotonic
        self._session: Optional[Session] = None
        self._listeners: list[RedrawListener] = []

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    @property
    def bucket_size(self) -> int:
        return self._bucket_size

    @property
    def results(self) -> tuple[Any, ...]:
        if self._session is None:
            return ()
        return tuple(self._session.aggregator.results)

    @property
    def buffered_count(self) -> int:
        if self._session is None:
            return 0
        return self._session.aggregator.buffered

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        if self._session is None:
            return None
        return self._session.last_error

    @property
    def stats(self) -> StatsSnapshot:
        if self._session is None:
            return StatsSnapshot()
        return self._current_stats(self._session)

    def snapshot(self) -> SessionSnapshot:
        session = self._session
        if session is None:
            return SessionSnapshot()
        started_at = (
            datetime.fromtimestamp(session.started_at, UTC)
            if session.started_at is not None
            else None
        )
        return SessionSnapshot(
            session_id=session.session_id,
            state=session.state,
            query=session.query,
            endpoint=session.endpoint,
            started_at=started_at,
            stats=self._current_stats(session),
            result_count=session.aggregator.result_count,
            buffered_count=session.aggregator.buffered,
            item_errors=session.item_errors,
            last_error=session.last_error,
        )

    def results_since(self, offset: int) -> list[Any]:
        if self._session is None:
            return []
        return self._session.aggregator.results_since(offset)

    def page(self, page: int, page_size: int) -> ResultPage:
        if self._session is None:
            return ResultPage(page=page, page_size=page_size, total=0, items=[])
        aggregator = self._session.aggregator
        return ResultPage(
            page=page,
            page_size=page_size,
            total=aggregator.result_count,
            items=aggregator.page(page, page_size),
        )

    def add_listener(self, listener: RedrawListener) -> None:
        """Register a "redraw now" callback."""
        self._listeners.append(listener)

    def remove_listener(self, listener: RedrawListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start(self, query: Optional[str], endpoint: Optional[str] = None) -> Session:
        """
        Start a new session for ``query`` against ``endpoint``.

        Raises:
            QueryValidationError: query or endpoint missing. Nothing changes.
            InvalidTransitionError: a session is running or paused.
        """
        if query is None or not isinstance(query, str) or not query.strip():
            raise QueryValidationError("A query is required to start execution")
        if endpoint is None:
            endpoint = self._default_endpoint
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise QueryValidationError("An endpoint is required to start execution")

        current = self.state
        if current in (SessionState.RUNNING, SessionState.PAUSED):
            raise InvalidTransitionError("start", current.value)

        recorder = StatsRecorder()
        aggregator = ResultAggregator(
            self._bucket_size, on_flush=lambda moved: self._on_flush(session, moved)
        )
        instrumentation = InstrumentedTransport(
            self._post,
            recorder,
            clock=self._clock,
            monotonic=self._monotonic,
            on_record=lambda: self._refresh_stats(session),
        )
        session = Session(
            query=query,
            endpoint=endpoint.strip(),
            aggregator=aggregator,
            recorder=recorder,
            instrumentation=instrumentation,
        )
        self._session = session

        try:
            client = self._client_factory(session.endpoint, instrumentation.post)
            session.client = client
            client.open()
            session.started_at = self._clock()
            instrumentation.start(session.started_at)
            session.stream = client.execute(query)
        except Exception as e:
            logger.error(f"Failed to open query session on {session.endpoint}: {e}")
            session.state = SessionState.RUNNING
            self._finish(session, SessionState.FAILED, error=e)
            return session

        session.state = SessionState.RUNNING
        logger.info(
            f"Query session {session.session_id} started on {session.endpoint} "
            f"(bucket_size={self._bucket_size})"
        )
        self._notify()
        self._subscribe(session)
        return session

    def pause(self) -> None:
        session = self._session
        if session is None or session.state is not SessionState.RUNNING:
            raise InvalidTransitionError("pause", self.state.value)
        session.subscription_seq += 1
        session.state = SessionState.PAUSED
        self._release_subscription(session)
        self._refresh_stats(session)
        logger.info(
            f"Query session {session.session_id} paused "
            f"(results={session.aggregator.result_count}, buffered={session.aggregator.buffered})"
        )
        self._notify()

    def resume(self) -> None:
        session = self._session
        if session is None or session.state is not SessionState.PAUSED:
            raise InvalidTransitionError("resume", self.state.value)
        session.state = SessionState.RUNNING
        logger.info(f"Query session {session.session_id} resumed")
        self._notify()
        self._subscribe(session)

    def toggle_pause(self) -> SessionState:
        """Pause a running session or resume a paused one."""
        if self.state is SessionState.RUNNING:
            self.pause()
        elif self.state is SessionState.PAUSED:
            self.resume()
        else:
            raise InvalidTransitionError("pause or resume", self.state.value)
        return self.state

    def stop(self) -> None:
        """Stop the running or paused session. No-op in any other state."""
        session = self._session
        if session is None or session.state not in (
            SessionState.RUNNING,
            SessionState.PAUSED,
        ):
            logger.debug(f"stop() ignored in state {self.state.value}")
            return
        self._finish(session, SessionState.STOPPED)

    def close(self) -> None:
        """Release the live session, if any (application shutdown)."""
        self.stop()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Stream event handlers
    # ------------------------------------------------------------------

    def _subscribe(self, session: Session) -> None:
        session.subscription_seq += 1
        seq = session.subscription_seq
        stream = session.stream
        if stream is None:
            return
        try:
            subscription = stream.subscribe(
                lambda item: self._handle_item(session, seq, item),
                lambda error: self._handle_error(session, seq, error),
                lambda: self._handle_complete(session, seq),
            )
        except Exception as e:
            if self._is_current(session, seq):
                self._finish(session, SessionState.FAILED, error=e)
            return
        if self._is_current(session, seq) and session.state is SessionState.RUNNING:
            session.subscription = subscription
        else:
            # The stream terminated (or was paused) during subscribe().
            self._unsubscribe(subscription)

    def _is_current(self, session: Session, seq: int) -> bool:
        return self._session is session and session.subscription_seq == seq

    def _handle_item(self, session: Session, seq: int, item: Any) -> None:
        # Unsubscribing does not cancel responses already in flight, so the
        # state is checked on every delivery.
        if not self._is_current(session, seq) or session.state is not SessionState.RUNNING:
            logger.debug(f"Dropping result delivered while {session.state.value}")
            return
        try:
            result = _to_result(item)
        except Exception as e:
            session.item_errors += 1
            logger.warning(
                f"Skipping result that failed conversion "
                f"({session.item_errors} so far): {type(e).__name__}: {e}"
            )
            if self._item_error_limit > 0 and session.item_errors >= self._item_error_limit:
                self._finish(
                    session,
                    SessionState.FAILED,
                    error=ItemErrorLimitExceeded(
                        f"{session.item_errors} results failed conversion"
                    ),
                )
            return
        session.aggregator.push(result)

    def _handle_complete(self, session: Session, seq: int) -> None:
        if not self._is_current(session, seq) or session.state is not SessionState.RUNNING:
            logger.debug(f"Ignoring completion delivered while {session.state.value}")
            return
        self._finish(session, SessionState.COMPLETED)

    def _handle_error(self, session: Session, seq: int, error: BaseException) -> None:
        if not self._is_current(session, seq) or session.state is not SessionState.RUNNING:
            logger.debug(f"Ignoring stream error delivered while {session.state.value}: {error}")
            return
        self._finish(session, SessionState.FAILED, error=error)

    def _on_flush(self, session: Session, moved: int) -> None:
        self._refresh_stats(session)
        self._notify()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(
        self,
        session: Session,
        state: SessionState,
        *,
        error: Optional[BaseException] = None,
    ) -> None:
        """Release every resource of ``session`` and move it to ``state``."""
        session.subscription_seq += 1
        self._release_subscription(session)
        self._release_client(session)
        if session.instrumentation is not None:
            session.instrumentation.stop()

        if error is not None:
            session.last_error = ErrorInfo(
                timestamp=datetime.fromtimestamp(self._clock(), UTC),
                error_type=type(error).__name__,
                error_message=str(error) or type(error).__name__,
            )

        # No delivered item is lost, whatever ended the session.
        session.aggregator.flush_remainder()
        self._refresh_stats(session)
        session.state = state

        stats = session.stats
        if state is SessionState.FAILED:
            logger.error(
                f"Query session {session.session_id} failed after "
                f"{session.aggregator.result_count} results: {error}"
            )
        else:
            logger.info(
                f"Query session {session.session_id} {state.value}: "
                f"results={session.aggregator.result_count}, "
                f"elapsed={stats.elapsed_seconds:.2f}s, calls={stats.call_count}, "
                f"avg_latency={stats.avg_server_latency_ms:.1f}ms"
            )
        self._notify()

    def _release_subscription(self, session: Session) -> None:
        subscription = session.subscription
        session.subscription = None
        self._unsubscribe(subscription)

    def _unsubscribe(self, subscription: Optional[Subscription]) -> None:
        if subscription is None:
            return
        try:
            subscription.unsubscribe()
        except Exception as e:
            logger.debug(f"Ignoring unsubscribe failure: {e}")

    def _release_client(self, session: Session) -> None:
        client = session.client
        session.client = None
        session.stream = None
        if client is None:
            return
        try:
            client.close()
        except Exception as e:
            logger.debug(f"Ignoring client close failure: {e}")

    def _current_stats(self, session: Session) -> StatsSnapshot:
        if session.state is SessionState.RUNNING:
            return session.recorder.snapshot(self._clock(), session.started_at)
        return session.stats

    def _refresh_stats(self, session: Session) -> None:
        if session.state in TERMINAL_STATES:
            return
        session.stats = session.recorder.snapshot(self._clock(), session.started_at)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.warning(f"Redraw listener failed: {type(e).__name__}: {e}")


# Global controller instance
_default_controller: Optional[ExecutionSessionController] = None


def get_default_controller() -> ExecutionSessionController:
    """
    Get or create the controller shared by the HTTP and WebSocket surfaces.

    The transport is resolved on every call so a transport closed and
    recreated by the application lifespan is picked up.
    """
    global _default_controller

    if _default_controller is None:
        from sage_console.connectors.http_transport import get_default_transport

        def _post(request: Any, callback: Callable[[Any, Any, Any], None]) -> None:
            get_default_transport().post(request, callback)

        _default_controller = ExecutionSessionController(_post)

    return _default_controller


def close_default_controller() -> None:
    """Stop the live session of the default controller and drop it."""
    global _default_controller

    if _default_controller is not None:
        _default_controller.close()

    _default_controller = None
