"""
Transport Instrumentation

Wraps the ``post(request, callback)`` primitive handed to a query client so
that every completed call is timed and counted. The wrapper is purely
observational: calls are never retried, delayed or suppressed, and the
caller's callback always receives the original ``(error, response, body)``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from sage_console.core.stats_recorder import StatsRecorder

logger = logging.getLogger(__name__)

TransportCallback = Callable[[Any, Any, Any], None]
PostFunction = Callable[[Any, TransportCallback], None]


class InstrumentedTransport:
    """
    Behavior-preserving wrapper around a transport ``post`` function.

    Usage:
        instrumented = InstrumentedTransport(transport.post, recorder)
        instrumented.start(started_at=time.time())
        client = SageQueryClient(endpoint, instrumented.post)
        # ... on session end ...
        instrumented.stop()
    """

    def __init__(
        self,
        send: PostFunction,
        recorder: StatsRecorder,
        *,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        on_record: Callable[[], None] | None = None,
    ) -> None:
        """
        Args:
            send: The transport function to wrap.
            recorder: Stats accumulator updated on every completed call.
            clock: Wall-clock source used for elapsed time.
            monotonic: Monotonic source used for per-call latency.
            on_record: Invoked after each recorded call, before the caller's
                callback, so derived stats can be refreshed.
        """
        self._send = send
        self._recorder = recorder
        self._clock = clock
        self._monotonic = monotonic
        self._on_record = on_record
        self._started_at: float | None = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def started_at(self) -> float | None:
        return self._started_at

    def start(self, started_at: float | None = None) -> None:
        """Arm recording for a session that started at ``started_at``."""
        self._started_at = self._clock() if started_at is None else started_at
        self._active = True

    def stop(self) -> None:
        """Disarm recording. Calls keep flowing through untouched."""
        self._active = False

    def post(self, request: Any, callback: TransportCallback) -> None:
        sent_at = self._monotonic()

        def _instrumented_callback(err: Any, response: Any, body: Any) -> None:
            if self._active:
                latency_ms = (self._monotonic() - sent_at) * 1000.0
                try:
                    self._recorder.record_call(latency_ms)
                    if self._on_record is not None:
                        self._on_record()
                except Exception as e:
                    # Recording must never change what the caller observes.
                    logger.warning("Failed to record call statistics: %s", e)
            callback(err, response, body)

        self._send(request, _instrumented_callback)
