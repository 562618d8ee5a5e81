"""
Per-session HTTP call statistics.

Aggregates the round-trip time of every completed call made on behalf of a
query session and combines it with wall-clock elapsed time into a
StatsSnapshot for the presentation layer.
"""

from __future__ import annotations

from sage_console.models.session import StatsSnapshot


class StatsRecorder:
    """
    Running count and mean of per-call latencies.

    Nothing is ever evicted: the mean covers every call recorded since the
    last reset. A recorder is reset exactly once per session start.
    """

    def __init__(self) -> None:
        self._call_count = 0
        self._total_latency_ms = 0.0

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def avg_latency_ms(self) -> float:
        if self._call_count == 0:
            return 0.0
        return self._total_latency_ms / self._call_count

    def reset(self) -> None:
        self._call_count = 0
        self._total_latency_ms = 0.0

    def record_call(self, latency_ms: float) -> None:
        """Record one completed call."""
        self._call_count += 1
        self._total_latency_ms += max(0.0, float(latency_ms))

    def snapshot(self, now: float, started_at: float | None) -> StatsSnapshot:
        """
        Build a snapshot at ``now``.

        Args:
            now: Current wall-clock timestamp (epoch seconds).
            started_at: Session start timestamp (epoch seconds), or None if the
                session never started.
        """
        elapsed = 0.0
        if started_at is not None:
            elapsed = max(0.0, now - started_at)
        return StatsSnapshot(
            elapsed_seconds=elapsed,
            call_count=self._call_count,
            avg_server_latency_ms=self.avg_latency_ms,
        )
