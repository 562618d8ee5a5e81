"""
Result Aggregator

Buffers incoming result items into fixed-size buckets and moves each full
bucket into the visible result set, so the presentation layer redraws once
per bucket instead of once per item.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

logger = logging.getLogger(__name__)


class ResultAggregator:
    """
    Fixed-capacity bucket in front of an append-only result set.

    A flush happens exactly when the bucket reaches ``capacity`` items, so
    between flushes the bucket holds ``pushed % capacity`` items. Arrival
    order is preserved. ``flush_remainder()`` moves a partial bucket once the
    stream has terminated.
    """

    def __init__(
        self,
        capacity: int,
        on_flush: Callable[[int], None] | None = None,
    ) -> None:
        """
        Args:
            capacity: Bucket size (K). Must be at least 1.
            on_flush: "Results changed" signal, called with the number of
                items moved by each non-empty flush.
        """
        if int(capacity) < 1:
            raise ValueError(f"Bucket capacity must be >= 1, got {capacity}")
        self._capacity = int(capacity)
        self._on_flush = on_flush
        self._bucket: list[Any] = []
        self._results: list[Any] = []
        self._pushed = 0
        self._flush_count = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def results(self) -> Sequence[Any]:
        """Read-only view of the flushed results."""
        return tuple(self._results)

    @property
    def result_count(self) -> int:
        return len(self._results)

    @property
    def buffered(self) -> int:
        return len(self._bucket)

    @property
    def pushed(self) -> int:
        return self._pushed

    @property
    def flush_count(self) -> int:
        return self._flush_count

    def push(self, item: Any) -> None:
        self._bucket.append(item)
        self._pushed += 1
        if len(self._bucket) >= self._capacity:
            self._flush()

    def flush_remainder(self) -> int:
        """Move any partial bucket into the result set. Returns items moved."""
        return self._flush()

    def _flush(self) -> int:
        if not self._bucket:
            return 0
        moved = len(self._bucket)
        self._results.extend(self._bucket)
        self._bucket = []
        self._flush_count += 1
        logger.debug(f"Flushed {moved} results (total={len(self._results)})")
        if self._on_flush is not None:
            self._on_flush(moved)
        return moved

    def results_since(self, offset: int) -> list[Any]:
        """Flushed results at positions >= offset."""
        return self._results[max(0, int(offset)) :]

    def page(self, page: int, page_size: int) -> list[Any]:
        """Zero-based page of the flushed results."""
        page = max(0, int(page))
        page_size = max(1, int(page_size))
        start = page * page_size
        return self._results[start : start + page_size]
