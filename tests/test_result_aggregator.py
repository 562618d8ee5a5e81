#!/usr/bin/env python3
"""
Unit tests for ResultAggregator.

Tests bucket flushing, ordering and remainder handling.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from sage_console.core.result_aggregator import ResultAggregator


def test_flush_happens_exactly_at_capacity():
    flushes: list[int] = []
    agg = ResultAggregator(10, on_flush=flushes.append)

    for i in range(9):
        agg.push(i)
    assert agg.buffered == 9
    assert agg.result_count == 0
    assert flushes == []

    agg.push(9)
    assert agg.buffered == 0
    assert agg.result_count == 10
    assert flushes == [10]


def test_scenario_25_items_two_flushes_then_remainder():
    flushes: list[int] = []
    agg = ResultAggregator(10, on_flush=flushes.append)

    for i in range(25):
        agg.push(i)
        if i == 9:
            assert agg.result_count == 10
        if i == 19:
            assert agg.result_count == 20

    assert flushes == [10, 10]
    assert agg.result_count == 20
    assert agg.buffered == 5

    moved = agg.flush_remainder()
    assert moved == 5
    assert flushes == [10, 10, 5]
    assert list(agg.results) == list(range(25))
    assert agg.buffered == 0


@pytest.mark.parametrize("capacity,count", [(1, 7), (3, 10), (4, 8), (10, 0), (7, 6)])
def test_remainder_preserves_every_item_in_order(capacity, count):
    agg = ResultAggregator(capacity)
    items = [f"item-{i}" for i in range(count)]

    for n, item in enumerate(items, start=1):
        agg.push(item)
        assert agg.buffered == n % capacity

    agg.flush_remainder()
    assert list(agg.results) == items


def test_flush_remainder_on_empty_bucket_is_noop():
    flushes: list[int] = []
    agg = ResultAggregator(10, on_flush=flushes.append)

    assert agg.flush_remainder() == 0
    assert agg.result_count == 0
    assert agg.flush_count == 0
    assert flushes == []


def test_results_view_is_read_only_copy():
    agg = ResultAggregator(2)
    agg.push("a")
    agg.push("b")

    results = agg.results
    assert isinstance(results, tuple)
    agg.push("c")
    agg.push("d")
    assert results == ("a", "b")


def test_page_and_results_since():
    agg = ResultAggregator(5)
    for i in range(12):
        agg.push(i)
    agg.flush_remainder()

    assert agg.page(0, 5) == [0, 1, 2, 3, 4]
    assert agg.page(2, 5) == [10, 11]
    assert agg.page(3, 5) == []
    assert agg.results_since(9) == [9, 10, 11]
    assert agg.results_since(-3) == list(range(12))


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        ResultAggregator(0)
