from __future__ import annotations

import threading
import time
from typing import List

import pytest

from emma_inventory.util.concurrency import parallel_map_ordered


def test_parallel_map_ordered_preserves_order() -> None:
    def _slow_double(x: int) -> int:
        time.sleep(0.01 * (5 - x))
        return x * 2

    assert parallel_map_ordered(_slow_double, range(6), max_workers=3) == [0, 2, 4, 6, 8, 10]


def test_parallel_map_ordered_propagates_errors() -> None:
    def _fail_on_two(x: int) -> int:
        if x == 2:
            raise RuntimeError("boom")
        return x

    with pytest.raises(RuntimeError):
        parallel_map_ordered(_fail_on_two, [1, 2, 3], max_workers=2)


def test_parallel_map_ordered_fails_fast_without_waiting_for_running_calls() -> None:
    release = threading.Event()
    started: List[int] = []

    def _work(x: int) -> int:
        started.append(x)
        if x == 0:
            raise RuntimeError("boom")
        release.wait(5)
        return x

    began = time.perf_counter()
    with pytest.raises(RuntimeError):
        parallel_map_ordered(_work, range(10), max_workers=2)
    elapsed = time.perf_counter() - began
    release.set()

    assert elapsed < 4
    assert 0 in started
    assert len(started) <= 3


def test_parallel_map_ordered_consumes_items_lazily() -> None:
    pulled: List[int] = []

    def _items():
        for i in range(5):
            pulled.append(i)
            yield i

    def _fail_first(x: int) -> int:
        if x == 0:
            raise RuntimeError("boom")
        time.sleep(0.05)
        return x

    with pytest.raises(RuntimeError):
        parallel_map_ordered(_fail_first, _items(), max_workers=1)

    assert pulled == [0]
