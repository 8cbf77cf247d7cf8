from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def parallel_map_ordered(
    func: Callable[[T], R],
    items: Sequence[T] | Iterable[T],
    max_workers: int,
) -> List[R]:
    """
    Run func over items on at most max_workers threads; results come back in
    input order (tenant order for the fetch step).

    Only max_workers calls are ever in flight, so items is consumed lazily.
    The first exception is re-raised right away: items not yet started are
    never started and the call does not wait for the calls still running.
    """
    source = iter(items)
    running: Dict[Future[R], int] = {}
    finished: Dict[int, R] = {}
    ordered: List[R] = []
    submitted = 0

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="emma-inv")

    def _fill() -> None:
        nonlocal submitted
        while len(running) < max_workers:
            try:
                item = next(source)
            except StopIteration:
                return
            running[executor.submit(func, item)] = submitted
            submitted += 1

    try:
        _fill()
        while running:
            done, _ = wait(running.keys(), return_when=FIRST_COMPLETED)
            for fut in done:
                finished[running.pop(fut)] = fut.result()
            while len(ordered) in finished:
                ordered.append(finished.pop(len(ordered)))
            _fill()
    except BaseException:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return ordered
