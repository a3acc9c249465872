"""Bounded async fan-out.

Keeps at most ``limit`` coroutines in flight: start tasks until the limit is
reached, wait for whichever finishes first, then start the next one. Results
arrive in completion order, so callers re-sort before use.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

from .config import MAX_CONCURRENT_REQUESTS

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def bounded_fanout(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int = MAX_CONCURRENT_REQUESTS,
    on_result: Callable[[T, R], None] | None = None,
    on_error: Callable[[T, Exception], None] | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> None:
    """Run ``worker`` over ``items`` with at most ``limit`` outstanding calls.

    A failing item is reported to ``on_error`` and never aborts the batch.
    ``should_stop`` is consulted before each launch; tasks already running
    are still awaited.
    """
    pending: dict[asyncio.Task, T] = {}

    def _settle(done: set[asyncio.Task]) -> None:
        for task in done:
            item = pending.pop(task)
            exc = task.exception()
            if exc is not None:
                if on_error:
                    on_error(item, exc)
                else:
                    log.warning("Task for %r failed: %s", item, exc)
            elif on_result:
                on_result(item, task.result())

    for item in items:
        if should_stop and should_stop():
            break
        pending[asyncio.ensure_future(worker(item))] = item
        if len(pending) >= limit:
            done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)
            _settle(done)

    while pending:
        done, _ = await asyncio.wait(pending.keys(), return_when=asyncio.FIRST_COMPLETED)
        _settle(done)
