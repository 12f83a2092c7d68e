"""Bounded-concurrency batch runner used for detail-page enrichment.

Items are processed in fixed-size windows: every coroutine in a window
runs concurrently, the window is awaited as a whole, and a fixed pause is
inserted before the next window starts.  Results come back in input order
no matter which coroutine finished first.

Usage::

    details = await process_in_batches(
        items, spider.fetch_detail, batch_size=10, delay=0.5,
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger(__name__)


async def process_in_batches(
    items: Sequence[T],
    per_item: Callable[[T], Awaitable[R]],
    *,
    batch_size: int,
    delay: float = 0.0,
    results: list[R | None] | None = None,
) -> list[R | None]:
    """Run *per_item* over *items*, *batch_size* at a time.

    Parameters
    ----------
    items:
        The inputs, in the order results should be returned.
    per_item:
        Coroutine function called once per item.  It is expected to catch
        its own errors and return an "unknown" value instead of raising.
    batch_size:
        Maximum number of *per_item* calls in flight at once.
    delay:
        Seconds to wait between windows (never after the last one).
    results:
        Optional buffer to append to.  Results are only appended once a
        whole window has settled, so the buffer never holds a partial
        window.

    Returns
    -------
    list
        *results* (or a new list) extended with one entry per item, in
        input order.  If *per_item* does raise, the exception is logged and
        that slot holds ``None``; the other items in the window still run
        to completion.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    buffer: list[R | None] = [] if results is None else results

    for start in range(0, len(items), batch_size):
        window = items[start:start + batch_size]
        settled = await asyncio.gather(
            *(per_item(item) for item in window),
            return_exceptions=True,
        )

        window_results: list[R | None] = []
        for offset, outcome in enumerate(settled):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    "Batch item %d failed: %s: %s",
                    start + offset, type(outcome).__name__, outcome,
                )
                window_results.append(None)
            else:
                window_results.append(outcome)
        buffer.extend(window_results)

        if delay and start + batch_size < len(items):
            await asyncio.sleep(delay)

    return buffer
