from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

LOGGER = logging.getLogger('agents.concurrency')

T = TypeVar('T')
R = TypeVar('R')


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    task: Callable[[T, int], Awaitable[R]]
) -> list[R | None]:
    """Run ``task(item, index)`` over items with at most ``limit`` in flight.

    Results land in the slot matching the item's index, so the output order is
    the input order whatever order tasks finish in. A task that raises leaves
    ``None`` in its slot and does not stop the other workers.
    """
    if limit < 1:
        raise ValueError(f'limit must be >= 1, got {limit}')

    results: list[R | None] = [None] * len(items)
    # next() on a shared counter is a claim: there is no await between reading and using it.
    cursor = itertools.count()

    async def worker() -> None:
        while True:
            index = next(cursor)
            if index >= len(items):
                return
            try:
                results[index] = await task(items[index], index)
            except Exception as exc:
                LOGGER.warning('task failed index=%s: %s', index, exc)
                results[index] = None

    await asyncio.gather(*(worker() for _ in range(min(limit, len(items)))))
    return results
