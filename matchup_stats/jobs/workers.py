"""Bounded-concurrency fan-out for I/O bound job steps."""

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_bounded(
    items: Sequence[T],
    concurrency: int,
    handler: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Run ``handler`` over ``items`` with at most ``concurrency`` in flight.

    Results come back in input order. If any handler raises, the remaining
    handlers are cancelled and the exception propagates.
    """
    semaphore = asyncio.Semaphore(max(1, int(concurrency)))

    async def run_one(item: T) -> R:
        async with semaphore:
            return await handler(item)

    tasks = [asyncio.ensure_future(run_one(item)) for item in items]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
