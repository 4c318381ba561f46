from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

T = TypeVar("T")
U = TypeVar("U")


async def map_parallel(
    items: Iterable[T],
    n_workers: int,
    callback: Callable[[T, int], Awaitable[U]],
) -> list[U]:
    """Run ``callback`` over ``items`` with at most ``n_workers`` in flight.

    Results are index-aligned with the input.
    """
    values = list(items)
    semaphore = asyncio.Semaphore(max(min(n_workers, len(values) or 1), 1))

    async def run_one(value: T, index: int) -> U:
        async with semaphore:
            return await callback(value, index)

    return list(await asyncio.gather(*(run_one(value, index) for index, value in enumerate(values))))
