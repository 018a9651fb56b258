"""Batching and bounded fan-out for embedding calls.

Publish embeds every fragment of a session.  Texts are cut into
``batch_ranges`` and the batches are awaited through
:func:`throttled_gather`, which never runs more than the semaphore allows
so a large session cannot trip the provider's rate limit on its own.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

_T = TypeVar("_T")


def batch_ranges(total: int, batch_size: int) -> list[tuple[int, int]]:
    """Half-open ``(start, end)`` index ranges covering ``range(total)``.

    >>> batch_ranges(5, 2)
    [(0, 2), (2, 4), (4, 5)]
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [(start, min(start + batch_size, total)) for start in range(0, total, batch_size)]


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
) -> list[_T | BaseException]:
    """Await *coros* under *semaphore*, keeping input order.

    Failures come back in the result list instead of cancelling the other
    batches, so the caller can report exactly which range failed.
    """

    async def _guarded(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(*(_guarded(c) for c in coros), return_exceptions=True)
