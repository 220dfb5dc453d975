"""Shared concurrency primitives for provider fan-out.

Two patterns are exposed:

1. **throttled_gather** -- ``asyncio.gather`` with each awaitable wrapped
   in a semaphore acquire/release, so a batch of lookups never opens more
   than ``limit`` concurrent upstream requests.

2. **chunked** -- splits an id list into fixed-size batches for providers
   that accept several ids per request (Kitsu's ``filter[id]``).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, Sequence, TypeVar

_T = TypeVar("_T")

_DEFAULT_LIMIT = 4


async def throttled_gather(
    coros: Iterable[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently under a semaphore.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Concurrency guard.  A fresh semaphore with a limit of
        ``_DEFAULT_LIMIT`` is created when omitted.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list
        Results in the same order as the input awaitables.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(_DEFAULT_LIMIT)

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    return await asyncio.gather(
        *(_wrapped(c) for c in coros), return_exceptions=return_exceptions
    )


def chunked(items: Sequence[_T], size: int) -> list[list[_T]]:
    """Split *items* into consecutive lists of at most *size* elements."""
    if size <= 0:
        msg = f"Chunk size must be positive, got {size}"
        raise ValueError(msg)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
