"""In-memory cache provider using cachetools.TLRUCache.

Simple, fast backend for development and single-process deployments.  Unlike
a plain ``TTLCache``, ``TLRUCache`` computes an expiry per item, so each
``set`` honours its own TTL.  Swap in the Redis backend via the
ICacheProvider interface for anything shared across processes.
"""

from __future__ import annotations

import time
from typing import Callable, NamedTuple

import structlog
from cachetools import TLRUCache

from mediabridge.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class _Entry(NamedTuple):
    value: str
    ttl: int


def _time_to_use(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class MemoryCacheProvider(ICacheProvider):
    """In-memory cache with per-entry TTL backed by ``cachetools.TLRUCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    timer:
        Monotonic clock used for expiry; injectable for tests.
    """

    def __init__(
        self,
        max_size: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TLRUCache[str, _Entry] = TLRUCache(
            maxsize=max_size, ttu=_time_to_use, timer=timer
        )

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the cached value for *key*, or ``None`` if missing/expired."""
        entry = self._cache.get(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store *value* under *key*; it expires *ttl* seconds from now."""
        if ttl <= 0:
            return
        self._cache[key] = _Entry(value, ttl)
        logger.debug("memory_cache_set", key=key, ttl=ttl)

    async def delete(self, key: str) -> int:
        """Remove *key* from the cache (no-op if absent)."""
        return 1 if self._cache.pop(key, None) is not None else 0

    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
        return key in self._cache

    async def ping(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)
