"""Abstract base class for cache backends.

Defines the key-value contract that :class:`~mediabridge.services.cache_service.CacheService`
builds its cache-aside primitive on.  Values are already-serialized strings;
encoding and decoding is the service's job so that every backend stores the
same bytes.  Implementations may keep entries in process memory or in Redis.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ICacheProvider(ABC):
    """Contract for key-value cache backends.

    All operations are async to allow network-backed stores without
    blocking the event loop.  Implementations raise
    :class:`~mediabridge.utils.errors.BackendUnavailableError` when the
    store cannot be reached; they never return stale entries past their TTL.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the serialized value stored under *key*, or ``None``.

        Parameters
        ----------
        key:
            The (versioned) cache key to look up.
        """

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        """Store *value* under *key* for *ttl* seconds.

        Parameters
        ----------
        key:
            The cache key.
        value:
            Serialized payload.
        ttl:
            Time-to-live in seconds; must be positive.
        """

    @abstractmethod
    async def delete(self, key: str) -> int:
        """Remove *key*; return the number of entries removed (0 or 1)."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the backend is reachable."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log lines."""

    async def aclose(self) -> None:  # noqa: B027
        """Release connections held by the backend."""
