"""Versioned, stampede-safe cache-aside service.

:meth:`CacheService.cache_wrap` is the primitive every upstream lookup goes
through:

1. If caching is disabled (``NO_CACHE``) or no backend is reachable, the
   producer is called directly.
2. The key is namespaced by release (``v{release}:{key}``) so each deploy
   starts from a fresh namespace without manual invalidation.
3. Unless ``bypass`` is set, the backend is read; a hit is decoded and
   returned.  An undecodable entry counts as a miss and is deleted.
4. On a miss, if the same versioned key already has a producer running in
   this process, the caller awaits that producer's result instead of
   starting another one.  The producer runs in its own task, so cancelling
   one caller never cancels it for the others.
5. Otherwise the producer runs.  A non-``None`` result is written with the
   requested TTL; a failure is re-raised to every waiting caller and nothing
   is cached.

Backend errors never escape ``cache_wrap``: they are logged and counted as
errors.  Producer errors always do.

The named specializations (``wrap_meta``, ``wrap_catalog``,
``wrap_static_catalog``, ``wrap_provider_api`` and its per-provider
shortcuts) pick a key namespace and TTL policy and then defer to the same
primitive.
"""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from mediabridge.interfaces.cache_provider import ICacheProvider
from mediabridge.utils.errors import BackendUnavailableError, SerializationFailureError
from mediabridge.utils.logging import get_logger, truncate_cache_key

_T = TypeVar("_T")

Producer = Callable[[], Awaitable[_T]]

_MISS = object()

# TTLs used when the caller's config omits a namespace.
DEFAULT_TTLS: dict[str, int] = {
    "meta": 7 * 24 * 60 * 60,
    "catalog": 24 * 60 * 60,
    "static_catalog": 30 * 24 * 60 * 60,
    "tvdb-api": 12 * 60 * 60,
    "tvmaze-api": 12 * 60 * 60,
    "jikan-api": 7 * 24 * 60 * 60,
    "tmdb-api": 12 * 60 * 60,
}

_TOP_KEYS = 10


@dataclass
class CacheHealth:
    """Hit/miss/error counters for one :class:`CacheService`."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    corrupted_entries: int = 0
    key_access_counts: Counter = field(default_factory=Counter)

    def record(self, key: str, outcome: str) -> None:
        self.key_access_counts[key] += 1
        if outcome == "hit":
            self.hits += 1
        elif outcome == "miss":
            self.misses += 1
        else:
            self.errors += 1

    def snapshot(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "corrupted_entries": self.corrupted_entries,
            "total_requests": total,
            "hit_rate": f"{(self.hits / total * 100) if total else 0:.2f}",
            "error_rate": f"{(self.errors / total * 100) if total else 0:.2f}",
            "most_accessed_keys": [
                {"key": key, "count": count}
                for key, count in self.key_access_counts.most_common(_TOP_KEYS)
            ],
        }


class CacheService:
    """Cache-aside wrapper with per-process in-flight deduplication.

    Parameters
    ----------
    backend:
        The key-value store, or ``None`` when no backend is reachable.
    release_version:
        Namespace prefix of every versioned key.
    enabled:
        Global switch; ``False`` turns every wrap into a direct call.
    ttl_policies:
        Seconds per namespace (``meta``, ``catalog``, ``static_catalog``,
        ``<provider>-api``); missing entries fall back to ``DEFAULT_TTLS``.
    uncached_catalogs:
        Catalog ids that :meth:`wrap_catalog` never caches.
    global_meta_prefixes:
        Meta id prefixes that :meth:`wrap_meta` stores in the shared
        global namespace.
    """

    def __init__(
        self,
        backend: ICacheProvider | None,
        release_version: str,
        enabled: bool = True,
        ttl_policies: Mapping[str, int] | None = None,
        uncached_catalogs: Iterable[str] = (),
        global_meta_prefixes: Iterable[str] = (),
    ) -> None:
        self._backend = backend
        self._release_version = release_version
        self._enabled = enabled
        self._ttls = {**DEFAULT_TTLS, **(ttl_policies or {})}
        self._uncached_catalogs = frozenset(uncached_catalogs)
        self._global_meta_prefixes = tuple(global_meta_prefixes)
        self._inflight: dict[str, asyncio.Future[Any]] = {}
        self._health = CacheHealth()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Keys and state
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """``True`` when reads and writes go to a backend."""
        return self._enabled and self._backend is not None

    def versioned_key(self, key: str) -> str:
        return f"v{self._release_version}:{key}"

    def global_key(self, key: str) -> str:
        return f"global:{self._release_version}:{key}"

    def ttl_for(self, namespace: str) -> int:
        return self._ttls.get(namespace, DEFAULT_TTLS["meta"])

    def inflight_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Core primitive
    # ------------------------------------------------------------------

    async def cache_wrap(
        self, key: str, producer: Producer[_T], ttl: int, bypass: bool = False
    ) -> _T:
        """Return the cached value for *key*, or produce and cache it.

        Parameters
        ----------
        key:
            Unversioned cache key.
        producer:
            Zero-argument coroutine function computing the value.
        ttl:
            Seconds to keep a produced value.
        bypass:
            Skip the read and always produce (the result is still written).
        """
        return await self._wrap(self.versioned_key(key), producer, ttl, bypass)

    async def wrap_global(
        self, key: str, producer: Producer[_T], ttl: int, bypass: bool = False
    ) -> _T:
        """Like :meth:`cache_wrap` for values independent of any user config."""
        return await self._wrap(self.global_key(key), producer, ttl, bypass)

    async def _wrap(
        self, full_key: str, producer: Producer[_T], ttl: int, bypass: bool
    ) -> _T:
        if not self.is_active:
            return await producer()

        if not bypass:
            cached = await self._read(full_key)
            if cached is not _MISS:
                return cached

        task = self._inflight.get(full_key)
        if task is None:
            task = asyncio.ensure_future(self._produce(full_key, producer, ttl))
            self._inflight[full_key] = task
            task.add_done_callback(lambda done: self._forget(full_key, done))
        else:
            self._logger.debug("cache_inflight_join", key=truncate_cache_key(full_key))
        # Cancelling one caller leaves the shared producer running for the rest.
        return await asyncio.shield(task)

    async def _produce(self, full_key: str, producer: Producer[_T], ttl: int) -> _T:
        try:
            result = await producer()
        except Exception as exc:
            self._health.record(full_key, "error")
            self._logger.warning(
                "cache_producer_failed",
                key=truncate_cache_key(full_key),
                error=str(exc),
            )
            raise

        self._health.record(full_key, "miss")
        self._logger.debug("cache_miss", key=truncate_cache_key(full_key))
        if result is not None:
            await self._write(full_key, result, ttl)
        return result

    def _forget(self, full_key: str, task: asyncio.Future[Any]) -> None:
        if self._inflight.get(full_key) is task:
            del self._inflight[full_key]
        if not task.cancelled():
            # Retrieved here for the case where every caller went away.
            task.exception()

    async def _read(self, full_key: str) -> Any:
        if self._backend is None:
            return _MISS
        try:
            raw = await self._backend.get(full_key)
        except BackendUnavailableError as exc:
            self._health.record(full_key, "error")
            self._logger.warning(
                "cache_read_failed", key=truncate_cache_key(full_key), error=str(exc)
            )
            return _MISS

        if raw is None:
            return _MISS

        try:
            value = self._decode(raw)
        except SerializationFailureError as exc:
            self._health.corrupted_entries += 1
            self._logger.warning(
                "cache_entry_corrupted", key=truncate_cache_key(full_key), error=str(exc)
            )
            await self._discard(full_key)
            return _MISS

        self._health.record(full_key, "hit")
        self._logger.debug("cache_hit", key=truncate_cache_key(full_key))
        return value

    async def _write(self, full_key: str, value: Any, ttl: int) -> None:
        if self._backend is None or ttl <= 0:
            return
        try:
            payload = self._encode(value)
            await self._backend.set(full_key, payload, ttl)
        except (BackendUnavailableError, SerializationFailureError) as exc:
            self._health.record(full_key, "error")
            self._logger.warning(
                "cache_write_failed", key=truncate_cache_key(full_key), error=str(exc)
            )

    async def _discard(self, full_key: str) -> None:
        if self._backend is None:
            return
        try:
            await self._backend.delete(full_key)
        except BackendUnavailableError as exc:
            self._logger.warning(
                "cache_discard_failed", key=truncate_cache_key(full_key), error=str(exc)
            )

    @staticmethod
    def _encode(value: Any) -> str:
        try:
            return json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise SerializationFailureError(f"Value is not JSON-serializable: {exc}") from exc

    @staticmethod
    def _decode(raw: str) -> Any:
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise SerializationFailureError(f"Cached payload is not valid JSON: {exc}") from exc

    # ------------------------------------------------------------------
    # Named specializations
    # ------------------------------------------------------------------

    async def wrap_meta(
        self,
        meta_id: str,
        producer: Producer[_T],
        config_string: str = "",
        variant: str = "",
        ttl: int | None = None,
    ) -> _T:
        """Cache one meta record.

        Meta ids carrying a provider prefix do not depend on the caller's
        config string and share one global entry per *variant* (language,
        provider selection); anything else is keyed on *config_string*.
        """
        ttl = self.ttl_for("meta") if ttl is None else ttl
        if meta_id.startswith(self._global_meta_prefixes):
            return await self.wrap_global(f"meta-global:{meta_id}:{variant}", producer, ttl)
        return await self.cache_wrap(f"meta:{config_string}:{meta_id}", producer, ttl)

    async def wrap_catalog(
        self, config_string: str, catalog_key: str, producer: Producer[_T]
    ) -> _T:
        """Cache one catalog page, except for catalogs listed as uncached."""
        catalog_id = catalog_key.split(":", 1)[0]
        if catalog_id in self._uncached_catalogs:
            self._logger.debug("cache_skip_uncached_catalog", catalog=catalog_id)
            return await producer()
        return await self.cache_wrap(
            f"catalog:{config_string}:{catalog_key}", producer, self.ttl_for("catalog")
        )

    async def wrap_static_catalog(
        self, config_string: str, catalog_key: str, producer: Producer[_T]
    ) -> _T:
        """Cache a historical catalog whose content effectively never changes."""
        return await self.cache_wrap(
            f"catalog:{config_string}:{catalog_key}", producer, self.ttl_for("static_catalog")
        )

    async def wrap_provider_api(
        self,
        provider: str,
        key: str,
        producer: Producer[_T],
        ttl: int | None = None,
        bypass: bool = False,
    ) -> _T:
        """Cache a raw upstream API response in the provider's global namespace."""
        namespace = f"{provider}-api"
        ttl = self.ttl_for(namespace) if ttl is None else ttl
        subkey = "-".join(key.split())
        return await self.wrap_global(f"{namespace}:{subkey}", producer, ttl, bypass)

    async def wrap_tvdb_api(self, key: str, producer: Producer[_T], bypass: bool = False) -> _T:
        return await self.wrap_provider_api("tvdb", key, producer, bypass=bypass)

    async def wrap_tvmaze_api(self, key: str, producer: Producer[_T]) -> _T:
        return await self.wrap_provider_api("tvmaze", key, producer)

    async def wrap_jikan_api(self, key: str, producer: Producer[_T]) -> _T:
        return await self.wrap_provider_api("jikan", key, producer)

    async def wrap_tmdb_api(self, key: str, producer: Producer[_T]) -> _T:
        return await self.wrap_provider_api("tmdb", key, producer)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear(self, full_key: str) -> int:
        """Delete one fully-qualified key; return the number removed.

        Raises
        ------
        BackendUnavailableError
            If the backend cannot be reached.
        """
        if self._backend is None:
            self._logger.warning("cache_clear_without_backend", key=full_key)
            return 0
        removed = await self._backend.delete(full_key)
        self._logger.info("cache_cleared", key=truncate_cache_key(full_key), removed=removed)
        return removed

    def get_health(self) -> dict[str, Any]:
        """Return hit/miss/error statistics and the most accessed keys."""
        stats = self._health.snapshot()
        stats["backend"] = self._backend.get_provider_name() if self._backend else None
        stats["enabled"] = self.is_active
        return stats

    def log_health(self) -> None:
        stats = self._health.snapshot()
        self._logger.info(
            "cache_health",
            hit_rate=stats["hit_rate"],
            error_rate=stats["error_rate"],
            hits=stats["hits"],
            misses=stats["misses"],
            errors=stats["errors"],
        )

    def clear_health(self) -> None:
        self._health = CacheHealth()
        self._logger.info("cache_health_cleared")

    async def aclose(self) -> None:
        if self._backend is not None:
            await self._backend.aclose()
