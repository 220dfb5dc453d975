"""Unit tests for CacheService (versioned, stampede-safe cache-aside)."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from mediabridge.interfaces.cache_provider import ICacheProvider
from mediabridge.providers.cache.memory_cache import MemoryCacheProvider
from mediabridge.services.cache_service import _MISS, CacheService
from mediabridge.utils.errors import BackendUnavailableError, NetworkFailureError


def _counting_producer(value: object, delay: float = 0.0) -> AsyncMock:
    async def _produce() -> object:
        if delay:
            await asyncio.sleep(delay)
        return value

    return AsyncMock(side_effect=_produce)


def _failing_backend() -> MagicMock:
    backend = MagicMock(spec=ICacheProvider)
    error = BackendUnavailableError("connection refused", provider_name="redis")
    backend.get = AsyncMock(side_effect=error)
    backend.set = AsyncMock(side_effect=error)
    backend.delete = AsyncMock(side_effect=error)
    backend.get_provider_name.return_value = "redis"
    return backend


# ======================================================================
# Core primitive
# ======================================================================


class TestCacheWrap:
    @pytest.mark.asyncio
    async def test_miss_then_hit(self, cache_service: CacheService) -> None:
        producer = _counting_producer({"id": 603})

        first = await cache_service.cache_wrap("movie:603", producer, ttl=60)
        second = await cache_service.cache_wrap("movie:603", producer, ttl=60)

        assert first == second == {"id": 603}
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_key_is_namespaced_by_release(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await cache_service.cache_wrap("movie:603", _counting_producer("x"), ttl=60)

        assert await memory_backend.get("v9.9.9:movie:603") == json.dumps("x")
        assert await memory_backend.get("movie:603") is None

    @pytest.mark.asyncio
    async def test_new_release_starts_from_empty_namespace(
        self, memory_backend: MemoryCacheProvider
    ) -> None:
        old = CacheService(backend=memory_backend, release_version="1.0.0")
        new = CacheService(backend=memory_backend, release_version="1.1.0")
        producer = _counting_producer("value")

        await old.cache_wrap("k", producer, ttl=60)
        await new.cache_wrap("k", producer, ttl=60)

        assert producer.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_producer(
        self, cache_service: CacheService
    ) -> None:
        producer = _counting_producer({"slow": True}, delay=0.05)

        results = await asyncio.gather(
            cache_service.cache_wrap("slow", producer, ttl=60),
            cache_service.cache_wrap("slow", producer, ttl=60),
            cache_service.cache_wrap("slow", producer, ttl=60),
        )

        assert producer.await_count == 1
        assert results == [{"slow": True}] * 3
        assert cache_service.inflight_count() == 0

    @pytest.mark.asyncio
    async def test_value_expires_after_ttl(
        self, cache_service: CacheService, clock: Any
    ) -> None:
        producer = _counting_producer("fresh")

        await cache_service.cache_wrap("ttl-key", producer, ttl=30)
        clock.advance(29)
        await cache_service.cache_wrap("ttl-key", producer, ttl=30)
        assert producer.await_count == 1

        clock.advance(2)
        await cache_service.cache_wrap("ttl-key", producer, ttl=30)
        assert producer.await_count == 2

    @pytest.mark.asyncio
    async def test_none_result_is_never_written(self) -> None:
        backend = MagicMock(spec=ICacheProvider)
        backend.get = AsyncMock(return_value=None)
        backend.set = AsyncMock()
        service = CacheService(backend=backend, release_version="1")

        result = await service.cache_wrap("missing", _counting_producer(None), ttl=60)

        assert result is None
        backend.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_falsy_non_none_values_are_cached(self, cache_service: CacheService) -> None:
        producer = _counting_producer([])

        await cache_service.cache_wrap("empty-list", producer, ttl=60)
        assert await cache_service.cache_wrap("empty-list", producer, ttl=60) == []
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_bypass_skips_read_but_writes(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await cache_service.cache_wrap("k", _counting_producer("old"), ttl=60)
        producer = _counting_producer("new")

        result = await cache_service.cache_wrap("k", producer, ttl=60, bypass=True)

        assert result == "new"
        assert await memory_backend.get("v9.9.9:k") == json.dumps("new")

    @pytest.mark.asyncio
    async def test_producer_failure_propagates_to_all_waiters(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        calls = 0

        async def _boom() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.02)
            raise NetworkFailureError("upstream 500", provider_name="tmdb")

        results = await asyncio.gather(
            cache_service.cache_wrap("bad", _boom, ttl=60),
            cache_service.cache_wrap("bad", _boom, ttl=60),
            return_exceptions=True,
        )

        assert calls == 1
        assert all(isinstance(r, NetworkFailureError) for r in results)
        assert await memory_backend.get("v9.9.9:bad") is None
        assert cache_service.inflight_count() == 0

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_joined_callers(
        self, cache_service: CacheService
    ) -> None:
        producer = _counting_producer({"slow": True}, delay=0.1)

        owner = asyncio.ensure_future(cache_service.cache_wrap("shared", producer, ttl=60))
        await asyncio.sleep(0.01)
        joiner = asyncio.ensure_future(cache_service.cache_wrap("shared", producer, ttl=60))
        await asyncio.sleep(0.01)
        owner.cancel()

        assert await joiner == {"slow": True}
        with pytest.raises(asyncio.CancelledError):
            await owner
        assert producer.await_count == 1
        assert cache_service.inflight_count() == 0
        assert await cache_service.cache_wrap("shared", producer, ttl=60) == {"slow": True}
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_failure_is_not_cached(self, cache_service: CacheService) -> None:
        producer = AsyncMock(side_effect=[NetworkFailureError("down"), "recovered"])

        with pytest.raises(NetworkFailureError):
            await cache_service.cache_wrap("flaky", producer, ttl=60)
        assert await cache_service.cache_wrap("flaky", producer, ttl=60) == "recovered"

    @pytest.mark.asyncio
    async def test_backend_failures_never_escape(self) -> None:
        service = CacheService(backend=_failing_backend(), release_version="1")
        producer = _counting_producer({"ok": 1})

        assert await service.cache_wrap("k", producer, ttl=60) == {"ok": 1}
        assert service.get_health()["errors"] == 2

    @pytest.mark.asyncio
    async def test_corrupted_entry_is_deleted_and_reproduced(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await memory_backend.set("v9.9.9:corrupt", "{not json", 60)
        producer = _counting_producer({"healed": True})

        result = await cache_service.cache_wrap("corrupt", producer, ttl=60)

        assert result == {"healed": True}
        assert producer.await_count == 1
        assert cache_service.get_health()["corrupted_entries"] == 1
        assert await memory_backend.get("v9.9.9:corrupt") == json.dumps({"healed": True})


class TestDisabledCache:
    @pytest.mark.asyncio
    async def test_backend_io_without_backend_is_a_no_op(self, disabled_cache: CacheService) -> None:
        await disabled_cache._write("v9.9.9:k", {"a": 1}, 60)
        await disabled_cache._discard("v9.9.9:k")

        assert await disabled_cache._read("v9.9.9:k") is _MISS
        assert disabled_cache.get_health()["errors"] == 0

    @pytest.mark.asyncio
    async def test_disabled_calls_producer_every_time(self, disabled_cache: CacheService) -> None:
        producer = _counting_producer("v")

        await disabled_cache.cache_wrap("k", producer, ttl=60)
        await disabled_cache.cache_wrap("k", producer, ttl=60)

        assert producer.await_count == 2
        assert disabled_cache.is_active is False

    @pytest.mark.asyncio
    async def test_no_dedup_when_disabled(self, disabled_cache: CacheService) -> None:
        producer = _counting_producer("v", delay=0.01)

        await asyncio.gather(
            disabled_cache.cache_wrap("k", producer, ttl=60),
            disabled_cache.cache_wrap("k", producer, ttl=60),
        )

        assert producer.await_count == 2

    @pytest.mark.asyncio
    async def test_enabled_flag_false_ignores_backend(
        self, memory_backend: MemoryCacheProvider
    ) -> None:
        service = CacheService(backend=memory_backend, release_version="1", enabled=False)

        await service.cache_wrap("k", _counting_producer("v"), ttl=60)

        assert len(memory_backend) == 0


# ======================================================================
# Specializations
# ======================================================================


class TestSpecializations:
    @pytest.mark.asyncio
    async def test_meta_with_provider_prefix_is_global(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        producer = _counting_producer({"name": "Matrix"})

        await cache_service.wrap_meta("tmdb:603", producer, config_string="cfgA", variant="en")
        await cache_service.wrap_meta("tmdb:603", producer, config_string="cfgB", variant="en")

        assert producer.await_count == 1
        assert await memory_backend.exists("global:9.9.9:meta-global:tmdb:603:en")

    @pytest.mark.asyncio
    async def test_meta_without_prefix_is_keyed_on_config(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        producer = _counting_producer({"name": "custom"})

        await cache_service.wrap_meta("custom:1", producer, config_string="cfgA")
        await cache_service.wrap_meta("custom:1", producer, config_string="cfgB")

        assert producer.await_count == 2
        assert await memory_backend.exists("v9.9.9:meta:cfgA:custom:1")

    @pytest.mark.asyncio
    async def test_uncached_catalog_always_produces(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        producer = _counting_producer([1, 2, 3])

        await cache_service.wrap_catalog("cfg", "tmdb.trending:page=1", producer)
        await cache_service.wrap_catalog("cfg", "tmdb.trending:page=1", producer)

        assert producer.await_count == 2
        assert len(memory_backend) == 0

    @pytest.mark.asyncio
    async def test_catalog_is_cached(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        producer = _counting_producer([1, 2, 3])

        await cache_service.wrap_catalog("cfg", "tmdb.top:page=1", producer)
        await cache_service.wrap_catalog("cfg", "tmdb.top:page=1", producer)

        assert producer.await_count == 1
        assert await memory_backend.exists("v9.9.9:catalog:cfg:tmdb.top:page=1")

    @pytest.mark.asyncio
    async def test_static_catalog_uses_static_ttl(self, memory_backend: MemoryCacheProvider) -> None:
        backend = MagicMock(spec=ICacheProvider)
        backend.get = AsyncMock(return_value=None)
        backend.set = AsyncMock()
        service = CacheService(
            backend=backend, release_version="1", ttl_policies={"static_catalog": 1234}
        )

        await service.wrap_static_catalog("cfg", "imdb.top250", _counting_producer([1]))

        backend.set.assert_awaited_once_with("v1:catalog:cfg:imdb.top250", "[1]", 1234)

    @pytest.mark.asyncio
    async def test_provider_api_key_is_global_and_whitespace_free(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await cache_service.wrap_tvdb_api("search:cowboy bebop", _counting_producer({"id": 1}))

        assert await memory_backend.exists("global:9.9.9:tvdb-api:search:cowboy-bebop")

    @pytest.mark.asyncio
    async def test_provider_shortcuts_use_their_namespace(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await cache_service.wrap_tvmaze_api("show:1", _counting_producer(1))
        await cache_service.wrap_jikan_api("anime:1", _counting_producer(1))
        await cache_service.wrap_tmdb_api("movie:1", _counting_producer(1))

        assert await memory_backend.exists("global:9.9.9:tvmaze-api:show:1")
        assert await memory_backend.exists("global:9.9.9:jikan-api:anime:1")
        assert await memory_backend.exists("global:9.9.9:tmdb-api:movie:1")


# ======================================================================
# Health and maintenance
# ======================================================================


class TestHealth:
    @pytest.mark.asyncio
    async def test_hit_rate_and_top_keys(self, cache_service: CacheService) -> None:
        producer = _counting_producer("v")
        for _ in range(3):
            await cache_service.cache_wrap("popular", producer, ttl=60)

        health = cache_service.get_health()

        assert health["hits"] == 2
        assert health["misses"] == 1
        assert health["hit_rate"] == "66.67"
        assert health["backend"] == "memory"
        assert health["most_accessed_keys"][0] == {"key": "v9.9.9:popular", "count": 3}

    @pytest.mark.asyncio
    async def test_clear_health_resets_counters(self, cache_service: CacheService) -> None:
        await cache_service.cache_wrap("k", _counting_producer("v"), ttl=60)
        cache_service.clear_health()

        assert cache_service.get_health()["total_requests"] == 0

    @pytest.mark.asyncio
    async def test_clear_removes_key(
        self, cache_service: CacheService, memory_backend: MemoryCacheProvider
    ) -> None:
        await cache_service.cache_wrap("k", _counting_producer("v"), ttl=60)

        removed = await cache_service.clear(cache_service.versioned_key("k"))

        assert removed == 1
        assert await memory_backend.get("v9.9.9:k") is None

    @pytest.mark.asyncio
    async def test_clear_without_backend_returns_zero(self, disabled_cache: CacheService) -> None:
        assert await disabled_cache.clear("v9.9.9:k") == 0
