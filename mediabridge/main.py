"""Composition root.

Wires settings, the cache backend, the rate-limited Jikan queue, provider
adapters, the static mapping table, the long-term id store and the
identity resolver into one :class:`Components` bundle.  Nothing else in the
package constructs these objects; callers receive them by injection.

Typical use::

    components = await build_components(Settings())
    await components.start()
    try:
        identity = await components.resolver.resolve_all_ids("tt0110912", "movie")
    finally:
        await components.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from mediabridge.config.loader import load_config
from mediabridge.config.settings import Settings
from mediabridge.interfaces.cache_provider import ICacheProvider
from mediabridge.interfaces.metadata_provider import IMetadataProvider
from mediabridge.providers.cache.memory_cache import MemoryCacheProvider
from mediabridge.providers.cache.redis_cache import RedisCacheProvider
from mediabridge.providers.id_cache.sqlite_id_cache import SQLiteIdMappingStore
from mediabridge.providers.metadata.cinemeta_provider import CinemetaProvider
from mediabridge.providers.metadata.jikan_provider import JikanProvider
from mediabridge.providers.metadata.kitsu_provider import KitsuProvider
from mediabridge.providers.metadata.tmdb_provider import TmdbProvider
from mediabridge.providers.metadata.tvdb_provider import TvdbProvider
from mediabridge.providers.metadata.tvmaze_provider import TvmazeProvider
from mediabridge.services.cache_service import CacheService
from mediabridge.services.id_resolver import IdentityResolver
from mediabridge.services.mapping_table import StaticMappingTable
from mediabridge.services.request_queue import RateLimitedQueue
from mediabridge.utils.logging import get_logger

_logger = get_logger(__name__)

_MS = 1000.0


@dataclass
class Components:
    """Long-lived objects shared by every caller in one process."""

    settings: Settings
    http_client: httpx.AsyncClient
    cache: CacheService
    jikan_queue: RateLimitedQueue
    mapping_table: StaticMappingTable
    id_store: SQLiteIdMappingStore
    resolver: IdentityResolver
    providers: dict[str, IMetadataProvider] = field(default_factory=dict)

    async def start(self, auto_update: bool = True) -> None:
        """Prepare storage and load the static table."""
        await self.id_store.initialize()
        await self.mapping_table.initialize()
        if auto_update and self.settings.anime_list_update_interval_hours > 0:
            self.mapping_table.start_auto_update(self.settings.anime_list_update_interval_hours)
        _logger.info(
            "components_started",
            cache_backend=self.cache.get_health()["backend"],
            providers=[name for name, p in self.providers.items() if p.is_available()],
        )

    async def aclose(self) -> None:
        """Stop background work and release connections."""
        await self.mapping_table.stop_auto_update()
        await self.resolver.drain()
        await self.jikan_queue.aclose()
        await self.cache.aclose()
        await self.http_client.aclose()
        _logger.info("components_closed")


async def _build_cache_backend(settings: Settings) -> ICacheProvider | None:
    """Select Redis when configured and reachable, else process memory."""
    if settings.no_cache:
        _logger.info("cache_disabled")
        return None

    if settings.redis_url:
        redis_backend = RedisCacheProvider(url=settings.redis_url)
        if await redis_backend.ping():
            _logger.info("cache_backend_selected", backend="redis")
            return redis_backend
        _logger.warning("cache_redis_unreachable_using_memory", url=settings.redis_url)
        await redis_backend.aclose()

    _logger.info("cache_backend_selected", backend="memory")
    return MemoryCacheProvider(max_size=settings.memory_cache_max_size)


async def build_components(
    settings: Settings | None = None,
    config: dict[str, Any] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Components:
    """Build every long-lived object from *settings* and the YAML config.

    Parameters
    ----------
    settings:
        Application settings; read from the environment when omitted.
    config:
        Resolved configuration dict from :func:`load_config`; loaded from
        ``config/config.yaml`` when omitted.
    http_client:
        Shared HTTP client; tests pass one backed by ``httpx.MockTransport``.
    """
    settings = settings or Settings()
    config = config if config is not None else load_config(settings=settings)
    cache_config = config.get("cache", {})
    table_config = config.get("mapping_table", {})

    http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    cache = CacheService(
        backend=await _build_cache_backend(settings),
        release_version=settings.release_version,
        enabled=not settings.no_cache,
        ttl_policies=cache_config.get("ttl"),
        uncached_catalogs=cache_config.get("uncached_catalogs", ()),
        global_meta_prefixes=cache_config.get("global_meta_prefixes", ()),
    )

    jikan_queue = RateLimitedQueue(
        name="jikan",
        base_delay=settings.jikan_request_delay_ms / _MS,
        max_retries=settings.jikan_max_retries,
        backoff_base=settings.jikan_backoff_base_ms / _MS,
        jitter=settings.jikan_jitter_ms / _MS,
    )

    timeout = settings.http_timeout_seconds
    tmdb = TmdbProvider(http, cache, settings.tmdb_api_key, settings.tmdb_base_url, timeout)
    tvdb = TvdbProvider(http, cache, settings.tvdb_api_key, settings.tvdb_base_url, timeout)
    tvmaze = TvmazeProvider(http, cache, settings.tvmaze_base_url, timeout)
    cinemeta = CinemetaProvider(http, cache, settings.cinemeta_base_url, timeout)
    kitsu = KitsuProvider(http, settings.kitsu_base_url, timeout)
    jikan = JikanProvider(http, cache, jikan_queue, settings.jikan_base_url, timeout)

    mapping_table = StaticMappingTable(
        http_client=http,
        url=settings.anime_list_url,
        snapshot_path=settings.anime_list_snapshot_path,
        etag_path=settings.anime_list_etag_path,
    )
    id_store = SQLiteIdMappingStore(settings.id_cache_db_path, ttl_days=settings.id_cache_ttl_days)

    resolver = IdentityResolver(
        mapping_table=mapping_table,
        tmdb=tmdb,
        tvdb=tvdb,
        tvmaze=tvmaze,
        cross_reference=cinemeta,
        kitsu=kitsu,
        mal=jikan,
        id_store=id_store,
        franchise_subtypes=table_config.get("franchise_subtypes", ("TV", "ONA")),
        imdb_season_subtypes=table_config.get("imdb_season_subtypes", ("TV",)),
    )

    return Components(
        settings=settings,
        http_client=http,
        cache=cache,
        jikan_queue=jikan_queue,
        mapping_table=mapping_table,
        id_store=id_store,
        resolver=resolver,
        providers={
            p.get_provider_name(): p for p in (tmdb, tvdb, tvmaze, cinemeta, kitsu, jikan)
        },
    )
