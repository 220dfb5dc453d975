"""Shared pytest fixtures for the mediabridge test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio

from mediabridge.interfaces.metadata_provider import (
    ICrossReferenceProvider,
    IKitsuProvider,
    IMalProvider,
    ITmdbProvider,
    ITvdbProvider,
    ITvmazeProvider,
)
from mediabridge.providers.cache.memory_cache import MemoryCacheProvider
from mediabridge.services.cache_service import CacheService
from mediabridge.services.mapping_table import StaticMappingTable

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _network_down(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network unavailable", request=request)


# ---------------------------------------------------------------------------
# Static dataset
# ---------------------------------------------------------------------------


@pytest.fixture
def anime_records() -> list[dict[str, Any]]:
    """A small slice of the Fribb anime-list-full dataset.

    Three TV seasons share ``thetvdb_id`` 79824 and are listed out of
    chronological order; two records share ``themoviedb_id`` 999 with
    different type tags.
    """
    return [
        {"mal_id": 1535, "kitsu_id": 1376, "imdb_id": "tt0877057", "type": "TV"},
        {
            "mal_id": 20,
            "kitsu_id": 11,
            "anidb_id": 239,
            "anilist_id": 20,
            "thetvdb_id": 78857,
            "themoviedb_id": 46260,
            "imdb_id": "tt0409591",
            "type": "TV",
        },
        {"mal_id": 9002, "kitsu_id": 8003, "thetvdb_id": 79824, "type": "TV"},
        {"mal_id": 9001, "kitsu_id": 8001, "thetvdb_id": 79824, "type": "TV"},
        {"mal_id": 9003, "kitsu_id": 8005, "thetvdb_id": 79824, "type": "TV"},
        {"mal_id": 5001, "kitsu_id": 6001, "themoviedb_id": 999, "type": "MOVIE"},
        {"mal_id": 5002, "kitsu_id": 6002, "themoviedb_id": 999, "type": "TV"},
    ]


@pytest.fixture
def offline_http() -> httpx.AsyncClient:
    """HTTP client whose every request fails with a connection error."""
    return httpx.AsyncClient(transport=httpx.MockTransport(_network_down))


@pytest.fixture
def make_http() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory for clients backed by ``httpx.MockTransport``."""

    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def mapping_table(
    offline_http: httpx.AsyncClient, anime_records: list[dict[str, Any]], tmp_path: Path
) -> StaticMappingTable:
    """A table loaded straight from ``anime_records``."""
    table = StaticMappingTable(
        http_client=offline_http,
        url="https://example.test/anime-list-full.json",
        snapshot_path=tmp_path / "anime-list.json.cache",
        etag_path=tmp_path / "anime-list.json.etag",
    )
    table.load_records(anime_records)
    return table


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_backend(clock: FakeClock) -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=100, timer=clock)


@pytest.fixture
def cache_service(memory_backend: MemoryCacheProvider) -> CacheService:
    return CacheService(
        backend=memory_backend,
        release_version="9.9.9",
        uncached_catalogs=["tmdb.trending"],
        global_meta_prefixes=["tmdb:", "tt", "mal:"],
    )


@pytest.fixture
def disabled_cache() -> CacheService:
    return CacheService(backend=None, release_version="9.9.9", enabled=False)


# ---------------------------------------------------------------------------
# Provider mocks
# ---------------------------------------------------------------------------


def _provider_mock(spec: type, name: str) -> MagicMock:
    provider = MagicMock(spec=spec)
    provider.get_provider_name.return_value = name
    provider.is_available.return_value = True
    return provider


@pytest.fixture
def mock_tmdb() -> MagicMock:
    provider = _provider_mock(ITmdbProvider, "tmdb")
    provider.movie_info = AsyncMock(return_value=None)
    provider.tv_info = AsyncMock(return_value=None)
    provider.find = AsyncMock(return_value={"movie_results": [], "tv_results": []})
    return provider


@pytest.fixture
def mock_tvdb() -> MagicMock:
    provider = _provider_mock(ITvdbProvider, "tvdb")
    provider.get_series_extended = AsyncMock(return_value=None)
    provider.get_movie_extended = AsyncMock(return_value=None)
    provider.find_by_remote_id = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def mock_tvmaze() -> MagicMock:
    provider = _provider_mock(ITvmazeProvider, "tvmaze")
    provider.get_show_by_imdb_id = AsyncMock(return_value=None)
    provider.get_show_by_tvdb_id = AsyncMock(return_value=None)
    provider.get_show_by_id = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def mock_cinemeta() -> MagicMock:
    provider = _provider_mock(ICrossReferenceProvider, "cinemeta")
    provider.get_meta = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def mock_kitsu() -> MagicMock:
    provider = _provider_mock(IKitsuProvider, "kitsu")
    provider.get_multiple_anime_details = AsyncMock(return_value=[])
    return provider


@pytest.fixture
def mock_mal() -> MagicMock:
    provider = _provider_mock(IMalProvider, "jikan")
    provider.get_anime_details = AsyncMock(return_value=None)
    return provider


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path):
    from mediabridge.providers.id_cache.sqlite_id_cache import SQLiteIdMappingStore

    store = SQLiteIdMappingStore(tmp_path / "id_cache.db", ttl_days=90)
    await store.initialize()
    return store
