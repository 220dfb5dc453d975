"""TMDB provider implementing ITmdbProvider.

Detail lookups append the ``external_ids`` block, which is what identity
resolution reads.  Responses are cached in the ``tmdb-api`` global
namespace; a missing title (404) comes back as ``None`` and is not cached.
"""

from __future__ import annotations

from typing import Any

import httpx

from mediabridge.interfaces.metadata_provider import ITmdbProvider, JsonDict
from mediabridge.providers.metadata.http_json import get_json
from mediabridge.services.cache_service import CacheService
from mediabridge.utils.errors import ConfigurationError
from mediabridge.utils.logging import get_logger

_EMPTY_FIND: JsonDict = {"movie_results": [], "tv_results": []}


class TmdbProvider(ITmdbProvider):
    """TMDB v3 REST client authenticated with an API key."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheService,
        api_key: str,
        base_url: str = "https://api.themoviedb.org/3",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._logger = get_logger(__name__)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        if not self._api_key:
            raise ConfigurationError(
                message="TMDB_API_KEY is not set", provider_name=self.get_provider_name()
            )
        query = {"api_key": self._api_key, **(params or {})}
        return await get_json(
            self._http,
            f"{self._base_url}{path}",
            self.get_provider_name(),
            params=query,
            timeout=self._timeout,
        )

    # -- ITmdbProvider implementation -----------------------------------------

    async def movie_info(self, tmdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tmdb_api(
            f"movie:{tmdb_id}:external_ids",
            lambda: self._get(f"/movie/{tmdb_id}", {"append_to_response": "external_ids"}),
        )

    async def tv_info(self, tmdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tmdb_api(
            f"tv:{tmdb_id}:external_ids",
            lambda: self._get(f"/tv/{tmdb_id}", {"append_to_response": "external_ids"}),
        )

    async def find(self, external_id: str, external_source: str = "imdb_id") -> JsonDict:
        result = await self._cache.wrap_tmdb_api(
            f"find:{external_source}:{external_id}",
            lambda: self._get(f"/find/{external_id}", {"external_source": external_source}),
        )
        if not result:
            return dict(_EMPTY_FIND)
        self._logger.debug(
            "tmdb_find_complete",
            external_id=external_id,
            movies=len(result.get("movie_results") or []),
            series=len(result.get("tv_results") or []),
        )
        return result

    def get_provider_name(self) -> str:
        return "tmdb"

    def is_available(self) -> bool:
        return bool(self._api_key)
