"""TVmaze provider implementing ITvmazeProvider.

No API key.  Show records carry an ``externals`` object
(``{"imdb", "thetvdb", "themoviedb"}``); lookups by foreign id answer 404
when TVmaze does not know the show, which comes back as ``None``.
"""

from __future__ import annotations

from typing import Any

import httpx

from mediabridge.interfaces.metadata_provider import ITvmazeProvider, JsonDict
from mediabridge.providers.metadata.http_json import get_json
from mediabridge.services.cache_service import CacheService


class TvmazeProvider(ITvmazeProvider):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheService,
        base_url: str = "https://api.tvmaze.com",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> JsonDict | None:
        return await get_json(
            self._http,
            f"{self._base_url}{path}",
            self.get_provider_name(),
            params=params,
            timeout=self._timeout,
        )

    async def get_show_by_imdb_id(self, imdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tvmaze_api(
            f"lookup-imdb:{imdb_id}", lambda: self._get("/lookup/shows", {"imdb": imdb_id})
        )

    async def get_show_by_tvdb_id(self, tvdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tvmaze_api(
            f"lookup-tvdb:{tvdb_id}", lambda: self._get("/lookup/shows", {"thetvdb": tvdb_id})
        )

    async def get_show_by_id(self, tvmaze_id: str) -> JsonDict | None:
        return await self._cache.wrap_tvmaze_api(
            f"show:{tvmaze_id}", lambda: self._get(f"/shows/{tvmaze_id}")
        )

    def get_provider_name(self) -> str:
        return "tvmaze"

    def is_available(self) -> bool:
        return True
