"""Cinemeta provider implementing ICrossReferenceProvider.

Cinemeta serves one meta document per IMDb id at
``/meta/{type}/{imdb_id}.json``.  Its ``meta`` object carries
``moviedb_id`` and ``tvdb_id``, which makes it the cheapest IMDb -> TMDB/TVDB
bridge.  Responses are cached in the ``cinemeta-api`` namespace.
"""

from __future__ import annotations

import httpx

from mediabridge.interfaces.metadata_provider import ICrossReferenceProvider, JsonDict
from mediabridge.providers.metadata.http_json import get_json
from mediabridge.services.cache_service import CacheService


class CinemetaProvider(ICrossReferenceProvider):
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheService,
        base_url: str = "https://v3-cinemeta.strem.io",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _fetch_meta(self, content_type: str, imdb_id: str) -> JsonDict | None:
        body = await get_json(
            self._http,
            f"{self._base_url}/meta/{content_type}/{imdb_id}.json",
            self.get_provider_name(),
            timeout=self._timeout,
        )
        # Cinemeta answers 200 with an empty object for unknown ids.
        return (body or {}).get("meta") or None

    async def get_meta(self, content_type: str, imdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_provider_api(
            "cinemeta",
            f"meta:{content_type}:{imdb_id}",
            lambda: self._fetch_meta(content_type, imdb_id),
        )

    def get_provider_name(self) -> str:
        return "cinemeta"

    def is_available(self) -> bool:
        return True
