"""Jikan (unofficial MyAnimeList API) provider implementing IMalProvider.

Jikan allows roughly three requests per second per client and answers
429 beyond that.  Every request is therefore routed through the shared
:class:`~mediabridge.services.request_queue.RateLimitedQueue`, which
serializes calls and retries rate-limited ones with backoff.  Results are
cached in the ``jikan-api`` namespace in front of the queue, so a cache
hit never waits for a queue slot.
"""

from __future__ import annotations

import httpx

from mediabridge.interfaces.metadata_provider import IMalProvider, JsonDict
from mediabridge.providers.metadata.http_json import get_json
from mediabridge.services.cache_service import CacheService
from mediabridge.services.request_queue import RateLimitedQueue


class JikanProvider(IMalProvider):
    """MAL-backed anime lookups through the rate-limited queue."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheService,
        queue: RateLimitedQueue,
        base_url: str = "https://api.jikan.moe/v4",
        timeout: float = 15.0,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._queue = queue
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _queued_get(self, path: str) -> JsonDict | None:
        url = f"{self._base_url}{path}"

        async def _request() -> JsonDict | None:
            return await get_json(self._http, url, self.get_provider_name(), timeout=self._timeout)

        body = await self._queue.enqueue(_request, label=url)
        if body is None:
            return None
        return body.get("data")

    async def get_anime_details(self, mal_id: str) -> JsonDict | None:
        return await self._cache.wrap_jikan_api(
            f"anime-details:{mal_id}", lambda: self._queued_get(f"/anime/{mal_id}/full")
        )

    def get_provider_name(self) -> str:
        return "jikan"

    def is_available(self) -> bool:
        return True
