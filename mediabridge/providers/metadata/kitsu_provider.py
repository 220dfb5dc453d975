"""Kitsu provider implementing IKitsuProvider.

Kitsu's JSON:API endpoint accepts a comma-separated ``filter[id]`` and
returns at most 20 resources per page, so id lists are split into batches
of 20 and the batches are fetched concurrently under a semaphore.
"""

from __future__ import annotations

import asyncio

import httpx

from mediabridge.interfaces.metadata_provider import IKitsuProvider, JsonDict
from mediabridge.providers.metadata.http_json import get_json
from mediabridge.utils.concurrency import chunked, throttled_gather
from mediabridge.utils.logging import get_logger

_BATCH_SIZE = 20
_MAX_CONCURRENT_BATCHES = 3


class KitsuProvider(IKitsuProvider):
    """Batched anime detail lookups against the Kitsu edge API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = "https://kitsu.io/api/edge",
        timeout: float = 10.0,
        batch_size: int = _BATCH_SIZE,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._batch_size = batch_size
        self._logger = get_logger(__name__)

    async def _fetch_batch(self, ids: list[str]) -> list[JsonDict]:
        body = await get_json(
            self._http,
            f"{self._base_url}/anime",
            self.get_provider_name(),
            params={"filter[id]": ",".join(ids), "page[limit]": str(len(ids))},
            headers={"Accept": "application/vnd.api+json"},
            timeout=self._timeout,
        )
        return list((body or {}).get("data") or [])

    async def get_multiple_anime_details(self, kitsu_ids: list[str]) -> list[JsonDict]:
        """Return anime resources for *kitsu_ids*, in no particular order.

        A failed batch is logged and skipped; the error is raised only
        when every batch failed.
        """
        unique_ids = list(dict.fromkeys(str(i) for i in kitsu_ids if i))
        if not unique_ids:
            return []

        batches = chunked(unique_ids, self._batch_size)
        results = await throttled_gather(
            (self._fetch_batch(batch) for batch in batches),
            semaphore=asyncio.Semaphore(_MAX_CONCURRENT_BATCHES),
        )

        records: list[JsonDict] = []
        errors: list[BaseException] = []
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                errors.append(result)
                self._logger.warning("kitsu_batch_failed", ids=batch, error=str(result))
                continue
            records.extend(result)

        if errors and len(errors) == len(batches):
            raise errors[0]
        return records

    def get_provider_name(self) -> str:
        return "kitsu"

    def is_available(self) -> bool:
        return True
