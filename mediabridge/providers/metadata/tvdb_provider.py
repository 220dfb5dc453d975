"""TVDB v4 provider implementing ITvdbProvider.

TVDB requires a bearer token obtained by ``POST /login`` with the project
API key.  Tokens are valid for a month; the provider memoizes one token
and renews it 28 days after issue, or immediately after a 401.

Extended records carry a ``remoteIds`` list (``{"id", "sourceName"}``)
that identity resolution mines for IMDb, TMDB and TVmaze ids.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import httpx

from mediabridge.interfaces.metadata_provider import ITvdbProvider, JsonDict
from mediabridge.providers.metadata.http_json import decode_response, get_json
from mediabridge.services.cache_service import CacheService
from mediabridge.utils.errors import ConfigurationError, NetworkFailureError
from mediabridge.utils.logging import get_logger

_TOKEN_LIFETIME = 28 * 24 * 60 * 60


class TvdbProvider(ITvdbProvider):
    """TVDB v4 REST client.

    Parameters
    ----------
    http_client:
        Shared ``httpx.AsyncClient``.
    cache:
        Cache service; extended records and remote-id searches are cached
        in the ``tvdb-api`` namespace.
    api_key:
        TVDB project API key.
    clock:
        Wall clock used for token expiry; injectable for tests.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        cache: CacheService,
        api_key: str,
        base_url: str = "https://api4.thetvdb.com/v4",
        timeout: float = 15.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._clock = clock
        self._token: str | None = None
        self._token_expiry = 0.0
        self._login_lock = asyncio.Lock()
        self._logger = get_logger(__name__)

    # -- Authentication --------------------------------------------------------

    async def _get_token(self) -> str:
        if self._token and self._clock() < self._token_expiry:
            return self._token
        async with self._login_lock:
            if self._token and self._clock() < self._token_expiry:
                return self._token
            self._token = await self._login()
            self._token_expiry = self._clock() + _TOKEN_LIFETIME
            return self._token

    async def _login(self) -> str:
        if not self._api_key:
            raise ConfigurationError(
                message="TVDB_API_KEY is not set", provider_name=self.get_provider_name()
            )
        url = f"{self._base_url}/login"
        try:
            response = await self._http.post(
                url, json={"apikey": self._api_key}, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            raise NetworkFailureError(
                message=f"TVDB login failed: {exc}", provider_name=self.get_provider_name()
            ) from exc

        body = decode_response(response, url, self.get_provider_name(), not_found_ok=False)
        token = ((body or {}).get("data") or {}).get("token")
        if not token:
            raise NetworkFailureError(
                message="TVDB login response carried no token",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )
        self._logger.info("tvdb_token_issued", key_suffix=self._api_key[-4:])
        return token

    async def _get_data(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET *path* with the bearer token and unwrap the ``data`` envelope."""
        token = await self._get_token()
        try:
            body = await get_json(
                self._http,
                f"{self._base_url}{path}",
                self.get_provider_name(),
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except NetworkFailureError as exc:
            if exc.status_code == 401:
                self._token = None
            raise
        if body is None:
            return None
        return body.get("data")

    # -- ITvdbProvider implementation ------------------------------------------

    async def get_series_extended(self, tvdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tvdb_api(
            f"series-extended:{tvdb_id}",
            lambda: self._get_data(f"/series/{tvdb_id}/extended", {"meta": "translations"}),
        )

    async def get_movie_extended(self, tvdb_id: str) -> JsonDict | None:
        return await self._cache.wrap_tvdb_api(
            f"movie-extended:{tvdb_id}",
            lambda: self._get_data(f"/movies/{tvdb_id}/extended", {"meta": "translations"}),
        )

    async def find_by_remote_id(self, remote_id: str) -> JsonDict | None:
        async def _search() -> JsonDict | None:
            hits = await self._get_data(f"/search/remoteid/{remote_id}")
            if not hits:
                return None
            self._logger.debug("tvdb_remote_id_match", remote_id=remote_id, hits=len(hits))
            return hits[0]

        return await self._cache.wrap_tvdb_api(f"remoteid:{remote_id}", _search)

    def get_provider_name(self) -> str:
        return "tvdb"

    def is_available(self) -> bool:
        return bool(self._api_key)
