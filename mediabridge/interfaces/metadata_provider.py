"""Abstract base classes for the metadata providers the resolver bridges through.

Each contract covers only the lookups identity resolution needs: "details
by id" (carrying the provider's external-id block) and "find by external
id".  Responses are the provider's parsed JSON, unmodified; response
shaping for catalogs and meta objects happens outside this package.

Provider adapters raise subclasses of
:class:`~mediabridge.utils.errors.MediaBridgeError` on failure and return
``None`` (or an empty list) when the upstream has no matching resource.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

JsonDict = dict[str, Any]


class IMetadataProvider(ABC):
    """Members shared by every provider adapter."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log lines and errors."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured for use."""


class ITmdbProvider(IMetadataProvider):
    """TMDB-like service: details with external ids, and find-by-external-id."""

    @abstractmethod
    async def movie_info(self, tmdb_id: str) -> JsonDict | None:
        """Return movie details with ``external_ids`` appended."""

    @abstractmethod
    async def tv_info(self, tmdb_id: str) -> JsonDict | None:
        """Return series details with ``external_ids`` appended."""

    @abstractmethod
    async def find(self, external_id: str, external_source: str = "imdb_id") -> JsonDict:
        """Return ``{"movie_results": [...], "tv_results": [...]}`` for an external id."""


class ITvdbProvider(IMetadataProvider):
    """TVDB-like service: extended records carrying a ``remoteIds`` list."""

    @abstractmethod
    async def get_series_extended(self, tvdb_id: str) -> JsonDict | None:
        """Return the extended series record."""

    @abstractmethod
    async def get_movie_extended(self, tvdb_id: str) -> JsonDict | None:
        """Return the extended movie record."""

    @abstractmethod
    async def find_by_remote_id(self, remote_id: str) -> JsonDict | None:
        """Return the first search hit for a remote (e.g. IMDb) id.

        The hit holds a ``series`` or ``movie`` object depending on what
        the remote id refers to.
        """


class ITvmazeProvider(IMetadataProvider):
    """TVmaze-like service: shows carrying an ``externals`` object."""

    @abstractmethod
    async def get_show_by_imdb_id(self, imdb_id: str) -> JsonDict | None:
        """Look a show up by IMDb id."""

    @abstractmethod
    async def get_show_by_tvdb_id(self, tvdb_id: str) -> JsonDict | None:
        """Look a show up by TVDB id."""

    @abstractmethod
    async def get_show_by_id(self, tvmaze_id: str) -> JsonDict | None:
        """Return the show record for a TVmaze id."""


class ICrossReferenceProvider(IMetadataProvider):
    """Third-party aggregator mapping an IMDb id to TMDB and TVDB ids."""

    @abstractmethod
    async def get_meta(self, content_type: str, imdb_id: str) -> JsonDict | None:
        """Return the aggregator record (``moviedb_id``, ``tvdb_id``) for *imdb_id*."""


class IKitsuProvider(IMetadataProvider):
    """Kitsu-like anime service with batched detail lookups."""

    @abstractmethod
    async def get_multiple_anime_details(self, kitsu_ids: list[str]) -> list[JsonDict]:
        """Return anime resources (``id``, ``attributes.subtype``, ``attributes.startDate``)."""


class IMalProvider(IMetadataProvider):
    """MAL-like anime service behind a strict per-second rate limit."""

    @abstractmethod
    async def get_anime_details(self, mal_id: str) -> JsonDict | None:
        """Return the anime record (``type``, ``aired.from``) for a MAL id."""
