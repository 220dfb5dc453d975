"""Abstract base class for the long-term cross-reference cache.

Non-anime titles have no static dataset, so every resolved mapping of
TMDB/TVDB/IMDb/TVmaze ids is persisted here and reused by later
resolutions.  The store is consulted before any live bridging call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from mediabridge.models.identity import ExternalIdentity


class IIdMappingStore(ABC):
    """Contract for persistent id-mapping storage."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create storage structures if they do not exist."""

    @abstractmethod
    async def get_cached_mapping(
        self,
        content_type: str,
        tmdb_id: str | None = None,
        tvdb_id: str | None = None,
        imdb_id: str | None = None,
        tvmaze_id: str | None = None,
    ) -> ExternalIdentity | None:
        """Return the stored mapping matching any supplied id, or ``None``.

        Parameters
        ----------
        content_type:
            ``"movie"`` or ``"series"``; mappings are scoped per type since
            TMDB reuses numeric ids across movies and TV.
        tmdb_id, tvdb_id, imdb_id, tvmaze_id:
            Known ids; at least one must be given.
        """

    @abstractmethod
    async def save_mapping(self, content_type: str, identity: ExternalIdentity) -> bool:
        """Persist *identity*; return ``True`` if a row was written."""

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Return row counts and per-id coverage grouped by content type."""

    @abstractmethod
    async def search(self, id_value: str, limit: int = 20) -> list[dict[str, Any]]:
        """Return rows where any id column equals *id_value*."""

    @abstractmethod
    async def clear_older_than(self, days: int) -> int:
        """Delete rows not updated for *days* days; return the count."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in log lines."""
