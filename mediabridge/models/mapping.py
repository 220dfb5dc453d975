"""Static mapping table records.

One :class:`StaticMappingEntry` per record of the precomputed anime
cross-reference dataset (Fribb ``anime-lists``).  The dataset uses its own
field names (``themoviedb_id``, ``thetvdb_id``); aliases translate them to
the identity field names used everywhere else.
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from mediabridge.models.identity import ExternalIdentity, normalize_id

# Dataset type tags that count as a series when disambiguating TMDB ids.
SERIES_TYPES: frozenset[str] = frozenset({"tv", "ova", "ona", "special"})
MOVIE_TYPES: frozenset[str] = frozenset({"movie"})

# Season number -> kitsu id, for one TVDB franchise.
FranchiseSeasonMap = dict[int, str]


class StaticMappingEntry(BaseModel):
    """An immutable record of the static cross-reference dataset."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    mal_id: str | None = None
    kitsu_id: str | None = None
    anidb_id: str | None = None
    anilist_id: str | None = None
    tmdb_id: str | None = Field(
        default=None, validation_alias=AliasChoices("themoviedb_id", "tmdb_id")
    )
    tvdb_id: str | None = Field(
        default=None, validation_alias=AliasChoices("thetvdb_id", "tvdb_id")
    )
    imdb_id: str | None = None
    type: str | None = None  # noqa: A003
    start_date: datetime.date | None = Field(
        default=None, validation_alias=AliasChoices("start_date", "startDate")
    )

    @field_validator(
        "mal_id", "kitsu_id", "anidb_id", "anilist_id", "tmdb_id", "tvdb_id", "imdb_id",
        mode="before",
    )
    @classmethod
    def _normalize_ids(cls, value: Any) -> str | None:
        return normalize_id(value)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str | None:
        if not value:
            return None
        return str(value).strip().lower()

    @field_validator("start_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> datetime.date | None:
        # The dataset mixes full dates, year-months, bare years and empty strings.
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        if len(text) == 4 and text.isdigit():
            text = f"{text}-01-01"
        elif len(text) == 7 and text[4] == "-":
            text = f"{text}-01"
        try:
            return datetime.date.fromisoformat(text[:10])
        except ValueError:
            return None

    def to_identity(self) -> ExternalIdentity:
        """Project the entry onto the identity fields."""
        return ExternalIdentity(
            tmdb_id=self.tmdb_id,
            tvdb_id=self.tvdb_id,
            imdb_id=self.imdb_id,
            mal_id=self.mal_id,
            kitsu_id=self.kitsu_id,
            anidb_id=self.anidb_id,
            anilist_id=self.anilist_id,
        )

    def matches_content_type(self, content_type: str) -> bool:
        """Return ``True`` if the entry's type tag fits *content_type*.

        ``movie`` matches ``"movie"``; ``series`` (and ``anime``) match the
        TV-like tags ``tv``, ``ova``, ``ona`` and ``special``.
        """
        if self.type is None:
            return False
        if (content_type or "").lower() == "movie":
            return self.type in MOVIE_TYPES
        return self.type in SERIES_TYPES


class ImdbSeasonRef(BaseModel):
    """Position of one Kitsu entry inside its IMDb parent's season list."""

    model_config = ConfigDict(frozen=True)

    imdb_id: str
    season_number: int
