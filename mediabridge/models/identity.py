"""Identity models: parsed ids, the merged cross-provider identity, fill-only merge.

Three pieces live here because every other module depends on them:

- :class:`ParsedId` -- the tagged value produced by :func:`parse_known_id`,
  the single boundary parser for composite ids such as ``"tmdb:603"``,
  ``"mal:1535"`` or ``"tt0110912"``.  Nothing else in the codebase splits
  id strings.
- :class:`ExternalIdentity` -- one title's ids across all providers.
  Immutable; ids are normalized to strings so values coming from JSON ints
  and from remote-id strings compare equal.
- :func:`merge_fill_only` -- the only way an identity grows.  A field that
  is already populated is never overwritten.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, field_validator


class IdNamespace(str, Enum):  # noqa: UP042
    """Provider namespaces an id can belong to."""

    TMDB = "tmdb"
    TVDB = "tvdb"
    IMDB = "imdb"
    MAL = "mal"
    KITSU = "kitsu"
    ANIDB = "anidb"
    ANILIST = "anilist"
    TVMAZE = "tvmaze"

    @property
    def field_name(self) -> str:
        """Name of the matching :class:`ExternalIdentity` field."""
        return f"{self.value}_id"


class ContentType(str, Enum):  # noqa: UP042
    """Content types accepted by the resolver."""

    MOVIE = "movie"
    SERIES = "series"
    ANIME = "anime"


ANIME_FIELDS: tuple[str, ...] = ("mal_id", "kitsu_id", "anidb_id", "anilist_id")
BRIDGE_FIELDS: tuple[str, ...] = ("tmdb_id", "tvdb_id", "imdb_id", "tvmaze_id")

# Values upstreams use to mean "no id".
_EMPTY_SENTINELS = {"", "0", "none", "null", "undefined", "nan"}


@dataclass(frozen=True)
class ParsedId:
    """A provider id tagged with its namespace."""

    namespace: IdNamespace
    value: str

    @property
    def field_name(self) -> str:
        return self.namespace.field_name

    def __str__(self) -> str:
        if self.namespace is IdNamespace.IMDB:
            return self.value
        return f"{self.namespace.value}:{self.value}"


def parse_known_id(known_id: str) -> ParsedId:
    """Parse a composite id string into a :class:`ParsedId`.

    Accepted forms are ``"<namespace>:<id>"`` (extra ``:season:episode``
    segments are ignored), bare IMDb ids ``"tt1234567"`` and
    ``"imdb:tt1234567"``.

    Raises
    ------
    ValueError
        If *known_id* is not a string, the namespace is unknown or the id
        part is empty.
    """
    if not isinstance(known_id, str):
        msg = f"Known id must be a string, got {type(known_id).__name__}"
        raise ValueError(msg)
    raw = known_id.strip()
    if raw.startswith("tt"):
        return ParsedId(IdNamespace.IMDB, raw.split(":", 1)[0])

    prefix, _, rest = raw.partition(":")
    value = rest.split(":", 1)[0].strip()
    try:
        namespace = IdNamespace(prefix.lower())
    except ValueError:
        msg = f"Unknown id namespace in {known_id!r}"
        raise ValueError(msg) from None

    if not value:
        msg = f"Missing id value in {known_id!r}"
        raise ValueError(msg)
    return ParsedId(namespace, value)


def normalize_id(value: Any) -> str | None:
    """Normalize a raw id value to a non-empty string, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if text.lower() in _EMPTY_SENTINELS:
        return None
    return text


class ExternalIdentity(BaseModel):
    """One title's identifiers across all supported providers.

    Every field is optional.  A resolution starts from a single seeded field
    and only ever fills further fields through :func:`merge_fill_only`.
    """

    model_config = ConfigDict(frozen=True)

    tmdb_id: str | None = None
    tvdb_id: str | None = None
    imdb_id: str | None = None
    mal_id: str | None = None
    kitsu_id: str | None = None
    anidb_id: str | None = None
    anilist_id: str | None = None
    tvmaze_id: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> str | None:
        return normalize_id(value)

    @classmethod
    def from_parsed(cls, parsed: ParsedId) -> ExternalIdentity:
        return cls(**{parsed.field_name: parsed.value})

    def missing(self, *fields: str) -> bool:
        """Return ``True`` if any of *fields* is still empty."""
        return any(getattr(self, f) is None for f in fields)

    def has_all(self, *fields: str) -> bool:
        return not self.missing(*fields)

    def has_anime_ids(self) -> bool:
        return any(getattr(self, f) is not None for f in ANIME_FIELDS)

    def known_fields(self) -> dict[str, str]:
        """Return only the populated fields."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


IdentityLike = Union[ExternalIdentity, Mapping[str, Any], None]


def merge_fill_only(current: ExternalIdentity, candidate: IdentityLike) -> ExternalIdentity:
    """Fill the empty fields of *current* from *candidate*.

    Populated fields of *current* are never changed, so the first value
    discovered for a field during a resolution wins.  Keys of *candidate*
    that are not identity fields are ignored.
    """
    if candidate is None:
        return current
    if isinstance(candidate, ExternalIdentity):
        values: Mapping[str, Any] = candidate.known_fields()
    else:
        values = candidate

    updates: dict[str, str] = {}
    for name in ExternalIdentity.model_fields:
        if getattr(current, name) is not None:
            continue
        normalized = normalize_id(values.get(name))
        if normalized is not None:
            updates[name] = normalized

    if not updates:
        return current
    return current.model_copy(update=updates)


def is_movie(content_type: str) -> bool:
    """Movies take the movie branch of every provider; everything else is a series."""
    return (content_type or "").lower() == ContentType.MOVIE.value
