"""mediabridge domain models - re-exports all public model classes.

    - identity.py - parsed ids, the merged ExternalIdentity, fill-only merge
    - mapping.py  - static cross-reference dataset records
"""

from __future__ import annotations

from mediabridge.models.identity import (
    ANIME_FIELDS,
    BRIDGE_FIELDS,
    ContentType,
    ExternalIdentity,
    IdNamespace,
    ParsedId,
    is_movie,
    merge_fill_only,
    normalize_id,
    parse_known_id,
)
from mediabridge.models.mapping import (
    MOVIE_TYPES,
    SERIES_TYPES,
    FranchiseSeasonMap,
    ImdbSeasonRef,
    StaticMappingEntry,
)

__all__ = [
    "ANIME_FIELDS",
    "BRIDGE_FIELDS",
    "ContentType",
    "ExternalIdentity",
    "FranchiseSeasonMap",
    "IdNamespace",
    "ImdbSeasonRef",
    "MOVIE_TYPES",
    "ParsedId",
    "SERIES_TYPES",
    "StaticMappingEntry",
    "is_movie",
    "merge_fill_only",
    "normalize_id",
    "parse_known_id",
]
