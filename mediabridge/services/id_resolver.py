"""Cross-provider identity resolution.

# ─── RESOLUTION PIPELINE ───────────────────────────────────────────────
#
#   Seeded        parse the known id, merge caller-prefetched ids
#     │
#     ├─ anime?   content type "anime" or any MAL/Kitsu/AniDB/AniList id
#     │
#   IdCache       (non-anime) long-term store lookup; return early when
#     │           TMDB, TVDB, IMDb and TVmaze are all known
#     │
#   StaticMerged  static table by MAL -> Kitsu -> AniDB -> AniList
#     │
#   Bridged       a. TMDB details     (+ TVDB extended for TVmaze, series)
#     │           b. IMDb bridges     (Cinemeta, TMDB find, TVDB remote id,
#     │                                TVmaze lookup)
#     │           c. TVDB extended    (remoteIds)
#     │           d. TVmaze show      (externals)
#     │
#   Done          (non-anime) persist in the background, return
#
# Every stage only runs when its trigger id is known and at least one of
# its target ids is still missing.  Every network call is individually
# guarded: a failure is logged as ``resolver_step_failed`` and the next
# call runs.  The identity only accumulates through merge_fill_only.
# ──────────────────────────────────────────────────────────────────────

The franchise helpers order static-table siblings chronologically using
Kitsu details (Jikan as fallback) and memoize the result per TVDB or
Kitsu id.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Callable, TypeVar

from mediabridge.interfaces.id_mapping_store import IIdMappingStore
from mediabridge.interfaces.metadata_provider import (
    ICrossReferenceProvider,
    IKitsuProvider,
    IMalProvider,
    IMetadataProvider,
    ITmdbProvider,
    ITvdbProvider,
    ITvmazeProvider,
    JsonDict,
)
from mediabridge.models.identity import (
    BRIDGE_FIELDS,
    ContentType,
    ExternalIdentity,
    is_movie,
    merge_fill_only,
    parse_known_id,
)
from mediabridge.models.mapping import FranchiseSeasonMap, ImdbSeasonRef, StaticMappingEntry
from mediabridge.services.mapping_table import StaticMappingTable
from mediabridge.utils.logging import get_logger

_T = TypeVar("_T")

# TVDB remoteIds sourceName values, lower-cased, per identity field.
_TVDB_REMOTE_SOURCES: dict[str, tuple[str, ...]] = {
    "imdb_id": ("imdb",),
    "tmdb_id": ("themoviedb.com", "themoviedb", "tmdb"),
    "tvmaze_id": ("tv maze", "tvmaze"),
}

_ALL_BRIDGES = frozenset({"tmdb", "imdb", "tvdb", "tvmaze"})


@dataclass(frozen=True)
class _SiblingInfo:
    kitsu_id: str
    subtype: str | None
    start_date: date | None


def _parse_date(value: Any) -> date | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value[:10]).date()
    except ValueError:
        return None


def _remote_id(extended: JsonDict | None, field: str) -> str | None:
    """Pick the id for *field* out of a TVDB extended record's remoteIds."""
    if not extended:
        return None
    sources = _TVDB_REMOTE_SOURCES[field]
    for remote in extended.get("remoteIds") or []:
        if str(remote.get("sourceName", "")).strip().lower() in sources:
            return remote.get("id")
    return None


def _tvmaze_identity(show: JsonDict | None) -> dict[str, Any]:
    if not show:
        return {}
    externals = show.get("externals") or {}
    return {
        "tvmaze_id": show.get("id"),
        "imdb_id": externals.get("imdb"),
        "tmdb_id": externals.get("themoviedb"),
        "tvdb_id": externals.get("thetvdb"),
    }


class IdentityResolver:
    """Merges static-table lookups and live bridging calls into one identity.

    Parameters
    ----------
    mapping_table:
        Loaded static cross-reference table.
    tmdb, tvdb, tvmaze, cross_reference, kitsu, mal:
        Provider adapters; ``None`` (or an unavailable provider) disables
        the stages that need it.
    id_store:
        Long-term mapping store for non-anime titles; optional.
    franchise_subtypes:
        Kitsu subtypes counted as seasons by :meth:`build_franchise_map`.
    imdb_season_subtypes:
        Kitsu subtypes counted as seasons by
        :meth:`resolve_imdb_season_from_kitsu`.
    """

    def __init__(
        self,
        mapping_table: StaticMappingTable,
        tmdb: ITmdbProvider | None = None,
        tvdb: ITvdbProvider | None = None,
        tvmaze: ITvmazeProvider | None = None,
        cross_reference: ICrossReferenceProvider | None = None,
        kitsu: IKitsuProvider | None = None,
        mal: IMalProvider | None = None,
        id_store: IIdMappingStore | None = None,
        franchise_subtypes: Iterable[str] = ("TV", "ONA"),
        imdb_season_subtypes: Iterable[str] = ("TV",),
    ) -> None:
        self._table = mapping_table
        self._tmdb = tmdb
        self._tvdb = tvdb
        self._tvmaze = tvmaze
        self._cross_reference = cross_reference
        self._kitsu = kitsu
        self._mal = mal
        self._id_store = id_store
        self._franchise_subtypes = frozenset(s.upper() for s in franchise_subtypes)
        self._imdb_season_subtypes = frozenset(s.upper() for s in imdb_season_subtypes)
        self._franchise_memo: dict[str, FranchiseSeasonMap] = {}
        self._imdb_season_memo: dict[str, ImdbSeasonRef] = {}
        self._background: set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop the franchise and season memos."""
        self._franchise_memo.clear()
        self._imdb_season_memo.clear()

    async def drain(self) -> None:
        """Wait for pending background persistence tasks."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _usable(provider: IMetadataProvider | None) -> bool:
        return provider is not None and provider.is_available()

    async def _attempt(
        self, step: str, known_id: str, call: Callable[[], Awaitable[_T]]
    ) -> _T | None:
        """Run one guarded network call; failures are logged and yield ``None``."""
        try:
            return await call()
        except Exception as exc:
            self._logger.warning(
                "resolver_step_failed",
                step=step,
                known_id=known_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    # ------------------------------------------------------------------
    # resolve_all_ids
    # ------------------------------------------------------------------

    async def resolve_all_ids(
        self,
        known_id: str,
        content_type: str,
        config: Mapping[str, Any] | None = None,
        prefetched: ExternalIdentity | Mapping[str, Any] | None = None,
    ) -> ExternalIdentity:
        """Return every id reachable from *known_id*.

        Parameters
        ----------
        known_id:
            Composite seed id, e.g. ``"tmdb:603"``, ``"mal:1535"`` or
            ``"tt0110912"``.
        content_type:
            ``"movie"``, ``"series"`` or ``"anime"``.
        config:
            Caller options.  ``bridges`` restricts live bridging to a subset
            of ``{"tmdb", "imdb", "tvdb", "tvmaze"}``; ``persist=False``
            skips writing the result to the id store.
        prefetched:
            Ids the caller already knows; merged fill-only after the seed.

        Never raises.  An unparseable *known_id* yields the prefetched ids
        (or an empty identity).
        """
        options = config or {}
        try:
            parsed = parse_known_id(known_id)
        except ValueError as exc:
            self._logger.warning("resolver_unparseable_id", known_id=known_id, error=str(exc))
            return merge_fill_only(ExternalIdentity(), prefetched)

        identity = merge_fill_only(ExternalIdentity.from_parsed(parsed), prefetched)
        anime = (content_type or "").lower() == ContentType.ANIME.value or identity.has_anime_ids()
        movie = is_movie(content_type)
        scope = ContentType.MOVIE.value if movie else ContentType.SERIES.value
        bridges = frozenset(options.get("bridges", _ALL_BRIDGES))

        if not anime and self._id_store is not None:
            cached = await self._attempt(
                "id_cache",
                known_id,
                lambda: self._id_store.get_cached_mapping(
                    scope, **{f: getattr(identity, f) for f in BRIDGE_FIELDS}
                ),
            )
            identity = merge_fill_only(identity, cached)
            if identity.has_all(*BRIDGE_FIELDS):
                self._logger.info("resolver_id_cache_complete", known_id=known_id)
                return identity

        identity = self._merge_static(identity)

        if "tmdb" in bridges:
            identity = await self._bridge_tmdb(identity, known_id, movie)
        if "imdb" in bridges:
            identity = await self._bridge_imdb(identity, known_id, movie)
        if "tvdb" in bridges:
            identity = await self._bridge_tvdb(identity, known_id, movie)
        if "tvmaze" in bridges:
            identity = await self._bridge_tvmaze(identity, known_id)

        if not anime and self._id_store is not None and options.get("persist", True):
            self._persist_in_background(scope, identity)

        self._logger.info(
            "resolver_resolved",
            known_id=known_id,
            content_type=content_type,
            anime=anime,
            **identity.known_fields(),
        )
        return identity

    def _merge_static(self, identity: ExternalIdentity) -> ExternalIdentity:
        for field, lookup in (
            ("mal_id", self._table.get_mapping_by_mal_id),
            ("kitsu_id", self._table.get_mapping_by_kitsu_id),
            ("anidb_id", self._table.get_mapping_by_anidb_id),
            ("anilist_id", self._table.get_mapping_by_anilist_id),
        ):
            value = getattr(identity, field)
            if value is None:
                continue
            entry = lookup(value)
            if entry is not None:
                identity = merge_fill_only(identity, entry.to_identity())
        return identity

    async def _bridge_tmdb(
        self, identity: ExternalIdentity, known_id: str, movie: bool
    ) -> ExternalIdentity:
        targets = ("imdb_id", "tvdb_id") if movie else ("imdb_id", "tvdb_id", "tvmaze_id")
        if identity.tmdb_id is None or not identity.missing(*targets):
            return identity

        if self._usable(self._tmdb) and identity.missing("imdb_id", "tvdb_id"):
            tmdb_id = identity.tmdb_id
            details = await self._attempt(
                "tmdb_details",
                known_id,
                lambda: self._tmdb.movie_info(tmdb_id) if movie else self._tmdb.tv_info(tmdb_id),
            )
            external = (details or {}).get("external_ids") or {}
            identity = merge_fill_only(
                identity, {"imdb_id": external.get("imdb_id"), "tvdb_id": external.get("tvdb_id")}
            )

        if (
            not movie
            and identity.tvdb_id is not None
            and identity.tvmaze_id is None
            and self._usable(self._tvdb)
        ):
            tvdb_id = identity.tvdb_id
            extended = await self._attempt(
                "tvdb_series_extended", known_id, lambda: self._tvdb.get_series_extended(tvdb_id)
            )
            identity = merge_fill_only(identity, {"tvmaze_id": _remote_id(extended, "tvmaze_id")})
        return identity

    async def _bridge_imdb(
        self, identity: ExternalIdentity, known_id: str, movie: bool
    ) -> ExternalIdentity:
        targets = ("tmdb_id", "tvdb_id") if movie else ("tmdb_id", "tvdb_id", "tvmaze_id")
        if identity.imdb_id is None or not identity.missing(*targets):
            return identity
        imdb_id = identity.imdb_id
        type_name = ContentType.MOVIE.value if movie else ContentType.SERIES.value

        if self._usable(self._cross_reference) and identity.missing("tmdb_id", "tvdb_id"):
            meta = await self._attempt(
                "cross_reference_meta",
                known_id,
                lambda: self._cross_reference.get_meta(type_name, imdb_id),
            )
            if meta:
                identity = merge_fill_only(
                    identity, {"tmdb_id": meta.get("moviedb_id"), "tvdb_id": meta.get("tvdb_id")}
                )

        if identity.tmdb_id is None and self._usable(self._tmdb):
            found = await self._attempt(
                "tmdb_find", known_id, lambda: self._tmdb.find(imdb_id, "imdb_id")
            )
            results = (found or {}).get("movie_results" if movie else "tv_results") or []
            if results:
                identity = merge_fill_only(identity, {"tmdb_id": results[0].get("id")})

        if identity.tvdb_id is None and self._usable(self._tvdb):
            hit = await self._attempt(
                "tvdb_remote_id", known_id, lambda: self._tvdb.find_by_remote_id(imdb_id)
            )
            record = (hit or {}).get("movie" if movie else "series") or {}
            identity = merge_fill_only(identity, {"tvdb_id": record.get("id")})

        if not movie and identity.tvmaze_id is None and self._usable(self._tvmaze):
            show = await self._attempt(
                "tvmaze_lookup_imdb", known_id, lambda: self._tvmaze.get_show_by_imdb_id(imdb_id)
            )
            identity = merge_fill_only(identity, _tvmaze_identity(show))
        return identity

    async def _bridge_tvdb(
        self, identity: ExternalIdentity, known_id: str, movie: bool
    ) -> ExternalIdentity:
        targets = ("imdb_id", "tmdb_id") if movie else ("imdb_id", "tmdb_id", "tvmaze_id")
        if identity.tvdb_id is None or not identity.missing(*targets) or not self._usable(self._tvdb):
            return identity
        tvdb_id = identity.tvdb_id

        extended = await self._attempt(
            "tvdb_extended",
            known_id,
            lambda: (
                self._tvdb.get_movie_extended(tvdb_id)
                if movie
                else self._tvdb.get_series_extended(tvdb_id)
            ),
        )
        return merge_fill_only(
            identity, {field: _remote_id(extended, field) for field in _TVDB_REMOTE_SOURCES}
        )

    async def _bridge_tvmaze(self, identity: ExternalIdentity, known_id: str) -> ExternalIdentity:
        if (
            identity.tvmaze_id is None
            or not identity.missing("imdb_id", "tmdb_id", "tvdb_id")
            or not self._usable(self._tvmaze)
        ):
            return identity
        tvmaze_id = identity.tvmaze_id
        show = await self._attempt(
            "tvmaze_show", known_id, lambda: self._tvmaze.get_show_by_id(tvmaze_id)
        )
        return merge_fill_only(identity, _tvmaze_identity(show))

    def _persist_in_background(self, scope: str, identity: ExternalIdentity) -> None:
        task = asyncio.create_task(self._persist(scope, identity))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _persist(self, scope: str, identity: ExternalIdentity) -> None:
        if self._id_store is None:
            return
        try:
            await self._id_store.save_mapping(scope, identity)
        except Exception as exc:
            self._logger.warning("resolver_persist_failed", content_type=scope, error=str(exc))

    # ------------------------------------------------------------------
    # Franchise and season helpers
    # ------------------------------------------------------------------

    async def _sibling_details(
        self, siblings: list[StaticMappingEntry], context: str
    ) -> list[_SiblingInfo]:
        """Fetch subtype and start date for every sibling with a Kitsu id.

        Kitsu is asked in one batch; siblings it did not return are looked
        up on MAL through Jikan, and finally fall back to the static record.
        """
        with_kitsu = [e for e in siblings if e.kitsu_id is not None]
        kitsu_ids = [e.kitsu_id for e in with_kitsu]

        kitsu_records: dict[str, JsonDict] = {}
        if kitsu_ids and self._usable(self._kitsu):
            records = await self._attempt(
                "kitsu_batch", context, lambda: self._kitsu.get_multiple_anime_details(kitsu_ids)
            )
            kitsu_records = {str(r.get("id")): r for r in records or []}

        infos: list[_SiblingInfo] = []
        for entry in with_kitsu:
            record = kitsu_records.get(entry.kitsu_id)
            if record is not None:
                attributes = record.get("attributes") or {}
                infos.append(
                    _SiblingInfo(
                        kitsu_id=entry.kitsu_id,
                        subtype=(attributes.get("subtype") or "").upper() or None,
                        start_date=_parse_date(attributes.get("startDate")),
                    )
                )
                continue

            if entry.mal_id is not None and self._usable(self._mal):
                mal_id = entry.mal_id
                anime = await self._attempt(
                    "jikan_details", context, lambda: self._mal.get_anime_details(mal_id)
                )
                if anime:
                    infos.append(
                        _SiblingInfo(
                            kitsu_id=entry.kitsu_id,
                            subtype=(anime.get("type") or "").upper() or None,
                            start_date=_parse_date((anime.get("aired") or {}).get("from")),
                        )
                    )
                    continue

            infos.append(
                _SiblingInfo(
                    kitsu_id=entry.kitsu_id,
                    subtype=entry.type.upper() if entry.type else None,
                    start_date=entry.start_date,
                )
            )
        return infos

    @staticmethod
    def _chronological(infos: list[_SiblingInfo], subtypes: frozenset[str]) -> list[str]:
        """Kitsu ids of *infos* with a matching subtype, oldest first."""
        dated = [i for i in infos if i.subtype in subtypes and i.start_date is not None]
        dated.sort(key=lambda i: i.start_date)
        return [i.kitsu_id for i in dated]

    async def build_franchise_map(self, tvdb_id: str | int) -> FranchiseSeasonMap:
        """Map season numbers to Kitsu ids for the franchise sharing *tvdb_id*.

        Siblings are ordered by start date, so the mapping follows release
        order even where that differs from the canonical season order.
        Empty maps are not memoized.
        """
        key = str(tvdb_id)
        if key in self._franchise_memo:
            return self._franchise_memo[key]

        siblings = self._table.get_mappings_by_tvdb_id(key)
        if not siblings:
            return {}

        infos = await self._sibling_details(siblings, f"tvdb:{key}")
        ordered = self._chronological(infos, self._franchise_subtypes)
        franchise = {season: kitsu_id for season, kitsu_id in enumerate(ordered, start=1)}

        if franchise:
            self._franchise_memo[key] = franchise
        self._logger.debug("resolver_franchise_map", tvdb_id=key, seasons=len(franchise))
        return franchise

    async def resolve_kitsu_id_from_tvdb_season(
        self, tvdb_id: str | int, season_number: int
    ) -> str | None:
        franchise = await self.build_franchise_map(tvdb_id)
        return franchise.get(int(season_number))

    async def resolve_imdb_season_from_kitsu(self, kitsu_id: str | int) -> ImdbSeasonRef | None:
        """Return the IMDb parent and 1-based season of *kitsu_id*, or ``None``."""
        key = str(kitsu_id)
        if key in self._imdb_season_memo:
            return self._imdb_season_memo[key]

        base = self._table.get_mapping_by_kitsu_id(key)
        if base is None or base.imdb_id is None:
            return None

        siblings = self._table.get_mappings_by_imdb_id(base.imdb_id)
        if len(siblings) <= 1:
            result: ImdbSeasonRef | None = ImdbSeasonRef(imdb_id=base.imdb_id, season_number=1)
        else:
            infos = await self._sibling_details(siblings, f"kitsu:{key}")
            ordered = self._chronological(infos, self._imdb_season_subtypes)
            result = (
                ImdbSeasonRef(imdb_id=base.imdb_id, season_number=ordered.index(key) + 1)
                if key in ordered
                else None
            )

        if result is not None:
            self._imdb_season_memo[key] = result
        return result
