"""Static anime cross-reference table.

Loads the Fribb ``anime-list-full.json`` dataset into in-memory indices and
answers synchronous lookups by MAL, Kitsu, AniDB, AniList, TVDB, IMDb and
TMDB id.

Load algorithm (``initialize`` / ``refresh``):

1. ``HEAD`` the remote dataset and read its ETag.
2. If the ETag equals the one stored next to the on-disk snapshot, index
   the snapshot.
3. Otherwise download the dataset, persist snapshot + ETag, and index it.
4. On any network error fall back to the snapshot; if that is missing or
   corrupt as well, the indices stay empty and every lookup reports
   "not found".

Indices are built into a fresh :class:`MappingIndices` bundle and swapped
in with a single assignment, so readers never see a half-built table.
Nothing here raises to callers.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from mediabridge.models.mapping import StaticMappingEntry
from mediabridge.utils.logging import get_logger

_HEAD_TIMEOUT = 15.0
_DOWNLOAD_TIMEOUT = 60.0


@dataclass(frozen=True)
class MappingIndices:
    """Immutable index bundle built from one dataset load."""

    by_mal: dict[str, StaticMappingEntry] = field(default_factory=dict)
    by_kitsu: dict[str, StaticMappingEntry] = field(default_factory=dict)
    by_anidb: dict[str, StaticMappingEntry] = field(default_factory=dict)
    by_anilist: dict[str, StaticMappingEntry] = field(default_factory=dict)
    by_tvdb: dict[str, list[StaticMappingEntry]] = field(default_factory=dict)
    by_imdb: dict[str, list[StaticMappingEntry]] = field(default_factory=dict)
    # TMDB ids collide between movies and series, so lookups scan this list
    # and disambiguate by type tag.
    tmdb_entries: list[StaticMappingEntry] = field(default_factory=list)
    record_count: int = 0
    skipped_count: int = 0


def build_indices(records: list[dict[str, Any]]) -> MappingIndices:
    """Index every dataset record in one pass; invalid records are skipped."""
    indices = MappingIndices()
    skipped = 0
    for record in records:
        try:
            entry = StaticMappingEntry.model_validate(record)
        except ValidationError:
            skipped += 1
            continue

        for key, index in (
            (entry.mal_id, indices.by_mal),
            (entry.kitsu_id, indices.by_kitsu),
            (entry.anidb_id, indices.by_anidb),
            (entry.anilist_id, indices.by_anilist),
        ):
            if key is not None:
                index.setdefault(key, entry)

        if entry.tvdb_id is not None:
            indices.by_tvdb.setdefault(entry.tvdb_id, []).append(entry)
        if entry.imdb_id is not None:
            indices.by_imdb.setdefault(entry.imdb_id, []).append(entry)
        if entry.tmdb_id is not None:
            indices.tmdb_entries.append(entry)

    return MappingIndices(
        by_mal=indices.by_mal,
        by_kitsu=indices.by_kitsu,
        by_anidb=indices.by_anidb,
        by_anilist=indices.by_anilist,
        by_tvdb=indices.by_tvdb,
        by_imdb=indices.by_imdb,
        tmdb_entries=indices.tmdb_entries,
        record_count=len(records) - skipped,
        skipped_count=skipped,
    )


class StaticMappingTable:
    """Owner of the static cross-reference indices.

    Parameters
    ----------
    http_client:
        Shared async HTTP client used for the ETag check and download.
    url:
        Remote dataset URL.
    snapshot_path:
        On-disk copy of the last downloaded dataset.
    etag_path:
        Sidecar file holding the ETag of the snapshot.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: str,
        snapshot_path: str | Path,
        etag_path: str | Path,
    ) -> None:
        self._http = http_client
        self._url = url
        self._snapshot_path = Path(snapshot_path)
        self._etag_path = Path(etag_path)
        self._indices = MappingIndices()
        self._initialized = False
        self._last_source: str | None = None
        self._last_loaded_at: datetime | None = None
        self._load_lock = asyncio.Lock()
        self._update_task: asyncio.Task | None = None
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Load the table once; later calls are no-ops."""
        if self._initialized:
            return
        async with self._load_lock:
            if self._initialized:
                return
            await self._load()

    async def refresh(self) -> None:
        """Re-check the remote ETag and reload if the dataset changed."""
        async with self._load_lock:
            await self._load()

    def reset(self) -> None:
        """Drop all indices and mark the table as not loaded."""
        self._indices = MappingIndices()
        self._initialized = False
        self._last_source = None
        self._last_loaded_at = None

    def load_records(self, records: list[dict[str, Any]], source: str = "memory") -> None:
        """Index *records* directly, replacing the current indices."""
        self._swap(build_indices(records), source)

    def start_auto_update(self, interval_hours: float) -> None:
        """Refresh the table every *interval_hours* in a background task."""
        if interval_hours <= 0 or (self._update_task and not self._update_task.done()):
            return
        self._update_task = asyncio.create_task(
            self._auto_update_loop(interval_hours * 3600), name="mapping-table-auto-update"
        )
        self._logger.info("mapping_table_auto_update_started", interval_hours=interval_hours)

    async def stop_auto_update(self) -> None:
        if self._update_task is None:
            return
        self._update_task.cancel()
        try:
            await self._update_task
        except asyncio.CancelledError:
            pass
        self._update_task = None
        self._logger.info("mapping_table_auto_update_stopped")

    async def _auto_update_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.refresh()
            except Exception as exc:  # keep the loop alive
                self._logger.error("mapping_table_auto_update_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self) -> None:
        try:
            remote_etag = await self._fetch_remote_etag()
            stored_etag = self._read_stored_etag()
            if remote_etag and remote_etag == stored_etag:
                records = await self._read_snapshot()
                if records is not None:
                    self._swap(build_indices(records), "local_snapshot")
                    return
                self._logger.warning("mapping_snapshot_unusable_redownloading")

            records = await self._download(remote_etag)
            self._swap(build_indices(records), "remote")
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("mapping_table_fetch_failed", url=self._url, error=str(exc))
            records = await self._read_snapshot()
            if records is None:
                self._logger.error(
                    "mapping_table_unavailable",
                    detail="remote fetch and local snapshot both failed; lookups will return nothing",
                )
                self._initialized = True
                return
            self._swap(build_indices(records), "local_snapshot_fallback")

    async def _fetch_remote_etag(self) -> str | None:
        response = await self._http.head(self._url, timeout=_HEAD_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
        return response.headers.get("etag")

    async def _download(self, etag: str | None) -> list[dict[str, Any]]:
        self._logger.info("mapping_table_downloading", url=self._url)
        response = await self._http.get(self._url, timeout=_DOWNLOAD_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
        records = response.json()
        if not isinstance(records, list):
            msg = f"Expected a JSON array from {self._url}, got {type(records).__name__}"
            raise ValueError(msg)
        await asyncio.to_thread(self._persist_snapshot, response.text, etag or response.headers.get("etag"))
        return records

    def _persist_snapshot(self, text: str, etag: str | None) -> None:
        try:
            self._snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            self._snapshot_path.write_text(text, encoding="utf-8")
            if etag:
                self._etag_path.parent.mkdir(parents=True, exist_ok=True)
                self._etag_path.write_text(etag, encoding="utf-8")
            else:
                self._etag_path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("mapping_snapshot_write_failed", path=str(self._snapshot_path), error=str(exc))

    def _read_stored_etag(self) -> str | None:
        try:
            return self._etag_path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    async def _read_snapshot(self) -> list[dict[str, Any]] | None:
        def _read() -> Any:
            return json.loads(self._snapshot_path.read_text(encoding="utf-8"))

        try:
            records = await asyncio.to_thread(_read)
        except (OSError, ValueError) as exc:
            self._logger.warning("mapping_snapshot_read_failed", path=str(self._snapshot_path), error=str(exc))
            return None
        if not isinstance(records, list):
            self._logger.warning("mapping_snapshot_invalid", path=str(self._snapshot_path))
            return None
        return records

    def _swap(self, indices: MappingIndices, source: str) -> None:
        self._indices = indices
        self._initialized = True
        self._last_source = source
        self._last_loaded_at = datetime.now(timezone.utc)
        self._logger.info(
            "mapping_table_loaded",
            source=source,
            mal_entries=len(indices.by_mal),
            skipped=indices.skipped_count,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _ready(self, lookup: str) -> bool:
        if not self._initialized:
            self._logger.warning("mapping_table_not_initialized", lookup=lookup)
            return False
        return True

    def get_mapping_by_mal_id(self, mal_id: str | int) -> StaticMappingEntry | None:
        if not self._ready("mal"):
            return None
        return self._indices.by_mal.get(str(mal_id))

    def get_mapping_by_kitsu_id(self, kitsu_id: str | int) -> StaticMappingEntry | None:
        if not self._ready("kitsu"):
            return None
        return self._indices.by_kitsu.get(str(kitsu_id))

    def get_mapping_by_anidb_id(self, anidb_id: str | int) -> StaticMappingEntry | None:
        if not self._ready("anidb"):
            return None
        return self._indices.by_anidb.get(str(anidb_id))

    def get_mapping_by_anilist_id(self, anilist_id: str | int) -> StaticMappingEntry | None:
        if not self._ready("anilist"):
            return None
        return self._indices.by_anilist.get(str(anilist_id))

    def get_mappings_by_tvdb_id(self, tvdb_id: str | int) -> list[StaticMappingEntry]:
        """Return every franchise sibling sharing *tvdb_id*."""
        if not self._ready("tvdb"):
            return []
        return list(self._indices.by_tvdb.get(str(tvdb_id), ()))

    def get_mappings_by_imdb_id(self, imdb_id: str) -> list[StaticMappingEntry]:
        """Return every entry sharing *imdb_id*."""
        if not self._ready("imdb"):
            return []
        return list(self._indices.by_imdb.get(imdb_id, ()))

    def get_mapping_by_tmdb_id(
        self, tmdb_id: str | int, content_type: str
    ) -> StaticMappingEntry | None:
        """Return the entry for *tmdb_id*, disambiguated by *content_type*.

        With several candidates, the first whose type tag fits
        *content_type* wins (``movie`` -> ``movie``; anything else ->
        ``tv``/``ova``/``ona``/``special``).  If none fits, the first
        candidate is returned and the ambiguity is logged.
        """
        if not self._ready("tmdb"):
            return None
        key = str(tmdb_id)
        candidates = [e for e in self._indices.tmdb_entries if e.tmdb_id == key]
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        for entry in candidates:
            if entry.matches_content_type(content_type):
                return entry

        self._logger.warning(
            "mapping_tmdb_ambiguous",
            tmdb_id=key,
            content_type=content_type,
            candidates=len(candidates),
        )
        return candidates[0]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return index sizes and snapshot metadata."""
        indices = self._indices
        snapshot: dict[str, Any] = {"path": str(self._snapshot_path), "file_size": 0, "last_modified": None}
        try:
            stat = self._snapshot_path.stat()
            snapshot["file_size"] = stat.st_size
            snapshot["last_modified"] = datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat()
        except OSError:
            pass

        return {
            "initialized": self._initialized,
            "source": self._last_source,
            "loaded_at": self._last_loaded_at.isoformat() if self._last_loaded_at else None,
            "etag": self._read_stored_etag(),
            "records": indices.record_count,
            "skipped_records": indices.skipped_count,
            "mal_index_size": len(indices.by_mal),
            "kitsu_index_size": len(indices.by_kitsu),
            "anidb_index_size": len(indices.by_anidb),
            "anilist_index_size": len(indices.by_anilist),
            "tvdb_index_size": len(indices.by_tvdb),
            "imdb_index_size": len(indices.by_imdb),
            "tmdb_entries": len(indices.tmdb_entries),
            "snapshot": snapshot,
        }
