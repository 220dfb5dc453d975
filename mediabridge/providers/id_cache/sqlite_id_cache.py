"""SQLite-backed long-term id mapping store.

Persists resolved TMDB/TVDB/IMDb/TVmaze id sets for movies and series at
``data/id_cache.db`` so later resolutions can skip live bridging.  Uses
``aiosqlite`` for async I/O; each operation opens its own connection.

Rows are merged fill-only: saving a mapping that overlaps an existing row
only fills that row's empty columns.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from mediabridge.interfaces.id_mapping_store import IIdMappingStore
from mediabridge.models.identity import BRIDGE_FIELDS, ExternalIdentity

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/id_cache.db")
_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"
_MIN_IDS_TO_SAVE = 2

_CREATE_TABLE_SQL = f"""\
CREATE TABLE IF NOT EXISTS id_mappings (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type  TEXT NOT NULL,
    tmdb_id       TEXT,
    tvdb_id       TEXT,
    imdb_id       TEXT,
    tvmaze_id     TEXT,
    created_at    TEXT NOT NULL DEFAULT ({_NOW}),
    updated_at    TEXT NOT NULL DEFAULT ({_NOW})
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_id_mappings_tmdb ON id_mappings(content_type, tmdb_id);",
    "CREATE INDEX IF NOT EXISTS idx_id_mappings_tvdb ON id_mappings(content_type, tvdb_id);",
    "CREATE INDEX IF NOT EXISTS idx_id_mappings_imdb ON id_mappings(content_type, imdb_id);",
    "CREATE INDEX IF NOT EXISTS idx_id_mappings_tvmaze ON id_mappings(content_type, tvmaze_id);",
    "CREATE INDEX IF NOT EXISTS idx_id_mappings_updated ON id_mappings(updated_at);",
]

_COLUMNS = "id, content_type, tmdb_id, tvdb_id, imdb_id, tvmaze_id, created_at, updated_at"

_FILL_ONLY_UPDATE_SQL = f"""\
UPDATE id_mappings
SET tmdb_id    = COALESCE(tmdb_id, ?),
    tvdb_id    = COALESCE(tvdb_id, ?),
    imdb_id    = COALESCE(imdb_id, ?),
    tvmaze_id  = COALESCE(tvmaze_id, ?),
    updated_at = {_NOW}
WHERE id = ?;
"""

_INSERT_SQL = """\
INSERT INTO id_mappings (content_type, tmdb_id, tvdb_id, imdb_id, tvmaze_id)
VALUES (?, ?, ?, ?, ?);
"""


def _match_clause(ids: dict[str, str]) -> tuple[str, list[str]]:
    """Build ``(col = ? OR col = ?)`` for the supplied id columns."""
    clauses = [f"{column} = ?" for column in ids]
    return "(" + " OR ".join(clauses) + ")", list(ids.values())


class SQLiteIdMappingStore(IIdMappingStore):
    """SQLite persistence for resolved cross-provider id mappings.

    Parameters
    ----------
    db_path:
        Database file; parent directories are created on initialize.
    ttl_days:
        Rows not updated for this many days are ignored by lookups.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, ttl_days: int = 90) -> None:
        self._db_path = Path(db_path)
        self._ttl_days = ttl_days

    async def initialize(self) -> None:
        """Create the id_mappings table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("id_cache_db_initialized", path=str(self._db_path))

    async def get_cached_mapping(
        self,
        content_type: str,
        tmdb_id: str | None = None,
        tvdb_id: str | None = None,
        imdb_id: str | None = None,
        tvmaze_id: str | None = None,
    ) -> ExternalIdentity | None:
        ids = {
            column: str(value)
            for column, value in (
                ("tmdb_id", tmdb_id),
                ("tvdb_id", tvdb_id),
                ("imdb_id", imdb_id),
                ("tvmaze_id", tvmaze_id),
            )
            if value
        }
        if not ids:
            return None

        match_sql, params = _match_clause(ids)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM id_mappings "
                f"WHERE content_type = ? AND {match_sql} "
                f"AND updated_at >= strftime('%Y-%m-%dT%H:%M:%fZ', 'now', ?) "
                "ORDER BY updated_at DESC LIMIT 1",
                (content_type, *params, f"-{self._ttl_days} days"),
            )
            row = await cursor.fetchone()

        if row is None:
            return None
        logger.debug("id_cache_hit", content_type=content_type, row_id=row["id"])
        return ExternalIdentity(**{field: row[field] for field in BRIDGE_FIELDS})

    async def save_mapping(self, content_type: str, identity: ExternalIdentity) -> bool:
        """Insert or fill-only merge *identity*; skipped below two known ids."""
        ids = {field: getattr(identity, field) for field in BRIDGE_FIELDS}
        known = {column: value for column, value in ids.items() if value is not None}
        if len(known) < _MIN_IDS_TO_SAVE:
            logger.debug("id_cache_save_skipped", content_type=content_type, known=len(known))
            return False

        match_sql, params = _match_clause(known)
        values = tuple(ids[field] for field in BRIDGE_FIELDS)
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                f"SELECT id FROM id_mappings WHERE content_type = ? AND {match_sql} "
                "ORDER BY updated_at DESC LIMIT 1",
                (content_type, *params),
            )
            existing = await cursor.fetchone()
            if existing is None:
                await db.execute(_INSERT_SQL, (content_type, *values))
            else:
                await db.execute(_FILL_ONLY_UPDATE_SQL, (*values, existing[0]))
            await db.commit()

        logger.info(
            "id_cache_saved",
            content_type=content_type,
            merged=existing is not None,
            **known,
        )
        return True

    async def get_stats(self) -> dict[str, Any]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT content_type, "
                "COUNT(*) AS total, "
                "SUM(CASE WHEN tmdb_id IS NOT NULL THEN 1 ELSE 0 END) AS with_tmdb, "
                "SUM(CASE WHEN tvdb_id IS NOT NULL THEN 1 ELSE 0 END) AS with_tvdb, "
                "SUM(CASE WHEN imdb_id IS NOT NULL THEN 1 ELSE 0 END) AS with_imdb, "
                "SUM(CASE WHEN tvmaze_id IS NOT NULL THEN 1 ELSE 0 END) AS with_tvmaze, "
                "MIN(updated_at) AS oldest, "
                "MAX(updated_at) AS newest "
                "FROM id_mappings GROUP BY content_type",
            )
            rows = await cursor.fetchall()

        by_type: dict[str, dict[str, Any]] = {}
        total = 0
        for row in rows:
            r = dict(row)
            content_type = r.pop("content_type")
            by_type[content_type] = r
            total += r["total"]

        return {"total_mappings": total, "by_content_type": by_type}

    async def search(self, id_value: str, limit: int = 20) -> list[dict[str, Any]]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM id_mappings "
                "WHERE tmdb_id = ? OR tvdb_id = ? OR imdb_id = ? OR tvmaze_id = ? "
                "ORDER BY updated_at DESC LIMIT ?",
                (id_value, id_value, id_value, id_value, limit),
            )
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def clear_older_than(self, days: int) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM id_mappings "
                "WHERE updated_at < strftime('%Y-%m-%dT%H:%M:%fZ', 'now', ?)",
                (f"-{days} days",),
            )
            await db.commit()
            removed = cursor.rowcount
        logger.info("id_cache_cleared", older_than_days=days, removed=removed)
        return removed

    def get_provider_name(self) -> str:
        return "sqlite"
