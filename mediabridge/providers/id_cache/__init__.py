"""Long-term id mapping stores."""

from mediabridge.providers.id_cache.sqlite_id_cache import SQLiteIdMappingStore

__all__ = ["SQLiteIdMappingStore"]
