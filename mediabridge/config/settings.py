"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# Values are read from two sources (in priority order):
#
#   1. **Environment variables** - e.g., TMDB_API_KEY=abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field ``tmdb_api_key`` maps to env var ``TMDB_API_KEY``.  Defaults apply
# when neither source defines a field.
#
# TTLs are in seconds unless the field name says otherwise.  The queue
# timings are in milliseconds to match how upstream rate limits are
# usually documented.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from mediabridge import __version__

_DAY = 24 * 60 * 60
_HOUR = 60 * 60


class Settings(BaseSettings):
    """mediabridge settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Provider credentials ===
    # Empty string = "not configured"; adapters raise ConfigurationError
    # and the resolver skips the corresponding bridging step.
    tmdb_api_key: str = ""
    tvdb_api_key: str = ""

    # === Provider endpoints ===
    tmdb_base_url: str = "https://api.themoviedb.org/3"
    tvdb_base_url: str = "https://api4.thetvdb.com/v4"
    jikan_base_url: str = "https://api.jikan.moe/v4"
    kitsu_base_url: str = "https://kitsu.io/api/edge"
    tvmaze_base_url: str = "https://api.tvmaze.com"
    cinemeta_base_url: str = "https://v3-cinemeta.strem.io"

    # === Cache ===
    redis_url: str = ""  # empty = in-process memory backend
    no_cache: bool = False
    release_version: str = __version__
    memory_cache_max_size: int = 10_000

    # === Cache TTLs (seconds) ===
    meta_ttl: int = 7 * _DAY
    catalog_ttl: int = 1 * _DAY
    static_catalog_ttl: int = 30 * _DAY
    tvdb_api_ttl: int = 12 * _HOUR
    tvmaze_api_ttl: int = 12 * _HOUR
    jikan_api_ttl: int = 7 * _DAY
    tmdb_api_ttl: int = 12 * _HOUR

    # === Static mapping table ===
    anime_list_url: str = (
        "https://raw.githubusercontent.com/Fribb/anime-lists/refs/heads/master/anime-list-full.json"
    )
    anime_list_snapshot_path: str = "data/anime-list-full.json.cache"
    anime_list_etag_path: str = "data/anime-list-full.json.etag"
    anime_list_update_interval_hours: float = 24.0  # 0 disables the periodic refresh

    # === Long-term id cache ===
    id_cache_db_path: str = "data/id_cache.db"
    id_cache_ttl_days: int = 90

    # === Jikan request queue (milliseconds) ===
    jikan_request_delay_ms: int = 350
    jikan_max_retries: int = 3
    jikan_backoff_base_ms: int = 1000
    jikan_jitter_ms: int = 500

    # === HTTP ===
    http_timeout_seconds: float = 15.0

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_configured_providers(self) -> list[str]:
        """Return the providers usable with the current credentials.

        Jikan, Kitsu, TVmaze and Cinemeta need no key and are always listed.
        """
        providers: list[str] = []
        if self.tmdb_api_key:
            providers.append("tmdb")
        if self.tvdb_api_key:
            providers.append("tvdb")
        providers.extend(["jikan", "kitsu", "tvmaze", "cinemeta"])
        return providers
