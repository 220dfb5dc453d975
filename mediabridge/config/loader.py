"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
#   1. config/config.yaml  - static defaults checked into the repo
#   2. .env file           - local developer overrides (not committed)
#   3. Environment vars    - set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# derived from Settings on top.  The YAML file holds what env vars do not
# express well: the per-namespace TTL table and the list of catalogs that
# must never be cached.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from mediabridge.config.settings import Settings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file is
              treated as an empty document.
        settings: Settings instance to merge; a fresh one is built when
                  omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides: dict[str, Any] = {
        "app": {
            "env": settings.app_env,
            "release_version": settings.release_version,
        },
        "cache": {
            "enabled": not settings.no_cache,
            "redis_url": settings.redis_url,
            "ttl": {
                "meta": settings.meta_ttl,
                "catalog": settings.catalog_ttl,
                "static_catalog": settings.static_catalog_ttl,
                "tvdb-api": settings.tvdb_api_ttl,
                "tvmaze-api": settings.tvmaze_api_ttl,
                "jikan-api": settings.jikan_api_ttl,
                "tmdb-api": settings.tmdb_api_ttl,
            },
        },
        "queue": {
            "jikan": {
                "base_delay_ms": settings.jikan_request_delay_ms,
                "max_retries": settings.jikan_max_retries,
                "backoff_base_ms": settings.jikan_backoff_base_ms,
                "jitter_ms": settings.jikan_jitter_ms,
            },
        },
        "providers": {
            "configured": settings.get_configured_providers(),
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
