"""Unit tests for Settings and load_config."""

from __future__ import annotations

from pathlib import Path

import pytest

from mediabridge import __version__
from mediabridge.config.loader import _deep_merge, load_config
from mediabridge.config.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TMDB_API_KEY", raising=False)
        monkeypatch.delenv("REDIS_URL", raising=False)
        s = Settings(_env_file=None)

        assert s.tmdb_api_key == ""
        assert s.redis_url == ""
        assert s.release_version == __version__
        assert s.jikan_request_delay_ms == 350
        assert s.id_cache_ttl_days == 90

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TMDB_API_KEY", "abc123")
        monkeypatch.setenv("NO_CACHE", "true")
        monkeypatch.setenv("JIKAN_MAX_RETRIES", "5")
        s = Settings(_env_file=None)

        assert s.tmdb_api_key == "abc123"
        assert s.no_cache is True
        assert s.jikan_max_retries == 5

    def test_configured_providers(self) -> None:
        keyless = Settings(_env_file=None, tmdb_api_key="", tvdb_api_key="")
        keyed = Settings(_env_file=None, tmdb_api_key="a", tvdb_api_key="b")

        assert keyless.get_configured_providers() == ["jikan", "kitsu", "tvmaze", "cinemeta"]
        assert keyed.get_configured_providers()[:2] == ["tmdb", "tvdb"]


class TestLoadConfig:
    def test_merges_yaml_with_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "cache:\n"
            "  uncached_catalogs: [tmdb.trending]\n"
            "  ttl:\n"
            "    cinemeta-api: 600\n"
            "mapping_table:\n"
            "  franchise_subtypes: [TV]\n",
            encoding="utf-8",
        )
        settings = Settings(_env_file=None, no_cache=True, meta_ttl=42, release_version="2.0.0")

        config = load_config(str(path), settings=settings)

        assert config["cache"]["uncached_catalogs"] == ["tmdb.trending"]
        assert config["cache"]["ttl"]["cinemeta-api"] == 600
        assert config["cache"]["ttl"]["meta"] == 42
        assert config["cache"]["enabled"] is False
        assert config["app"]["release_version"] == "2.0.0"
        assert config["mapping_table"]["franchise_subtypes"] == ["TV"]

    def test_missing_file_is_empty_document(self, tmp_path: Path) -> None:
        config = load_config(str(tmp_path / "absent.yaml"), settings=Settings(_env_file=None))

        assert "mapping_table" not in config
        assert config["queue"]["jikan"]["base_delay_ms"] == 350

    def test_repository_config_parses(self) -> None:
        repo_config = Path(__file__).resolve().parents[2] / "config" / "config.yaml"
        config = load_config(str(repo_config), settings=Settings(_env_file=None))

        assert config["mapping_table"]["imdb_season_subtypes"] == ["TV"]
        assert "mal:" in config["cache"]["global_meta_prefixes"]


def test_deep_merge_replaces_non_dict_values() -> None:
    base = {"a": {"b": 1, "c": [1]}, "d": 1}
    _deep_merge(base, {"a": {"c": [2]}, "d": {"e": 1}})
    assert base == {"a": {"b": 1, "c": [2]}, "d": {"e": 1}}
