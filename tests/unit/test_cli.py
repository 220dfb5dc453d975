"""Unit tests for the mediabridge CLI (mediabridge.cli.ids)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediabridge.cli.ids import _build_parser, run
from mediabridge.models.identity import ExternalIdentity
from mediabridge.models.mapping import ImdbSeasonRef


# ======================================================================
# Shared helpers
# ======================================================================


def _components() -> MagicMock:
    """Fake Components bundle with every async entry point mocked."""
    components = MagicMock()
    components.start = AsyncMock()
    components.aclose = AsyncMock()
    components.settings.id_cache_ttl_days = 90

    resolver = components.resolver
    resolver.resolve_all_ids = AsyncMock(
        return_value=ExternalIdentity(imdb_id="tt0110912", tmdb_id="680", tvdb_id="190")
    )
    resolver.drain = AsyncMock()
    resolver.build_franchise_map = AsyncMock(return_value={1: "8001", 2: "8003"})
    resolver.resolve_kitsu_id_from_tvdb_season = AsyncMock(return_value=None)
    resolver.resolve_imdb_season_from_kitsu = AsyncMock(
        return_value=ImdbSeasonRef(imdb_id="tt0877057", season_number=1)
    )

    components.mapping_table.get_stats.return_value = {"initialized": True, "records": 7}
    components.mapping_table.refresh = AsyncMock()

    store = components.id_store
    store.initialize = AsyncMock()
    store.get_stats = AsyncMock(
        return_value={"total_mappings": 1, "by_content_type": {"movie": {"total": 1}}}
    )
    store.clear_older_than = AsyncMock(return_value=3)
    return components


def _run(argv: list[str], components: MagicMock) -> int:
    with patch("mediabridge.cli.ids.build_components", AsyncMock(return_value=components)):
        return run(argv)


# ======================================================================
# Parser
# ======================================================================


class TestParser:
    def test_resolve_defaults(self) -> None:
        args = _build_parser().parse_args(["resolve", "tmdb:603"])
        assert args.command == "resolve"
        assert args.type == "movie"
        assert args.no_persist is False

    def test_rejects_unknown_type(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["resolve", "tmdb:603", "--type", "music"])

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert run([]) == 1
        assert "usage: mediabridge" in capsys.readouterr().out


# ======================================================================
# Commands
# ======================================================================


class TestCommands:
    def test_resolve_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()

        code = _run(["--json", "resolve", "tt0110912", "--type", "movie"], components)

        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["imdb_id"] == "tt0110912"
        assert payload["tvmaze_id"] is None
        components.resolver.resolve_all_ids.assert_awaited_once_with(
            "tt0110912", "movie", config={"persist": True}
        )
        components.start.assert_awaited_once_with(auto_update=False)
        components.aclose.assert_awaited_once()

    def test_resolve_no_persist_table_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()

        _run(["resolve", "mal:1535", "--type", "anime", "--no-persist"], components)

        out = capsys.readouterr().out
        assert "tmdb_id" in out
        components.resolver.resolve_all_ids.assert_awaited_once_with(
            "mal:1535", "anime", config={"persist": False}
        )

    def test_franchise_map(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--json", "franchise", "79824"], _components()) == 0
        assert json.loads(capsys.readouterr().out) == {"season 1": "8001", "season 2": "8003"}

    def test_franchise_missing_season_exits_non_zero(self) -> None:
        assert _run(["franchise", "79824", "--season", "7"], _components()) == 1

    def test_imdb_season(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--json", "imdb-season", "1376"], _components()) == 0
        assert json.loads(capsys.readouterr().out) == {"imdb_id": "tt0877057", "season_number": 1}

    def test_mapping_stats(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--json", "mapping-stats"], _components()) == 0
        assert json.loads(capsys.readouterr().out)["records"] == 7

    def test_id_cache_commands_skip_start(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()

        assert _run(["id-cache-stats"], components) == 0
        assert "Total mappings:  1" in capsys.readouterr().out
        components.id_store.initialize.assert_awaited_once()
        components.start.assert_not_awaited()

    def test_id_cache_clear_defaults_to_ttl(self, capsys: pytest.CaptureFixture[str]) -> None:
        components = _components()

        _run(["--json", "id-cache-clear"], components)

        components.id_store.clear_older_than.assert_awaited_once_with(90)
        assert json.loads(capsys.readouterr().out) == {"older_than_days": 90, "removed": 3}

    def test_components_closed_on_failure(self) -> None:
        components = _components()
        components.resolver.build_franchise_map.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            _run(["franchise", "79824"], components)
        components.aclose.assert_awaited_once()
