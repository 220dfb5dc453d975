"""CLI tool for identity resolution and cache maintenance.

Usage::

    python -m mediabridge.cli resolve tt0110912 --type movie
    python -m mediabridge.cli resolve mal:1535 --type anime --json
    python -m mediabridge.cli franchise 79824 --season 2
    python -m mediabridge.cli imdb-season 1376
    python -m mediabridge.cli mapping-stats
    python -m mediabridge.cli refresh-mappings
    python -m mediabridge.cli id-cache-stats
    python -m mediabridge.cli id-cache-clear --days 90

Command output goes to stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from mediabridge.config.settings import Settings
from mediabridge.main import Components, build_components
from mediabridge.models.identity import ContentType
from mediabridge.utils.logging import configure_logging


def _emit(payload: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return
    if isinstance(payload, dict):
        width = max((len(str(k)) for k in payload), default=0)
        for key, value in payload.items():
            print(f"  {str(key):<{width}}  {value if value is not None else '-'}")
    else:
        print(payload if payload is not None else "-")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_resolve(args: argparse.Namespace, components: Components) -> int:
    identity = await components.resolver.resolve_all_ids(
        args.id, args.type, config={"persist": not args.no_persist}
    )
    await components.resolver.drain()
    _emit(identity.model_dump(), args.json)
    return 0


async def _handle_franchise(args: argparse.Namespace, components: Components) -> int:
    if args.season is not None:
        kitsu_id = await components.resolver.resolve_kitsu_id_from_tvdb_season(
            args.tvdb_id, args.season
        )
        _emit({"tvdb_id": args.tvdb_id, "season": args.season, "kitsu_id": kitsu_id}, args.json)
        return 0 if kitsu_id else 1

    franchise = await components.resolver.build_franchise_map(args.tvdb_id)
    if not franchise:
        print(f"No franchise seasons found for tvdb:{args.tvdb_id}", file=sys.stderr)
        return 1
    _emit({f"season {season}": kitsu_id for season, kitsu_id in franchise.items()}, args.json)
    return 0


async def _handle_imdb_season(args: argparse.Namespace, components: Components) -> int:
    ref = await components.resolver.resolve_imdb_season_from_kitsu(args.kitsu_id)
    if ref is None:
        print(f"No IMDb season found for kitsu:{args.kitsu_id}", file=sys.stderr)
        return 1
    _emit(ref.model_dump(), args.json)
    return 0


async def _handle_mapping_stats(args: argparse.Namespace, components: Components) -> int:
    _emit(components.mapping_table.get_stats(), args.json)
    return 0


async def _handle_refresh_mappings(args: argparse.Namespace, components: Components) -> int:
    await components.mapping_table.refresh()
    _emit(components.mapping_table.get_stats(), args.json)
    return 0


async def _handle_id_cache_stats(args: argparse.Namespace, components: Components) -> int:
    stats = await components.id_store.get_stats()
    if args.json:
        _emit(stats, True)
        return 0
    print("Id Cache Statistics")
    print("=" * 40)
    print(f"  Total mappings:  {stats['total_mappings']}")
    for content_type, row in stats["by_content_type"].items():
        print(f"\n  {content_type}:")
        for key, value in row.items():
            print(f"    {key:<12} {value}")
    return 0


async def _handle_id_cache_clear(args: argparse.Namespace, components: Components) -> int:
    days = args.days if args.days is not None else components.settings.id_cache_ttl_days
    removed = await components.id_store.clear_older_than(days)
    _emit({"older_than_days": days, "removed": removed}, args.json)
    return 0


_HANDLERS = {
    "resolve": _handle_resolve,
    "franchise": _handle_franchise,
    "imdb-season": _handle_imdb_season,
    "mapping-stats": _handle_mapping_stats,
    "refresh-mappings": _handle_refresh_mappings,
    "id-cache-stats": _handle_id_cache_stats,
    "id-cache-clear": _handle_id_cache_clear,
}

# Commands that only touch the SQLite store.
_ID_CACHE_COMMANDS = frozenset({"id-cache-stats", "id-cache-clear"})


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    components = await build_components(app_settings)
    try:
        if args.command in _ID_CACHE_COMMANDS:
            await components.id_store.initialize()
        else:
            await components.start(auto_update=False)
        return await _HANDLERS[args.command](args, components)
    finally:
        await components.aclose()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the mediabridge CLI."""
    parser = argparse.ArgumentParser(
        prog="mediabridge",
        description="Cross-provider media id resolution and cache maintenance.",
    )
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON.")
    parser.add_argument(
        "--quiet", action="store_true", help="Only log warnings and errors (to stderr)."
    )
    sub = parser.add_subparsers(dest="command")

    resolve = sub.add_parser("resolve", help="Resolve every provider id for a known id.")
    resolve.add_argument("id", help="Known id, e.g. tt0110912, tmdb:603, mal:1535.")
    resolve.add_argument(
        "--type",
        choices=[c.value for c in ContentType],
        default=ContentType.MOVIE.value,
        help="Content type (default: movie).",
    )
    resolve.add_argument(
        "--no-persist", action="store_true", help="Do not store the result in the id cache."
    )

    franchise = sub.add_parser("franchise", help="Show the season -> Kitsu id map of a TVDB show.")
    franchise.add_argument("tvdb_id")
    franchise.add_argument("--season", type=int, help="Print only this season's Kitsu id.")

    imdb_season = sub.add_parser("imdb-season", help="Find the IMDb season of a Kitsu entry.")
    imdb_season.add_argument("kitsu_id")

    sub.add_parser("mapping-stats", help="Show static mapping table statistics.")
    sub.add_parser("refresh-mappings", help="Re-check and reload the static mapping table.")
    sub.add_parser("id-cache-stats", help="Show long-term id cache statistics.")

    clear = sub.add_parser("id-cache-clear", help="Delete stale id cache rows.")
    clear.add_argument("--days", type=int, help="Age threshold in days (default: ID_CACHE_TTL_DAYS).")

    return parser


def run(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = Settings()
    configure_logging(
        log_level="WARNING" if args.quiet else app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
        stream=sys.stderr,
    )
    return asyncio.run(_run(args, app_settings))


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
