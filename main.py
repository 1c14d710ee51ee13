"""CLI entry point for the job aggregator."""

import argparse
import asyncio
import logging
import signal
import sqlite3
import sys
from pathlib import Path

import yaml

from jobstream.core.config import Settings
from jobstream.core.db import delete_profile, get_profile, init_db, list_profiles, save_profile
from jobstream.core.errors import JobstreamError
from jobstream.core.schemas import ProgressEvent, SourceStatus
from jobstream.pipeline.incremental import IncrementalAggregator
from jobstream.pipeline.orchestrator import (
    RunResult,
    export_results_json,
    run_aggregation,
    stream_aggregation,
)
from jobstream.profile.schema import Profile
from jobstream.sources import build_sources

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/settings.yaml"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job aggregator - fetch postings from many sources and rank them",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- search subcommand (default) ---
    search_parser = subparsers.add_parser("search", help="Run every source once (bulk)")
    _add_run_args(search_parser)
    search_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and rank, but write nothing to the database",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export kept records to format (json)",
    )

    # --- stream subcommand ---
    stream_parser = subparsers.add_parser(
        "stream",
        help="Run sources incrementally, printing progress (Ctrl-C stops cleanly)",
    )
    _add_run_args(stream_parser)
    stream_parser.add_argument(
        "--parallel",
        action="store_true",
        help="Run sources concurrently (bounded by aggregator.max_concurrency)",
    )

    # --- profile subcommand ---
    profile_parser = subparsers.add_parser("profile", help="Manage stored profiles")
    profile_parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    profile_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    profile_sub = profile_parser.add_subparsers(dest="profile_command", required=True)
    import_parser = profile_sub.add_parser("import", help="Store a profile from YAML")
    import_parser.add_argument("path", help="Path to profile YAML")
    profile_sub.add_parser("list", help="List stored profiles")
    show_parser = profile_sub.add_parser("show", help="Print a stored profile as YAML")
    show_parser.add_argument("profile_id")
    delete_parser = profile_sub.add_parser("delete", help="Delete a stored profile")
    delete_parser.add_argument("profile_id")

    # Default to search when no subcommand given
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or (argv[0].startswith("-") and argv[0] not in ("-h", "--help")):
        argv.insert(0, "search")

    return parser.parse_args(argv)


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--profile",
        help="Profile YAML path or stored profile id (default: settings.profile_path)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def resolve_profile(
    conn: sqlite3.Connection,
    settings: Settings,
    ref: str | None,
) -> Profile:
    """Pick the run's profile: a YAML path, a stored id, settings, or a match-all default."""
    ref = ref or settings.profile_path
    if not ref:
        return Profile(id="default", name="Match everything")
    if Path(ref).suffix in (".yaml", ".yml") or Path(ref).exists():
        return Profile.from_yaml(ref)
    return get_profile(conn, ref)


def print_summary(result: RunResult) -> None:
    status = "cancelled" if result.cancelled else "complete"
    print(f"\nRun {status}: {result.raw_count} raw, {result.kept_count} kept, "
          f"{result.new_count} new records written to DB.")
    ok = len(result.succeeded)
    print(f"  Sources: {ok}/{result.sources} succeeded")
    for failure in result.failures:
        reason = "timed out" if failure.timed_out else failure.error
        print(f"  FAILED {failure.source}: {reason}")
    for record in result.records[:10]:
        print(f"  [{record.score:3d}] {record.title} @ {record.company or '?'} ({record.source})")


def print_progress(event: ProgressEvent) -> None:
    if event.is_run_summary:
        print(f"== {event.status}: {event.items_found} records in {event.elapsed:.1f}s")
        return
    line = f"[{event.current}/{event.total}] {event.source}: {event.status}"
    if event.status == SourceStatus.COMPLETED:
        line += f" ({event.items_found} records)"
    elif event.status == SourceStatus.FAILED:
        line += f" ({event.error})"
    print(line)


async def run_search(args: argparse.Namespace, settings: Settings) -> int:
    conn = init_db(settings.database.path)
    try:
        profile = resolve_profile(conn, settings, args.profile)
        sources = build_sources(settings)
        result = await run_aggregation(
            settings, profile, sources, conn=None if args.dry_run else conn,
        )
    finally:
        conn.close()

    if args.dry_run:
        print("[DRY RUN] nothing written to the database")
    print_summary(result)
    if args.export == "json":
        print(f"\n{export_results_json(result)}")
    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    return 0


async def run_stream(args: argparse.Namespace, settings: Settings) -> int:
    conn = init_db(settings.database.path)
    try:
        profile = resolve_profile(conn, settings, args.profile)
        sources = build_sources(settings)
        config = settings.aggregator
        if args.parallel:
            config = config.model_copy(update={"parallel": True})
        aggregator = IncrementalAggregator.from_config(sources, profile, config)

        loop = asyncio.get_running_loop()
        handled = True
        try:
            loop.add_signal_handler(signal.SIGINT, aggregator.stop)
        except NotImplementedError:
            handled = False
            logger.debug("Signal handlers unsupported here; Ctrl-C aborts the run")

        try:
            result = await stream_aggregation(
                aggregator, profile.id, conn, on_progress=print_progress,
            )
        finally:
            if handled:
                loop.remove_signal_handler(signal.SIGINT)
    finally:
        conn.close()

    print_summary(result)
    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    return 0


def cmd_profile(args: argparse.Namespace, settings: Settings) -> int:
    """Handle profile import/list/show/delete."""
    conn = init_db(settings.database.path)
    try:
        if args.profile_command == "import":
            profile = Profile.from_yaml(args.path)
            save_profile(conn, profile)
            print(f"Profile '{profile.id}' stored")
        elif args.profile_command == "list":
            profiles = list_profiles(conn)
            if not profiles:
                print("No stored profiles")
            for p in profiles:
                print(f"  {p.id}: {p.name}")
        elif args.profile_command == "show":
            profile = get_profile(conn, args.profile_id)
            print(yaml.dump(profile.model_dump(mode="json"), default_flow_style=False, sort_keys=False))
        elif args.profile_command == "delete":
            if not delete_profile(conn, args.profile_id):
                print(f"Error: no profile '{args.profile_id}'", file=sys.stderr)
                return 1
            print(f"Profile '{args.profile_id}' deleted")
    finally:
        conn.close()
    return 0


def load_settings(path: str, *, require_sources: bool = True) -> Settings:
    if not require_sources and not Path(path).exists():
        # profile management only needs the database path
        return Settings.model_construct()
    return Settings.from_yaml(path)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config, require_sources=args.command != "profile")
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "profile":
            code = cmd_profile(args, settings)
        elif args.command == "stream":
            code = asyncio.run(run_stream(args, settings))
        else:
            code = asyncio.run(run_search(args, settings))
    except (FileNotFoundError, ValueError, JobstreamError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
