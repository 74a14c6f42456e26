"""CLI for running and inspecting the leaderboard update cycle.

Usage::

    # Run one full cycle (clean -> acquire -> filter -> publish)
    leaderboard-cycle run

    # Show the persisted cycle status and the current lock holder
    leaderboard-cycle status

    # Create the data directory and any missing default documents
    leaderboard-cycle init --data-dir /data

Exit codes for ``run``: 0 success, 1 failure, 2 rejected because another
cycle is already running.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from leaderboard.config.loader import DEFAULT_CONFIG_PATH, load_settings
from leaderboard.config.settings import Settings
from leaderboard.main import build_components, build_http_client, run_cycle
from leaderboard.storage.documents import DataDirectory
from leaderboard.storage.json_store import JsonStore
from leaderboard.utils.errors import ConfigurationError, LeaderboardError
from leaderboard.utils.logging import configure_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REJECTED = 2


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


def _check_data_dir(settings: Settings) -> bool:
    """Print the data directory listing; ``False`` when it is not accessible."""
    print(f"Data directory: {settings.data_dir.resolve()}")
    directory = DataDirectory(JsonStore(settings.data_dir))
    try:
        files = directory.list_files()
    except OSError as exc:
        print(f"  Data directory access ERROR: {exc}", file=sys.stderr)
        return False
    print(f"  Access OK, {len(files)} files:")
    for name in files:
        path = settings.data_dir / name
        kind = "directory" if path.is_dir() else f"{path.stat().st_size} bytes"
        print(f"    - {name} ({kind})")
    return True


async def _handle_run(settings: Settings) -> int:
    """Run one cycle and print its result."""
    if not _check_data_dir(settings):
        print("  Continuing anyway; the cycle will create what it needs.", file=sys.stderr)

    result = await run_cycle(settings)
    print("\nCycle result:")
    print(json.dumps(result.model_dump(mode="json"), indent=2))

    if result.rejected:
        print(f"\nREJECTED: {result.error}", file=sys.stderr)
        return EXIT_REJECTED
    if not result.success:
        stage = result.stage.value if result.stage else "startup"
        print(f"\nFAILED during {stage}: {result.error}", file=sys.stderr)
        return EXIT_FAILED

    print(f"\nSUCCESS: leaderboard updated in {result.duration_seconds:.1f}s")
    return EXIT_OK


async def _handle_status(settings: Settings) -> int:
    """Print the persisted cycle status and the lock holder, if any."""
    async with build_http_client(settings) as client:
        components = build_components(settings, client)
        try:
            status = await components["orchestrator"].get_status()
        except LeaderboardError as exc:
            print(f"Could not read cycle status: {exc}", file=sys.stderr)
            return EXIT_FAILED
        holder = await components["lock"].read()

    print(json.dumps(status.model_dump(mode="json"), indent=2))
    if holder is None:
        print("Lock: free")
    else:
        print(f"Lock: held by cycle {holder.cycle_id} (pid {holder.pid}) since {holder.acquired_at}")
    return EXIT_OK


async def _handle_init(settings: Settings) -> int:
    """Create the data directory and any missing default documents."""
    directory = DataDirectory(JsonStore(settings.data_dir), settings.leaderboard_version)
    try:
        created = await directory.initialize()
    except (OSError, LeaderboardError) as exc:
        print(f"Initialization failed: {exc}", file=sys.stderr)
        return EXIT_FAILED

    print(f"Data directory: {settings.data_dir.resolve()}")
    if created:
        for name in created:
            print(f"  created {name}")
    else:
        print("  all documents already exist")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leaderboard-cycle",
        description="Run and inspect the book leaderboard update cycle.",
    )
    parser.add_argument("--data-dir", default=None, help="Data directory (overrides DATA_DIR)")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")

    subparsers = parser.add_subparsers(dest="command", help="Cycle commands")
    subparsers.add_parser("run", help="Run one full update cycle")
    subparsers.add_parser("status", help="Show the last cycle status")
    subparsers.add_parser("init", help="Bootstrap the data directory")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.log_level:
        overrides["log_level"] = args.log_level
    return load_settings(args.config, **overrides)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the update cycle."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_FAILED)

    try:
        settings = _settings_from_args(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(EXIT_FAILED)

    configure_logging(settings.log_level, json_output=args.json_logs)

    if args.command == "run":
        exit_code = asyncio.run(_handle_run(settings))
    elif args.command == "status":
        exit_code = asyncio.run(_handle_status(settings))
    elif args.command == "init":
        exit_code = asyncio.run(_handle_init(settings))
    else:
        parser.print_help()
        exit_code = EXIT_FAILED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
