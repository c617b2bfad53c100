"""Command-line entry point for inspecting profiles and probing servers."""

from __future__ import annotations

import argparse
import asyncio
from typing import Sequence

from .config import AppConfig, load_config
from .logs import configure_logging
from .results import FanOutResult, ReadResult
from .router import DatabaseRouter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="replicarouter",
        description="Inspect database profiles and check every configured MySQL server.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("profiles", help="List configured profiles in priority order.")

    check = subcommands.add_parser("check", help="Open a connection to every profile.")
    check.add_argument("--database", default=None, help="Database to select while connecting.")

    query = subcommands.add_parser("query", help="Run a read on the first server to answer.")
    query.add_argument("database", help="Target database, e.g. air_<channel>.")
    query.add_argument("sql", help="SELECT statement to execute.")
    return parser


def main(
    argv: Sequence[str] | None = None,
    *,
    config: AppConfig | None = None,
    router: DatabaseRouter | None = None,
) -> int:
    """Run the CLI; returns the process exit code."""

    args = build_parser().parse_args(argv)
    config = config or load_config()
    configure_logging(config.logging)
    if args.command == "profiles":
        return _list_profiles(config)
    # Route against the same profiles the config reports.
    router = router or DatabaseRouter(config.ordered_profiles())
    if args.command == "check":
        return _print_check(asyncio.run(router.test_all_connections(args.database)))
    return _print_rows(asyncio.run(router.read_many(args.database, args.sql)))


def _list_profiles(config: AppConfig) -> int:
    profiles = config.ordered_profiles()
    if not profiles:
        print("No database profiles configured.")
        return 1
    for index, profile in enumerate(profiles, start=1):
        marker = "*" if profile.is_default else " "
        print(f"{marker} {index}. {profile} ssl={profile.ssl_mode.value} timeout={profile.timeout_seconds}s")
    if not config.is_valid():
        print("Warning: no profile is marked as default.")
    return 0


def _print_check(result: FanOutResult) -> int:
    for entry in result.results:
        if entry.success:
            print(f"OK    {entry.profile_name} ({entry.elapsed_ms} ms)")
        else:
            print(f"FAIL  {entry.profile_name}: {entry.error_message}")
    print(result.summary())
    return 1 if result.all_failed else 0


def _print_rows(result: ReadResult[list[object]]) -> int:
    if not result.success:
        print(f"Disconnected: {result.error_message}")
        return 1
    rows = result.data or []
    print(f"-- {len(rows)} row(s) from {result.profile_name} in {result.elapsed_ms} ms")
    if rows and isinstance(rows[0], dict):
        columns = list(rows[0].keys())
        print("\t".join(columns))
        for row in rows:
            print("\t".join("NULL" if row.get(column) is None else str(row.get(column)) for column in columns))
    else:
        for row in rows:
            print(row)
    return 0


__all__ = ["build_parser", "main"]
