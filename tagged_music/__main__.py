"""
Tagged Music - Entry Point

Small administration CLI around the configured library source.

Run with: python -m tagged_music [options] <command>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from tagged_music import __version__
from tagged_music.config import (
    StoreConfig,
    get_store_config,
    parse_backend,
    reload_store_config,
)
from tagged_music.core import CoreError
from tagged_music.core.factory import open_library_source
from tagged_music.core.models import TagType, User
from tagged_music.core.response import Response
from tagged_music.core.source import LibrarySource

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="tagged_music",
        description="Tagged Music - multi-user music library metadata store",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to a store TOML config (default: bundled store.toml)",
    )

    parser.add_argument(
        "--backend",
        type=str,
        choices=["memory", "sqlite"],
        default=None,
        help="Override the configured backend",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Override the SQLite database path",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Show backend, library version and user count")
    sub.add_parser("users", help="List users")

    add_user = sub.add_parser("add-user", help="Add a user")
    add_user.add_argument("username")
    add_user.add_argument("pass_hash", help="Password hash, stored as given")
    add_user.add_argument("--id", dest="user_id", type=int, default=None)
    add_user.add_argument("--admin", action="store_true")
    add_user.add_argument("--color", type=int, default=0, help="Default tag type color")

    remove_user = sub.add_parser("remove-user", help="Remove a user and all of their data")
    remove_user.add_argument("user_id", type=int)

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> StoreConfig:
    """Load the store config and apply command line overrides to a copy of it."""
    if args.config is not None:
        config = reload_store_config(args.config)
    else:
        config = get_store_config()

    overrides: dict[str, object] = {}
    if args.backend is not None:
        overrides["backend"] = parse_backend(args.backend)
    if args.db is not None:
        overrides["db_path"] = args.db
    return replace(config, **overrides)


def _report(response: Response[object], action: str) -> int:
    if response.ok:
        return 0
    print(f"{action} failed: {response.status.name}", file=sys.stderr)
    return 1


async def run_command(source: LibrarySource, config: StoreConfig, args: argparse.Namespace) -> int:
    """Run one CLI command against an open library source."""
    if args.command == "info":
        version = await source.get_version()
        users = await source.get_all_users()
        print(f"backend: {config.backend.value}")
        print(f"library version: {version.result}")
        print(f"users: {len(users.result)}")
        return _report(version, "info") or _report(users, "info")

    if args.command == "users":
        users = await source.get_all_users()
        for user in sorted(users.result.values(), key=lambda u: u.id):
            flag = " (admin)" if user.admin else ""
            print(f"{user.id}\t{user.username}{flag}")
        return _report(users, "users")

    if args.command == "add-user":
        user_id = args.user_id
        if user_id is None:
            users = await source.get_all_users()
            if not users.ok:
                return _report(users, "add-user")
            user_id = max(users.result, default=0) + 1
        response = await source.add_user(
            User(user_id, args.username, args.pass_hash, args.admin), TagType(args.color)
        )
        if response.ok:
            print(f"added user {response.result}")
        return _report(response, "add-user")

    if args.command == "remove-user":
        response = await source.remove_user(args.user_id)
        if response.ok:
            print(f"removed user {args.user_id}")
        return _report(response, "remove-user")

    raise ValueError(f"Unknown command: {args.command}")


async def run(args: argparse.Namespace) -> int:
    config = build_config(args)
    source = await open_library_source(config)
    try:
        return await run_command(source, config, args)
    finally:
        await source.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        return asyncio.run(run(args))
    except CoreError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
