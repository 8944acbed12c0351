"""Command line front end."""

import argparse
import asyncio
import logging
import sys
from enum import Enum
from typing import List, Optional

from . import __version__
from .config import Settings
from .core import VersionManager
from .errors import (
    ActivationFailed,
    AmbiguousSpecifier,
    CatalogUnavailable,
    DownloadFailed,
    IntegrityMismatch,
    NotFound,
    NotInstalled,
    StoreError,
    StoreLocked,
    SuivmError,
    VersionInUse,
)
from .utils import setup_logging

logger = logging.getLogger(__name__)


class ExitCodes(Enum):
    SUCCESS = 0
    USER_ERROR = 1
    NETWORK_ERROR = 2
    STORE_ERROR = 3


ERROR_EXIT_CODES = (
    ((NotFound, AmbiguousSpecifier, NotInstalled, VersionInUse), ExitCodes.USER_ERROR),
    ((CatalogUnavailable, DownloadFailed), ExitCodes.NETWORK_ERROR),
    ((IntegrityMismatch, ActivationFailed, StoreLocked, StoreError), ExitCodes.STORE_ERROR),
)


def exit_code_for(error: SuivmError) -> ExitCodes:
    for kinds, code in ERROR_EXIT_CODES:
        if isinstance(error, kinds):
            return code
    return ExitCodes.USER_ERROR


def parse_args(argv: Optional[List[str]] = None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="suivm",
        description="Install and switch between sui CLI versions",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Print debug output")
    parser.add_argument("--version", action="version", version=f"suivm {__version__}")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("latest", help="Install and use the latest stable release")
    commands.add_parser("list", help="List releases available upstream")
    commands.add_parser("list-local", help="List locally installed versions")
    commands.add_parser("current", help="Show the active version")
    switch = commands.add_parser("switch", help="Use given version, install if not yet")
    switch.add_argument("version", help="Release tag, branch name, commit hash or 'latest'")
    remove = commands.add_parser("remove", help="Remove from locally installed versions")
    remove.add_argument("version", help="Release tag, branch name or commit hash")
    clean = commands.add_parser("clean", help="Delete leftovers of interrupted downloads")
    clean.add_argument("--max-age", type=float, default=24.0, help="Age in hours (default: 24)")

    return parser.parse_args(argv)


async def _progress(name: str, downloaded: int, total: int):
    if total:
        percent = downloaded * 100 // total
        print(f"\rDownloading {name}: {percent:3d}%", end="", file=sys.stderr, flush=True)
        if downloaded >= total:
            print(file=sys.stderr)


async def run_command(args, manager: VersionManager) -> int:
    async with manager:
        if args.command in ("latest", "switch"):
            specifier = "latest" if args.command == "latest" else args.version
            version = await manager.resolve_and_activate(specifier)
            print(f"Now using sui {version}")
        elif args.command == "list":
            for available in await manager.list_available():
                flags = available.flags
                print(f"{available.tag}\t({', '.join(flags)})" if flags else available.tag)
        elif args.command == "list-local":
            active = manager.current()
            for installed in manager.list_installed():
                marker = "*" if active and active.key == installed.key else " "
                print(f"{marker} {installed.version}\t{installed.installed_at:%Y-%m-%d %H:%M}")
        elif args.command == "current":
            active = manager.current()
            if active is None:
                print("No sui version is active. Run `suivm latest`")
                return ExitCodes.USER_ERROR.value
            print(active.version)
        elif args.command == "remove":
            await manager.remove(args.version)
            print(f"Removed {args.version}")
        elif args.command == "clean":
            removed = manager.clean(args.max_age * 3600)
            print(f"Removed {removed} stale entries")
    return ExitCodes.SUCCESS.value


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    setup_logging(settings.home, verbose=args.verbose)
    manager = VersionManager(settings, progress_callback=_progress)

    try:
        return asyncio.run(run_command(args, manager))
    except SuivmError as e:
        where = f" while {e.stage}" if e.stage else ""
        logger.error("Failed%s: %s", where, e)
        return exit_code_for(e).value
    except KeyboardInterrupt:
        return 130
