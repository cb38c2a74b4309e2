"""
Admin CLI for AutoBackup.

Usage:
    autobackup restore --root ./user/profiles
    autobackup capture --root ./user/profiles --owner-id 6613a1b2c --event Manual
    autobackup prune --dir ./user/profiles/backups/alice-42 --max 5

Invariants:
    - Failures produce a non-zero exit code
    - restore uses the same reconciler as host startup
    - Output is line-oriented for scripting
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from ..codec import RecordCodec
from ..config import AutoBackupConfig, PathsConfig
from ..errors import AutoBackupError
from ..retention import RetentionOrder, enforce_retention
from ..service import AutoBackupService
from ..snapshot import CaptureStatus
from ..store import FileRecordStore

logger = logging.getLogger(__name__)


class AutoBackupCLI:
    """CLI commands for AutoBackup.

    Each command returns a process exit code.

    Example:
        >>> cli = AutoBackupCLI()
        >>> cli.restore(config)
        0
    """

    async def _open(self, config: AutoBackupConfig) -> AutoBackupService:
        codec = RecordCodec(compress=config.compress)
        store = FileRecordStore(config.paths.root_dir, codec=codec, extension=config.paths.extension)
        await store.load_all()
        return AutoBackupService(config, store, codec=codec)

    def restore(self, config: AutoBackupConfig) -> int:
        """Install staged restore files."""

        async def run():
            service = await self._open(config)
            return await service.restore()

        report = asyncio.run(run())
        for installed in report.installed:
            verb = "replaced" if installed.replaced else "installed"
            print(f"{verb}\t{installed.record_id}\t{installed.source.name}")
        for path in report.already_consumed:
            print(f"cleared\t{path.name}")
        for failure in report.skipped_invalid + report.failed:
            print(f"failed\t{failure.code}\t{failure.path.name}\t{failure.message}")
        print(f"deleted_old_restored\t{report.deleted_old_restored}")
        return 0 if report.ok else 1

    def capture(self, config: AutoBackupConfig, owner_id: str, event: str) -> int:
        """Snapshot a single profile."""

        async def run():
            service = await self._open(config)
            return await service.writer.capture(owner_id, event)

        try:
            result = asyncio.run(run())
        except AutoBackupError as e:
            print(f"Capture failed: {e.message}", file=sys.stderr)
            return 1

        if result.status == CaptureStatus.SKIPPED:
            print(f"skipped\t{owner_id}\t{result.owner_name}")
        else:
            print(f"saved\t{result.snapshot.path}")
        return 0

    def prune(self, directory: Path, max_count: int, extension: str, order: str) -> int:
        """Apply retention to a directory."""
        try:
            result = enforce_retention(directory, extension, max_count, RetentionOrder(order))
        except AutoBackupError as e:
            print(f"Prune failed: {e.message}", file=sys.stderr)
            return 1
        for path in result.deleted:
            print(f"deleted\t{path.name}")
        for path, message in result.failed:
            print(f"failed\t{path.name}\t{message}")
        return 0 if not result.failed else 1


def _load_config(args: argparse.Namespace) -> AutoBackupConfig:
    if args.config:
        config = AutoBackupConfig.from_file(args.config, root_dir=args.root)
    else:
        config = AutoBackupConfig.from_env()
        if args.root:
            config = replace(config, paths=replace(config.paths, root_dir=args.root))
    return config


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="AutoBackup profile backup administration")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    restore_parser = subparsers.add_parser("restore", help="Install staged restore files")
    capture_parser = subparsers.add_parser("capture", help="Snapshot one profile")
    for sub in (restore_parser, capture_parser):
        sub.add_argument("--root", help="Profiles directory")
        sub.add_argument("--config", help="YAML/JSON options file")
    capture_parser.add_argument("--owner-id", required=True, help="Profile id")
    capture_parser.add_argument("--event", default="Manual", help="Event tag")

    prune_parser = subparsers.add_parser("prune", help="Apply retention to a directory")
    prune_parser.add_argument("--dir", required=True, help="Directory to prune")
    prune_parser.add_argument("--max", type=int, required=True, help="Files to keep")
    prune_parser.add_argument("--extension", default=PathsConfig.extension, help="File extension")
    prune_parser.add_argument(
        "--order",
        choices=[o.value for o in RetentionOrder],
        default=RetentionOrder.NAME.value,
        help="Oldest-first ordering",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    cli = AutoBackupCLI()
    if args.command == "prune":
        sys.exit(cli.prune(Path(args.dir), args.max, args.extension, args.order))

    try:
        config = _load_config(args)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    if args.command == "restore":
        sys.exit(cli.restore(config))
    sys.exit(cli.capture(config, args.owner_id, args.event))


if __name__ == "__main__":
    main()
