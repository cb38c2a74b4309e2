"""
AutoBackup - process entry point.

This module bootstraps AutoBackup against a profiles directory:
- Configure logging
- Load the file-backed record store
- Run the startup sequence (key repair, restore, event registration)

Usage:
    python -m mods.autobackup.main

Configuration is via environment variables (see config.py), or an options
file named by AUTOBACKUP_CONFIG_FILE.

Invariants:
    - Records are loaded before reconciliation runs
    - Reconciliation finishes before the service accepts events
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import json_log_formatter

from .codec import RecordCodec
from .config import AutoBackupConfig, ObservabilityConfig
from .service import AutoBackupService
from .store import FileRecordStore

logger = logging.getLogger(__name__)


def setup_logging(observability: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        observability: Logging configuration
    """
    level = getattr(logging, observability.log_level.upper(), logging.INFO)

    if observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def load_config() -> AutoBackupConfig:
    """Load configuration from AUTOBACKUP_CONFIG_FILE, or the environment."""
    config_file = os.getenv("AUTOBACKUP_CONFIG_FILE")
    if config_file:
        return AutoBackupConfig.from_file(config_file, root_dir=os.getenv("AUTOBACKUP_ROOT_DIR"))
    return AutoBackupConfig.from_env()


async def bootstrap(config: AutoBackupConfig) -> AutoBackupService:
    """Load records and start the service.

    Args:
        config: AutoBackup configuration

    Returns:
        Started (or disabled) AutoBackupService
    """
    codec = RecordCodec(compress=config.compress)
    store = FileRecordStore(config.paths.root_dir, codec=codec, extension=config.paths.extension)
    await store.load_all()

    service = AutoBackupService(config, store, codec=codec)
    await service.start()
    return service


def main() -> None:
    """Run the startup sequence once and exit."""
    try:
        config = load_config()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config.observability)
    config.log_config()
    service = asyncio.run(bootstrap(config))
    sys.exit(0 if service.is_ready or not config.enabled else 1)


if __name__ == "__main__":
    main()
