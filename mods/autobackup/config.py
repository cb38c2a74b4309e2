"""
Configuration management for AutoBackup.

Configuration comes from environment variables (`from_env`) or from a
YAML/JSON options file using the host's option names (`from_file`).
This module provides typed configuration classes with validation; every
optional setting is resolved to its default once, at load time.

Invariants:
    - All settings have sensible defaults for local development
    - A negative retention bound disables retention (logged as a warning)
    - Event routes are unique across AutoBackupEvents

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep the option-file key names stable, hosts ship them in their configs
    - Document every new setting in its dataclass Attributes section
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


@dataclass(frozen=True)
class AutoBackupEvent:
    """A lifecycle event that triggers a snapshot.

    Attributes:
        enabled: Whether the event triggers captures
        name: Event tag written into snapshot filenames
        route: Host route that signals the event
    """

    enabled: bool
    name: str
    route: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutoBackupEvent:
        """Create from an options-file entry ({Enabled, Name, Route})."""
        return cls(
            enabled=bool(data.get("Enabled", True)),
            name=str(data["Name"]),
            route=str(data["Route"]),
        )


DEFAULT_EVENTS: tuple[AutoBackupEvent, ...] = (
    AutoBackupEvent(enabled=True, name="GameStart", route="/client/game/start"),
    AutoBackupEvent(enabled=True, name="RaidStart", route="/client/match/local/start"),
    AutoBackupEvent(enabled=True, name="RaidEnd", route="/client/match/local/end"),
    AutoBackupEvent(enabled=True, name="Logout", route="/client/game/logout"),
)


@dataclass(frozen=True)
class PathsConfig:
    """Filesystem layout.

    Attributes:
        root_dir: Base directory (the host's profiles directory)
        backups_dir: Per-owner snapshot root, relative to root_dir
        staging_dir: Operator restore staging directory, relative to root_dir
        processed_dir: Consumed restore files directory, relative to root_dir
        extension: File extension of snapshot and restore files (no dot)
    """

    root_dir: str = "./user/profiles"
    backups_dir: str = "backups"
    staging_dir: str = "ProfilesToRestore"
    processed_dir: str = "RestoredProfiles"
    extension: str = "json"

    @classmethod
    def from_env(cls) -> PathsConfig:
        """Load configuration from environment variables."""
        return cls(
            root_dir=os.getenv("AUTOBACKUP_ROOT_DIR", "./user/profiles"),
            backups_dir=os.getenv("AUTOBACKUP_BACKUPS_DIR", "backups"),
            staging_dir=os.getenv("AUTOBACKUP_STAGING_DIR", "ProfilesToRestore"),
            processed_dir=os.getenv("AUTOBACKUP_PROCESSED_DIR", "RestoredProfiles"),
            extension=os.getenv("AUTOBACKUP_EXTENSION", "json"),
        )

    @property
    def archive_root(self) -> Path:
        return Path(self.root_dir) / self.backups_dir

    @property
    def staging_path(self) -> Path:
        return Path(self.root_dir) / self.staging_dir

    @property
    def processed_path(self) -> Path:
        return Path(self.root_dir) / self.processed_dir


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass(frozen=True)
class AutoBackupConfig:
    """Complete AutoBackup configuration.

    Attributes:
        enabled: Master switch; when false nothing is registered or restored
        maximum_backup_per_profile: Snapshots kept per owner (<0 = unbounded)
        maximum_restored_files: Processed restore files kept (<0 = unbounded)
        backup_saved_log: Announce each saved snapshot
        maximum_backup_delete_log: Announce snapshot retention deletions
        maximum_restored_delete_log: Announce processed-file retention deletions
        auto_backup_events: Events that trigger captures
        excluded_prefixes: Owner name prefixes that are never captured
        compress: Write compact JSON instead of indented JSON
        restore_timeout_seconds: Seconds after which the startup restore pass
            starts no further restore file (<=0 = none)
        paths: Filesystem layout
        observability: Logging configuration
    """

    enabled: bool = True
    maximum_backup_per_profile: int = 10
    maximum_restored_files: int = 10
    backup_saved_log: bool = True
    maximum_backup_delete_log: bool = True
    maximum_restored_delete_log: bool = True
    auto_backup_events: tuple[AutoBackupEvent, ...] = DEFAULT_EVENTS
    excluded_prefixes: tuple[str, ...] = ("headless_",)
    compress: bool = False
    restore_timeout_seconds: float = 60.0
    paths: PathsConfig = field(default_factory=PathsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> AutoBackupConfig:
        """Load complete configuration from environment variables.

        Returns:
            AutoBackupConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is invalid.
        """
        prefixes = os.getenv("AUTOBACKUP_EXCLUDED_PREFIXES", "headless_")
        config = cls(
            enabled=_env_bool("AUTOBACKUP_ENABLED", True),
            maximum_backup_per_profile=int(os.getenv("AUTOBACKUP_MAX_PER_PROFILE", "10")),
            maximum_restored_files=int(os.getenv("AUTOBACKUP_MAX_RESTORED", "10")),
            backup_saved_log=_env_bool("AUTOBACKUP_SAVED_LOG", True),
            maximum_backup_delete_log=_env_bool("AUTOBACKUP_DELETE_LOG", True),
            maximum_restored_delete_log=_env_bool("AUTOBACKUP_RESTORED_DELETE_LOG", True),
            excluded_prefixes=tuple(p for p in prefixes.split(",") if p),
            compress=_env_bool("AUTOBACKUP_COMPRESS", False),
            restore_timeout_seconds=float(os.getenv("AUTOBACKUP_RESTORE_TIMEOUT", "60")),
            paths=PathsConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any], root_dir: str | None = None) -> AutoBackupConfig:
        """Build configuration from an options mapping using the host's key names.

        Absent keys take their defaults. Unknown keys are ignored.

        Args:
            data: Options mapping (Enabled, MaximumBackupPerProfile, ...)
            root_dir: Overrides the profiles directory

        Raises:
            ValueError: If configuration is invalid.
        """
        defaults = cls()
        events = defaults.auto_backup_events
        if "AutoBackupEvents" in data:
            events = tuple(AutoBackupEvent.from_dict(e) for e in data["AutoBackupEvents"] or [])

        paths = PathsConfig(root_dir=root_dir) if root_dir else PathsConfig()
        config = cls(
            enabled=bool(data.get("Enabled", defaults.enabled)),
            maximum_backup_per_profile=int(
                data.get("MaximumBackupPerProfile", defaults.maximum_backup_per_profile)
            ),
            maximum_restored_files=int(
                data.get("MaximumRestoredFiles", defaults.maximum_restored_files)
            ),
            backup_saved_log=bool(data.get("BackupSavedLog", defaults.backup_saved_log)),
            maximum_backup_delete_log=bool(
                data.get("MaximumBackupDeleteLog", defaults.maximum_backup_delete_log)
            ),
            maximum_restored_delete_log=bool(
                data.get("MaximumRestoredDeleteLog", defaults.maximum_restored_delete_log)
            ),
            auto_backup_events=events,
            excluded_prefixes=tuple(data.get("ExcludedProfilePrefixes", defaults.excluded_prefixes)),
            compress=bool(data.get("Compress", defaults.compress)),
            restore_timeout_seconds=float(
                data.get("RestoreTimeoutSeconds", defaults.restore_timeout_seconds)
            ),
            paths=paths,
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str | Path, root_dir: str | None = None) -> AutoBackupConfig:
        """Load configuration from a YAML or JSON options file.

        Raises:
            ValueError: If the file does not contain a mapping or is invalid.
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data, root_dir=root_dir)

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.paths.extension:
            raise ValueError("File extension must not be empty")

        routes: set[str] = set()
        for event in self.auto_backup_events:
            if not event.name:
                raise ValueError(f"AutoBackupEvent for route '{event.route}' has no name")
            if event.route in routes:
                raise ValueError(f"Duplicate AutoBackupEvent route '{event.route}'")
            routes.add(event.route)

        if self.maximum_backup_per_profile < 0:
            logger.warning(
                "MaximumBackupPerProfile is negative; snapshot directories will grow without bound"
            )
        if self.maximum_restored_files < 0:
            logger.warning(
                "MaximumRestoredFiles is negative; the processed restore directory will grow without bound"
            )

    def log_config(self) -> None:
        """Log effective configuration."""
        logger.info(
            "AutoBackup configuration loaded",
            extra={
                "enabled": self.enabled,
                "root_dir": self.paths.root_dir,
                "max_per_profile": self.maximum_backup_per_profile,
                "max_restored": self.maximum_restored_files,
                "events": [e.name for e in self.auto_backup_events if e.enabled],
                "excluded_prefixes": list(self.excluded_prefixes),
                "compress": self.compress,
            },
        )
