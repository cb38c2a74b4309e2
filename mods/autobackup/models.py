"""
Data model shared by the backup core.

Invariants:
    - Record.id is stable and unique within a store
    - The core reads Record.content for capture and replaces it wholesale on
      restore; it never patches it
    - Snapshot filenames start with a sortable capture timestamp
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

# UTC, microsecond resolution; lexical order equals chronological order.
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S-%f"


@dataclass
class Record:
    """A live per-owner record.

    Attributes:
        id: Stable unique identifier (the session/profile id)
        owner_name: Human-readable owner name
        content: Opaque serializable content
    """

    id: str
    owner_name: str
    content: dict[str, Any]


@dataclass(frozen=True)
class SnapshotInfo:
    """A written snapshot file.

    Attributes:
        owner_id: Record id the snapshot was taken from
        owner_name: Owner name at capture time
        event_tag: Lifecycle event that triggered the capture
        captured_at: Capture timestamp (embedded in the filename)
        path: Snapshot file path
        size_bytes: Payload size
    """

    owner_id: str
    owner_name: str
    event_tag: str
    captured_at: datetime
    path: Path
    size_bytes: int

    @property
    def file_name(self) -> str:
        return self.path.name


def snapshot_dir_name(owner_name: str, owner_id: str) -> str:
    """Directory name holding an owner's snapshots."""
    return f"{owner_name}-{owner_id}"


def snapshot_file_name(captured_at: datetime, event_tag: str, extension: str) -> str:
    """Timestamp-prefixed snapshot filename."""
    return f"{captured_at.strftime(TIMESTAMP_FORMAT)}_{event_tag}.{extension}"


@dataclass
class RetentionResult:
    """Outcome of a retention sweep.

    Attributes:
        directory: Directory that was swept
        max_count: Bound that was enforced
        deleted: Files removed, oldest first
        failed: Files that could not be removed, with the error message
    """

    directory: Path
    max_count: int
    deleted: list[Path] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted)
