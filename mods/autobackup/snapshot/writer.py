"""
Snapshot writer for AutoBackup.

On a lifecycle event for an owner, the writer serializes the owner's live
record into a timestamp-named file under the owner's snapshot directory and
then bounds that directory with the retention enforcer.

Snapshot layout:
    <archive_root>/<owner_name>-<owner_id>/<YYYY-MM-DD_HH-MM-SS-ffffff>_<event>.json

Invariants:
    - No file is written for an owner that is not loaded
    - Excluded (synthetic) owners are skipped, not failed
    - A snapshot never overwrites an existing file; on a timestamp clash the
      timestamp is bumped by one microsecond, so name order equals capture order
    - Snapshot files appear atomically and complete (synced temporary file,
      then hard link); no empty placeholder ever holds a snapshot name
    - Retention runs after the write: max_count N leaves at most N files,
      including the new one

How to change safely:
    - Keep filenames timestamp-prefixed, retention orders by name
    - Test captures within the same clock tick after any naming change
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from .. import fsutil
from ..codec import RecordCodec
from ..errors import UnknownOwnerError
from ..filters import ExclusionFilter
from ..models import (
    TIMESTAMP_FORMAT,
    RetentionResult,
    SnapshotInfo,
    snapshot_dir_name,
    snapshot_file_name,
)
from ..retention import RetentionOrder, enforce_retention
from ..store.base import RecordStore

logger = logging.getLogger(__name__)

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CaptureStatus(Enum):
    """Outcome of a capture request."""

    SAVED = "saved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CaptureResult:
    """Result of a capture request.

    Attributes:
        status: saved, skipped or failed
        owner_id: Owner the capture was requested for
        event_tag: Triggering event
        owner_name: Owner name, when the owner was resolved
        snapshot: Written snapshot, when saved
        retention: Retention sweep run after the write, when saved
        created_dir: Whether the owner's snapshot directory was created
        error: Failure cause, when failed
    """

    status: CaptureStatus
    owner_id: str
    event_tag: str
    owner_name: str | None = None
    snapshot: SnapshotInfo | None = None
    retention: RetentionResult | None = None
    created_dir: bool = False
    error: Exception | None = None

    @property
    def saved(self) -> bool:
        return self.status == CaptureStatus.SAVED


class SnapshotWriter:
    """Writes per-owner snapshots and bounds their count.

    Attributes:
        store: Record store the owner is resolved from
        codec: Record codec
        archive_root: Root of the per-owner snapshot directories
        max_count: Snapshots kept per owner (<0 = unbounded)
        extension: Snapshot file extension
        exclusion_filter: Owners that are never captured

    Example:
        >>> writer = SnapshotWriter(store, RecordCodec(), Path("profiles/backups"), max_count=10)
        >>> result = await writer.capture("42", "RaidEnd")
        >>> result.snapshot.file_name
        '2026-10-19_18-04-11-532011_RaidEnd.json'
    """

    def __init__(
        self,
        store: RecordStore,
        codec: RecordCodec,
        archive_root: Path,
        max_count: int = 10,
        extension: str = "json",
        exclusion_filter: ExclusionFilter | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the writer.

        Args:
            store: RecordStore instance
            codec: RecordCodec used to serialize content
            archive_root: Root directory for per-owner snapshot directories
            max_count: Retention bound per owner directory
            extension: Snapshot file extension (no dot)
            exclusion_filter: Filter for synthetic owners
            clock: Source of capture timestamps
        """
        self.store = store
        self.codec = codec
        self.archive_root = Path(archive_root)
        self.max_count = max_count
        self.extension = extension
        self.exclusion_filter = exclusion_filter or ExclusionFilter()
        self.clock = clock

    def session_path(self, owner_name: str, owner_id: str) -> Path:
        """Snapshot directory for an owner."""
        return self.archive_root / fsutil.safe_component(snapshot_dir_name(owner_name, owner_id))

    async def capture(self, owner_id: str, event_tag: str) -> CaptureResult:
        """Snapshot the owner's current record.

        Args:
            owner_id: Id of a loaded record
            event_tag: Event that triggered the capture

        Returns:
            CaptureResult with status saved or skipped

        Raises:
            UnknownOwnerError: If no record is loaded for owner_id
            BackupIOError: If the directory or file cannot be written
        """
        record = await self.store.get_record(owner_id)
        if record is None:
            raise UnknownOwnerError(owner_id)

        if self.exclusion_filter.is_excluded(record.owner_name):
            logger.debug(f"Skipping capture for excluded owner {record.owner_name}")
            return CaptureResult(
                status=CaptureStatus.SKIPPED,
                owner_id=owner_id,
                event_tag=event_tag,
                owner_name=record.owner_name,
            )

        data = self.codec.encode(record)
        session_path = self.session_path(record.owner_name, owner_id)

        loop = asyncio.get_running_loop()
        created = await loop.run_in_executor(None, fsutil.ensure_dir, session_path)
        if created:
            logger.info(f'"{session_path}" has been created')

        captured_at, path = await loop.run_in_executor(
            None, self._write_snapshot, session_path, fsutil.safe_component(event_tag), data
        )
        retention = await loop.run_in_executor(
            None,
            enforce_retention,
            session_path,
            self.extension,
            self.max_count,
            RetentionOrder.NAME,
        )

        return CaptureResult(
            status=CaptureStatus.SAVED,
            owner_id=owner_id,
            event_tag=event_tag,
            owner_name=record.owner_name,
            snapshot=SnapshotInfo(
                owner_id=owner_id,
                owner_name=record.owner_name,
                event_tag=event_tag,
                captured_at=captured_at,
                path=path,
                size_bytes=len(data),
            ),
            retention=retention,
            created_dir=created,
        )

    def _write_snapshot(
        self,
        session_path: Path,
        event_tag: str,
        data: bytes,
    ) -> tuple[datetime, Path]:
        """Publish data under the first free timestamped name."""
        captured_at = self.clock()
        while True:
            stamp = captured_at.strftime(TIMESTAMP_FORMAT)
            path = session_path / snapshot_file_name(captured_at, event_tag, self.extension)
            if not any(session_path.glob(f"{stamp}_*")) and fsutil.publish_exclusive(path, data):
                return captured_at, path
            captured_at += timedelta(microseconds=1)
