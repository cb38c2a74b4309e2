"""
Restore reconciler for AutoBackup.

At startup the reconciler installs operator-supplied snapshot files from the
staging directory into the live record store, then moves each consumed file
to the processed directory and bounds that directory's size.

Candidate lifecycle:
    Staged ──parse error──▶ Invalid (file stays in staging)
    Staged ──install──▶ Installed ──move──▶ Processed ──retention──▶ Evicted

When an installed candidate cannot be taken out of staging (the move failed,
or a verified copy was made but the staged file could not be removed), a
hidden marker `.<name>.consumed` holding the staged file's SHA-256 and the
processed copy's name is written to the processed directory. On the next
pass a staged file whose bytes match its marker is relocated or removed,
never installed again.

Invariants:
    - A candidate fully replaces any live record with the same id
    - The store is re-checked for each candidate, never cached for the batch
    - A corrupt or failing candidate never blocks the others
    - A candidate whose colliding record cannot be removed is not installed
      and stays in staging for the next startup
    - A staged file is only removed once its processed copy is verified
    - A consumed file left behind in staging is never installed twice
    - The time limit is checked between candidates only; a candidate that has
      started always runs to completion

How to change safely:
    - Run reconcile() before any capture events are accepted
    - Test failure injection at every step (parse, delete, save, move)
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from .. import fsutil
from ..codec import RecordCodec
from ..errors import AutoBackupError, BackupIOError, CollisionReplaceError, RecordParseError
from ..models import Record, RetentionResult
from ..retention import RetentionOrder, enforce_retention
from ..store.base import RecordStore

logger = logging.getLogger(__name__)

TIMEOUT = "TIMEOUT"
_MARKER_SUFFIX = ".consumed"


@dataclass
class InstalledRecord:
    """A candidate that was installed into the store.

    Attributes:
        record_id: Installed record id
        owner_name: Owner name from the candidate
        source: Staged file the record came from
        destination: Processed file path, None if the move failed
        replaced: Whether a live record with the same id was replaced
    """

    record_id: str
    owner_name: str
    source: Path
    destination: Path | None
    replaced: bool


@dataclass
class RestoreFailure:
    """A candidate that could not be fully processed.

    Attributes:
        path: Staged file
        code: Error code (see errors.py)
        message: Error message
    """

    path: Path
    code: str
    message: str


@dataclass
class RestoreReport:
    """Result of a reconciliation pass.

    Attributes:
        installed: Candidates installed into the store
        skipped_invalid: Candidates that failed to parse, left in staging
        failed: Candidates that parsed but failed a later step
        source_retained: Processed candidates whose staged file could not be
            removed after a verified copy
        already_consumed: Staged files from an earlier pass that were removed
            without being installed again
        retention: Retention sweep of the processed directory
        duration_ms: Total pass duration
    """

    installed: list[InstalledRecord] = field(default_factory=list)
    skipped_invalid: list[RestoreFailure] = field(default_factory=list)
    failed: list[RestoreFailure] = field(default_factory=list)
    source_retained: list[Path] = field(default_factory=list)
    already_consumed: list[Path] = field(default_factory=list)
    retention: RetentionResult | None = None
    duration_ms: int = 0

    @property
    def deleted_old_restored(self) -> int:
        return self.retention.deleted_count if self.retention else 0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped_invalid

    @property
    def timed_out(self) -> bool:
        return any(f.code == TIMEOUT for f in self.failed)


class RestoreReconciler:
    """Installs staged restore candidates into the record store.

    Attributes:
        store: Live record store
        codec: Record codec used to parse candidates
        staging_dir: Directory operators drop restore files into
        processed_dir: Directory consumed files are moved to
        max_processed: Processed files kept (<0 = unbounded)
        extension: Candidate file extension

    Example:
        >>> reconciler = RestoreReconciler(store, codec, staging, processed)
        >>> report = await reconciler.reconcile()
        >>> [r.record_id for r in report.installed]
        ['7']
    """

    def __init__(
        self,
        store: RecordStore,
        codec: RecordCodec,
        staging_dir: Path,
        processed_dir: Path,
        max_processed: int = 10,
        extension: str = "json",
    ) -> None:
        self.store = store
        self.codec = codec
        self.staging_dir = Path(staging_dir)
        self.processed_dir = Path(processed_dir)
        self.max_processed = max_processed
        self.extension = extension

    async def reconcile(self, timeout: float | None = None) -> RestoreReport:
        """Process every staged candidate once.

        Zero candidates is a normal outcome. Per-candidate failures are
        recorded in the report and never raised.

        Args:
            timeout: Seconds after which no further candidate is started
                (None or <=0 = no limit). Candidates not started are left in
                staging and reported with code TIMEOUT.

        Returns:
            RestoreReport for the pass
        """
        start_time = time.time()
        report = RestoreReport()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout and timeout > 0 else None

        try:
            await loop.run_in_executor(None, fsutil.ensure_dir, self.staging_dir)
            await loop.run_in_executor(None, fsutil.ensure_dir, self.processed_dir)
            candidates = await loop.run_in_executor(
                None, fsutil.list_files, self.staging_dir, self.extension
            )
            await loop.run_in_executor(None, self._clear_stale_markers)
        except BackupIOError as e:
            logger.error(f"Restore pass aborted: {e.message}")
            report.failed.append(RestoreFailure(self.staging_dir, e.code, e.message))
            report.duration_ms = int((time.time() - start_time) * 1000)
            return report

        if candidates:
            logger.info(f"Found {len(candidates)} restore candidates in {self.staging_dir}")

        ordered = sorted(candidates, key=lambda p: p.name)
        for index, path in enumerate(ordered):
            if deadline is not None and loop.time() >= deadline:
                deferred = ordered[index:]
                logger.error(
                    f"Restore time limit of {timeout}s reached, "
                    f"{len(deferred)} restore files left for the next startup"
                )
                for pending in deferred:
                    report.failed.append(
                        RestoreFailure(pending, TIMEOUT, f"Not started within {timeout}s")
                    )
                break
            await self._process_candidate(path, report)

        try:
            report.retention = await loop.run_in_executor(
                None,
                enforce_retention,
                self.processed_dir,
                self.extension,
                self.max_processed,
                RetentionOrder.MTIME,
            )
        except BackupIOError as e:
            logger.error(f"Retention of {self.processed_dir} failed: {e.message}")

        report.duration_ms = int((time.time() - start_time) * 1000)
        return report

    async def _process_candidate(self, path: Path, report: RestoreReport) -> None:
        loop = asyncio.get_running_loop()

        try:
            consumed = await loop.run_in_executor(None, self._is_consumed, path)
        except BackupIOError as e:
            logger.error(f'Restore of "{path.name}" failed: {e.message}')
            report.failed.append(RestoreFailure(path, e.code, e.message))
            return
        if consumed:
            if await loop.run_in_executor(None, self._finish_consumed, path):
                logger.info(f'Removed already restored file "{path.name}" from staging')
                report.already_consumed.append(path)
            else:
                report.source_retained.append(path)
            return

        try:
            record = await loop.run_in_executor(None, self.codec.read_file, path)
        except RecordParseError as e:
            logger.warning(
                f'Restore file "{path.name}" is not a valid profile, left in place: {e.message}'
            )
            report.skipped_invalid.append(RestoreFailure(path, e.code, e.message))
            return

        try:
            replaced = await self._install(record)
        except AutoBackupError as e:
            logger.error(f'Restore of "{path.name}" failed: {e.message}')
            report.failed.append(RestoreFailure(path, e.code, e.message))
            return

        try:
            moved = await loop.run_in_executor(
                None, fsutil.relocate_file, path, self.processed_dir
            )
        except BackupIOError as e:
            logger.error(
                f'Profile {record.id} restored but "{path.name}" could not be moved: {e.message}'
            )
            report.failed.append(RestoreFailure(path, e.code, e.message))
            report.installed.append(
                InstalledRecord(record.id, record.owner_name, path, None, replaced)
            )
            await loop.run_in_executor(None, self._mark_consumed, path, None)
            return

        if not moved.source_removed:
            report.source_retained.append(path)
            await loop.run_in_executor(None, self._mark_consumed, path, moved.destination)

        report.installed.append(
            InstalledRecord(record.id, record.owner_name, path, moved.destination, replaced)
        )
        logger.info(
            f'Profile "{record.owner_name}-{record.id}" restored from "{path.name}"',
            extra={"record_id": record.id, "source": str(path), "replaced": replaced},
        )

    async def _install(self, record: Record) -> bool:
        """Replace any live record with the same id, then add and persist.

        Returns:
            True if a live record was replaced

        Raises:
            CollisionReplaceError: If the existing record could not be removed
            AutoBackupError: If adding or saving failed
        """
        replaced = False
        if await self.store.has_record(record.id):
            try:
                await self.store.delete_record(record.id)
            except Exception as e:
                raise CollisionReplaceError(record.id, e)
            replaced = True

        try:
            await self.store.add_record(record)
            await self.store.save_record(record.id)
        except Exception as e:
            raise AutoBackupError(
                f"Failed to install record '{record.id}': {e}",
                code="INSTALL_FAILED",
                details={"record_id": record.id},
            )
        return replaced

    def _marker_path(self, path: Path) -> Path:
        return self.processed_dir / f".{path.name}{_MARKER_SUFFIX}"

    def _is_consumed(self, path: Path) -> bool:
        """True if path was installed by an earlier pass but never removed."""
        marker = self._read_marker(path)
        if marker is None:
            return False
        try:
            current = fsutil.file_digest(path)
        except OSError as e:
            raise BackupIOError("read", path, e)
        if marker.get("sha256") == current:
            return True

        # Staged file was replaced with new content since it was consumed
        fsutil.remove_file(self._marker_path(path))
        return False

    def _read_marker(self, path: Path) -> dict | None:
        marker = self._marker_path(path)
        try:
            return json.loads(marker.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise BackupIOError("read", marker, OSError(str(e)))

    def _mark_consumed(self, path: Path, destination: Path | None) -> None:
        marker = self._marker_path(path)
        try:
            data = {
                "sha256": fsutil.file_digest(path),
                "destination": destination.name if destination else None,
            }
            fsutil.write_atomic(marker, json.dumps(data).encode("utf-8"))
        except (OSError, BackupIOError) as e:
            logger.error(
                f'"{path.name}" could not be marked as restored and will be '
                f"installed again on the next startup: {e}"
            )

    def _finish_consumed(self, path: Path) -> bool:
        """Complete the relocation of a consumed staged file.

        The staged file is removed directly when its verified copy is already
        in the processed directory, otherwise it is relocated again.
        """
        marker = self._read_marker(path) or {}
        destination = marker.get("destination")
        copy = self.processed_dir / destination if destination else None

        if copy is not None and self._holds_digest(copy, marker.get("sha256")):
            removed = fsutil.remove_file(path)
        else:
            try:
                removed = fsutil.relocate_file(path, self.processed_dir).source_removed
            except BackupIOError as e:
                logger.error(f'"{path.name}" still could not be moved: {e.message}')
                return False

        if removed:
            fsutil.remove_file(self._marker_path(path))
        return removed

    def _holds_digest(self, path: Path, digest: str | None) -> bool:
        try:
            return path.is_file() and fsutil.file_digest(path) == digest
        except OSError as e:
            logger.warning(f"Could not read processed copy {path}: {e}")
            return False

    def _clear_stale_markers(self) -> None:
        for marker in self.processed_dir.glob(f".*{_MARKER_SUFFIX}"):
            staged_name = marker.name[1 : -len(_MARKER_SUFFIX)]
            if not (self.staging_dir / staged_name).exists():
                fsutil.remove_file(marker)
