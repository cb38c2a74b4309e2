"""
File-backed record store for AutoBackup.

This module manages a profiles directory holding one JSON file per record:
    <profiles_dir>/<record_id>.json

Records are loaded into memory by load_all() and written back by
save_record(). Subdirectories (backups, staging, processed) are ignored.

Invariants:
    - A live record's file is named after its storage key, unchanged; keys
      that are not usable as a file name are rejected, never rewritten
    - Saves are atomic (temporary file + replace)
    - delete_record() removes the file as well as the in-memory record

How to change safely:
    - Keep file naming stable, hosts read these files directly
    - Test repair_mismatched_keys() with files named after stale ids
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from .. import fsutil
from ..codec import RecordCodec
from ..errors import AutoBackupError, RecordParseError
from ..models import Record
from .base import RecordExistsError, RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)


class FileRecordStore:
    """One-file-per-record store.

    Records are held in memory under a storage key, which normally equals
    the record's embedded id. A key mismatch means a file was placed under
    the wrong name; repair_mismatched_keys() fixes it.

    Example:
        >>> store = FileRecordStore("./user/profiles")
        >>> await store.load_all()
        >>> record = await store.get_record("6613a1b2c")
    """

    def __init__(
        self,
        profiles_dir: str | Path,
        codec: RecordCodec | None = None,
        extension: str = "json",
    ) -> None:
        """Initialize the store.

        Args:
            profiles_dir: Directory holding record files
            codec: Codec for reading and writing record files
            extension: Record file extension
        """
        self.profiles_dir = Path(profiles_dir)
        self.codec = codec or RecordCodec()
        self.extension = extension
        self._records: dict[str, Record] = {}
        self._lock = asyncio.Lock()

    def get_path(self, key: str) -> Path:
        """File path for a storage key.

        Raises:
            StoreError: If the key cannot be used as a file name as-is
        """
        if not fsutil.is_safe_component(key):
            raise StoreError(f"Record id '{key}' cannot be used as a file name")
        return self.profiles_dir / f"{key}.{self.extension}"

    async def load_all(self) -> list[str]:
        """Load every record file in the profiles directory.

        Unparseable files are logged and skipped.

        Returns:
            Storage keys that were loaded
        """
        loop = asyncio.get_running_loop()
        paths = await loop.run_in_executor(
            None, fsutil.list_files, self.profiles_dir, self.extension
        )
        loaded = []
        for path in sorted(paths):
            if await self.load_record(path.stem):
                loaded.append(path.stem)
        logger.info(f"Loaded {len(loaded)} records from {self.profiles_dir}")
        return loaded

    async def load_record(self, key: str) -> bool:
        """Load (or reload) the record stored under key.

        Returns:
            True if the record was loaded
        """
        try:
            path = self.get_path(key)
        except StoreError as e:
            logger.warning(f"Skipping record file for key '{key}': {e}")
            return False
        loop = asyncio.get_running_loop()
        try:
            record = await loop.run_in_executor(None, self.codec.read_file, path)
        except RecordParseError as e:
            logger.warning(f"Skipping unreadable record file {path}: {e.message}")
            return False
        async with self._lock:
            self._records[key] = record
        return True

    async def get_record(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    async def has_record(self, record_id: str) -> bool:
        return record_id in self._records

    async def add_record(self, record: Record) -> None:
        self.get_path(record.id)
        async with self._lock:
            if record.id in self._records:
                raise RecordExistsError(f"Record '{record.id}' already loaded")
            self._records[record.id] = record

    async def delete_record(self, record_id: str) -> bool:
        path = self.get_path(record_id)
        async with self._lock:
            try:
                if path.exists():
                    os.remove(path)
            except OSError as e:
                raise StoreError(f"Failed to delete record file {path}: {e}")
            return self._records.pop(record_id, None) is not None

    async def save_record(self, record_id: str) -> None:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"Record '{record_id}' not loaded")

        data = self.codec.encode(record)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, fsutil.ensure_dir, self.profiles_dir)
            await loop.run_in_executor(None, fsutil.write_atomic, self.get_path(record_id), data)
        except AutoBackupError as e:
            raise StoreError(e.message)

    async def list_ids(self) -> list[str]:
        return sorted(self._records)

    async def repair_mismatched_keys(self) -> list[tuple[str, str]]:
        """Re-key records whose storage key differs from their embedded id.

        The record is dropped under the old key, its file renamed to the
        embedded id, and reloaded. A record whose target id is already loaded
        under its own key is left alone and logged.

        Returns:
            (old_key, new_key) pairs that were repaired
        """
        repaired = []
        for key, record in list(self._records.items()):
            if key == record.id:
                continue
            if record.id in self._records:
                logger.warning(
                    f"Record file '{key}' holds id '{record.id}', which is already loaded; not repaired"
                )
                continue

            try:
                old_path = self.get_path(key)
                new_path = self.get_path(record.id)
                os.rename(old_path, new_path)
            except (OSError, StoreError) as e:
                logger.error(f"Failed to repair record file '{key}' holding id '{record.id}': {e}")
                continue

            async with self._lock:
                self._records.pop(key, None)
            await self.load_record(record.id)
            repaired.append((key, record.id))
            logger.info(f'Record file "{old_path.name}" => "{new_path.name}" name fixed')
        return repaired
