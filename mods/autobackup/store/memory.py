"""
In-memory record store implementation for testing.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests
- Embedding the backup core in hosts that persist records elsewhere

Invariants:
    - All data is lost on process exit
    - "Persisted" records are deep copies taken at save time

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with RecordStore protocol
    - Add failure injection helpers for testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging

from ..models import Record
from .base import RecordExistsError, RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore for testing.

    Attributes:
        persisted: Records as of their last save, keyed by id

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.add_record(record)
        >>> await store.save_record(record.id)
    """

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self.persisted: dict[str, Record] = {}
        self._lock = asyncio.Lock()
        self._fail_delete: set[str] = set()
        self._fail_save: set[str] = set()

    async def get_record(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    async def has_record(self, record_id: str) -> bool:
        return record_id in self._records

    async def add_record(self, record: Record) -> None:
        async with self._lock:
            if record.id in self._records:
                raise RecordExistsError(f"Record '{record.id}' already loaded")
            self._records[record.id] = record

    async def delete_record(self, record_id: str) -> bool:
        async with self._lock:
            if record_id in self._fail_delete:
                raise StoreError(f"Injected delete failure for '{record_id}'")
            self.persisted.pop(record_id, None)
            return self._records.pop(record_id, None) is not None

    async def save_record(self, record_id: str) -> None:
        async with self._lock:
            if record_id in self._fail_save:
                raise StoreError(f"Injected save failure for '{record_id}'")
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(f"Record '{record_id}' not loaded")
            self.persisted[record_id] = copy.deepcopy(record)

    async def list_ids(self) -> list[str]:
        return sorted(self._records)

    # =========================================================================
    # Testing helpers
    # =========================================================================

    def fail_delete_for(self, record_id: str) -> None:
        """Make delete_record() raise for this id."""
        self._fail_delete.add(record_id)

    def fail_save_for(self, record_id: str) -> None:
        """Make save_record() raise for this id."""
        self._fail_save.add(record_id)

    def clear_failures(self) -> None:
        self._fail_delete.clear()
        self._fail_save.clear()
