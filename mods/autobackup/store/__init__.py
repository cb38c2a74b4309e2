"""
Record store abstraction for AutoBackup.

This module provides the record store contract the backup core calls,
supporting:
- File-backed profiles directory (one JSON file per record)
- In-memory (for testing and embedding)

Invariants:
    - The store is the single source of truth for "does this id exist"
    - Deleting a record removes its persisted form too
    - Saving applies the store's own formatting settings

How to change safely:
    - New stores must implement the RecordStore protocol
    - Keep delete/save failure behavior covered by restore tests
"""

from .base import (
    RecordExistsError,
    RecordNotFoundError,
    RecordStore,
    StoreError,
)
from .file import FileRecordStore
from .memory import InMemoryRecordStore

__all__ = [
    # Protocol and errors
    "RecordStore",
    "StoreError",
    "RecordExistsError",
    "RecordNotFoundError",
    # Implementations
    "FileRecordStore",
    "InMemoryRecordStore",
]
