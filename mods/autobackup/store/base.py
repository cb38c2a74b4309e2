"""
Base protocol and errors for the record store abstraction.

The record store owns live records in memory and persists/loads them by id.
The backup core only calls this contract; persistence details (file layout,
compression) belong to the store.

Invariants:
    - At most one live record per id
    - delete_record() removes both the in-memory record and its persisted form
    - save_record() persists with the store's own settings

How to change safely:
    - Protocol changes require updating all implementations
    - Keep every method awaitable, hosts may back the store with async I/O
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable

from ..models import Record


class StoreError(Exception):
    """Base exception for record store operations."""

    pass


class RecordExistsError(StoreError):
    """A record with this id is already loaded."""

    pass


class RecordNotFoundError(StoreError):
    """No record with this id is loaded."""

    pass


@runtime_checkable
class RecordStore(Protocol):
    """Protocol for record stores.

    Example:
        >>> store = InMemoryRecordStore()
        >>> await store.add_record(Record(id="42", owner_name="alice", content={}))
        >>> await store.save_record("42")
        >>> await store.has_record("42")
        True
    """

    @abstractmethod
    async def get_record(self, record_id: str) -> Record | None:
        """Return the live record, or None if not loaded."""
        ...

    @abstractmethod
    async def has_record(self, record_id: str) -> bool:
        """Whether a live record with this id exists."""
        ...

    @abstractmethod
    async def add_record(self, record: Record) -> None:
        """Add a record to the live set.

        Raises:
            RecordExistsError: If a record with the same id is loaded
        """
        ...

    @abstractmethod
    async def delete_record(self, record_id: str) -> bool:
        """Remove a record from memory and from its persisted form.

        Returns:
            True if a record was removed

        Raises:
            StoreError: If the persisted form could not be removed
        """
        ...

    @abstractmethod
    async def save_record(self, record_id: str) -> None:
        """Persist a live record.

        Raises:
            RecordNotFoundError: If the record is not loaded
            StoreError: If persisting fails
        """
        ...

    @abstractmethod
    async def list_ids(self) -> list[str]:
        """Ids of all live records."""
        ...
