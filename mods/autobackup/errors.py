"""
Error types for AutoBackup.

This module defines all exception types raised by the backup core:
- AutoBackupError: Base exception
- UnknownOwnerError: Capture requested for an owner that is not loaded
- RecordParseError: A file could not be decoded into a record
- BackupIOError: Filesystem operation failed
- CollisionReplaceError: Existing record could not be removed before restore
- ServiceNotReadyError: Capture requested before startup reconciliation

Invariants:
    - All errors inherit from AutoBackupError
    - Errors carry a stable code for programmatic handling
    - Errors include the path or id involved in details
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class AutoBackupError(Exception):
    """Base exception for all AutoBackup errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "AUTOBACKUP_ERROR"
        self.details = details or {}


class UnknownOwnerError(AutoBackupError):
    """No record is loaded for the requested owner."""

    def __init__(self, owner_id: str) -> None:
        super().__init__(
            f"No record loaded for owner '{owner_id}'",
            code="UNKNOWN_OWNER",
            details={"owner_id": owner_id},
        )
        self.owner_id = owner_id


class RecordParseError(AutoBackupError):
    """File content is not a valid record.

    Raised when:
    - Content is not valid JSON
    - The record id or owner name is missing or not a string
    """

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(
            message,
            code="PARSE_ERROR",
            details={"path": str(path) if path is not None else None},
        )
        self.path = path


class BackupIOError(AutoBackupError):
    """Filesystem operation failed (create, write, move, delete)."""

    def __init__(self, operation: str, path: Path | str, cause: OSError) -> None:
        super().__init__(
            f"Failed to {operation} '{path}': {cause}",
            code="IO_FAILURE",
            details={"operation": operation, "path": str(path), "errno": cause.errno},
        )
        self.operation = operation
        self.path = path
        self.cause = cause


class CollisionReplaceError(AutoBackupError):
    """The live record with a colliding id could not be removed."""

    def __init__(self, record_id: str, cause: Exception) -> None:
        super().__init__(
            f"Failed to remove existing record '{record_id}' before restore: {cause}",
            code="COLLISION_REPLACE_FAILED",
            details={"record_id": record_id},
        )
        self.record_id = record_id
        self.cause = cause


class ServiceNotReadyError(AutoBackupError):
    """Startup reconciliation has not completed yet."""

    def __init__(self) -> None:
        super().__init__(
            "AutoBackup service is not started; restore reconciliation must finish first",
            code="NOT_READY",
        )
