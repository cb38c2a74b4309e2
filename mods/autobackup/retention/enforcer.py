"""
Retention enforcement for snapshot and processed-restore directories.

Given a directory, an extension and a maximum count, deletes the oldest
matching files until at most max_count remain. The enforcer knows nothing
about snapshots or restores.

Ordering:
    - "name": ascending filename. Valid because snapshot filenames are
      timestamp-prefixed; renaming the scheme must keep that prefix.
    - "mtime": ascending modification time, ties broken by filename.

Invariants:
    - Evict while count > max_count (keep at most max_count)
    - max_count < 0 disables enforcement
    - max_count == 0 removes every matching file
    - A failed deletion is recorded and the sweep continues

How to change safely:
    - Never evict newer files before older ones
    - Keep deletion best-effort; do not abort the sweep on one failure
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from .. import fsutil
from ..models import RetentionResult

logger = logging.getLogger(__name__)


class RetentionOrder(Enum):
    """Signal used to decide which file is oldest."""

    NAME = "name"
    MTIME = "mtime"


def _sort_key(order: RetentionOrder):
    if order == RetentionOrder.NAME:
        return lambda p: p.name

    def by_mtime(path: Path) -> tuple[int, str]:
        try:
            return (path.stat().st_mtime_ns, path.name)
        except OSError:
            # Vanished files sort first; their deletion is a no-op failure.
            return (0, path.name)

    return by_mtime


def enforce_retention(
    directory: Path,
    extension: str,
    max_count: int,
    order: RetentionOrder = RetentionOrder.NAME,
) -> RetentionResult:
    """Delete the oldest files until at most max_count remain.

    Args:
        directory: Directory to sweep
        extension: Only files with this extension are counted and evicted
        max_count: Files to keep (<0 disables enforcement)
        order: Oldest-first ordering signal

    Returns:
        RetentionResult listing deleted and failed files

    Raises:
        BackupIOError: If the directory cannot be listed
    """
    directory = Path(directory)
    result = RetentionResult(directory=directory, max_count=max_count)
    if max_count < 0:
        return result

    files = sorted(fsutil.list_files(directory, extension), key=_sort_key(order))
    remaining = len(files)

    for path in files:
        if remaining <= max_count:
            break
        try:
            os.remove(path)
            result.deleted.append(path)
        except FileNotFoundError as e:
            # Already gone; it no longer counts against the bound.
            result.failed.append((path, str(e)))
        except OSError as e:
            logger.warning(
                f"Retention could not delete {path}: {e}",
                extra={"directory": str(directory), "path": str(path)},
            )
            result.failed.append((path, str(e)))
            continue
        remaining -= 1

    return result


class RetentionEnforcer:
    """Retention sweeps bound to an extension and ordering.

    Example:
        >>> enforcer = RetentionEnforcer("json")
        >>> result = enforcer.enforce(Path("backups/alice-42"), max_count=5)
        >>> result.deleted_count
        2
    """

    def __init__(self, extension: str = "json", order: RetentionOrder = RetentionOrder.NAME) -> None:
        self.extension = extension
        self.order = order

    def enforce(self, directory: Path, max_count: int) -> RetentionResult:
        return enforce_retention(directory, self.extension, max_count, self.order)
