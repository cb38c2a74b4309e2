"""
Filesystem primitives for the backup core.

Invariants:
    - Directory creation is idempotent and tolerates concurrent creators
    - Writes go to a temporary file in the target directory, then replace
      (or hard link, when an existing name must not be overwritten)
    - No zero-length placeholder is ever created under a final name
    - A relocated file always exists in at least one place: the source is
      only removed after the destination copy is verified

How to change safely:
    - Temporary files must never match a listing filter (they start with ".")
    - Test relocation against simulated cross-device moves
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from .errors import BackupIOError

logger = logging.getLogger(__name__)

# Characters that cannot appear in a portable file name
RESERVED_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


@dataclass(frozen=True)
class RelocationResult:
    """Outcome of moving a file between directories.

    Attributes:
        source: Original path
        destination: Path of the relocated file
        method: "rename" or "copy"
        source_removed: False if the copy succeeded but the source remains
    """

    source: Path
    destination: Path
    method: str
    source_removed: bool = True


def ensure_dir(path: Path) -> bool:
    """Create a directory and its parents if absent.

    Returns:
        True if the directory was created by this call

    Raises:
        BackupIOError: If the directory cannot be created
    """
    if path.is_dir():
        return False
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BackupIOError("create directory", path, e)
    return True


def list_files(directory: Path, extension: str) -> list[Path]:
    """Regular files in a directory with the given extension.

    Hidden files (temporary writes) are skipped. A missing directory is empty.
    """
    suffix = f".{extension.lstrip('.')}"
    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        return []
    except OSError as e:
        raise BackupIOError("list directory", directory, e)
    return [
        p for p in entries
        if p.suffix == suffix and not p.name.startswith(".") and p.is_file()
    ]


def safe_component(value: str) -> str:
    """Make value usable as a single path component.

    Reserved characters become "-"; leading and trailing dots and spaces are
    dropped. Any other character, including non-ASCII letters, is kept.
    """
    return RESERVED_CHARS.sub("-", value).strip(". ") or "-"


def is_safe_component(value: str) -> bool:
    """True if value is already a usable path component."""
    return bool(value) and safe_component(value) == value


def publish_exclusive(path: Path, data: bytes) -> bool:
    """Write bytes to path only if nothing exists there yet.

    The data is written and synced to a temporary file first, then hard
    linked to path. Nothing ever appears at path until it holds the full
    content, and an existing file at path is never overwritten.

    Returns:
        False if the path already exists

    Raises:
        BackupIOError: If the write or link fails for another reason
    """
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.link(tmp_path, path)
    except FileExistsError:
        return False
    except OSError as e:
        raise BackupIOError("write", path, e)
    finally:
        _discard_partial(tmp_path)
    return True


def write_atomic(path: Path, data: bytes) -> None:
    """Write bytes to path via a temporary file and an atomic replace.

    A reader never observes a truncated file at path.

    Raises:
        BackupIOError: If the write or replace fails
    """
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        raise BackupIOError("write", path, e)
    finally:
        if tmp_path.exists():
            try:
                os.remove(tmp_path)
            except OSError as e:
                logger.warning(f"Failed to remove temporary file {tmp_path}: {e}")


def unique_destination(directory: Path, name: str) -> Path:
    """A path in directory named like name that does not exist yet."""
    candidate = directory / name
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


def file_digest(path: Path) -> str:
    """SHA-256 hex digest of a file's bytes."""
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 16), b""):
            sha.update(chunk)
    return sha.hexdigest()


def remove_file(path: Path) -> bool:
    """Remove a file; False (logged) if it cannot be removed."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
        return False
    return True


def relocate_file(source: Path, dest_dir: Path) -> RelocationResult:
    """Move a file into dest_dir without ever losing it.

    Tries an atomic rename first. When the directories are on different
    filesystems, falls back to copy, verify (exists, same size), then delete
    the source. The destination's modification time is set to the relocation
    time.

    Raises:
        BackupIOError: If neither rename nor a verified copy succeeded; the
            source is untouched in that case
    """
    destination = unique_destination(dest_dir, source.name)

    try:
        os.rename(source, destination)
        method = "rename"
        source_removed = True
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise BackupIOError("move", source, e)
        method = "copy"
        source_removed = _copy_then_remove(source, destination)

    try:
        os.utime(destination)
    except OSError as e:
        logger.warning(f"Failed to refresh modification time of {destination}: {e}")

    return RelocationResult(
        source=source,
        destination=destination,
        method=method,
        source_removed=source_removed,
    )


def _copy_then_remove(source: Path, destination: Path) -> bool:
    try:
        expected_size = source.stat().st_size
        shutil.copy2(source, destination)
    except OSError as e:
        _discard_partial(destination)
        raise BackupIOError("copy", source, e)

    if not destination.is_file() or destination.stat().st_size != expected_size:
        _discard_partial(destination)
        raise BackupIOError(
            "verify copy of",
            source,
            OSError(errno.EIO, f"copy at {destination} does not match source size"),
        )

    try:
        os.remove(source)
    except OSError as e:
        logger.warning(
            f"Copied {source} to {destination} but could not remove the source: {e}",
            extra={"source": str(source), "destination": str(destination)},
        )
        return False
    return True


def _discard_partial(path: Path) -> None:
    try:
        if path.exists():
            os.remove(path)
    except OSError as e:
        logger.warning(f"Failed to remove leftover file {path}: {e}")
