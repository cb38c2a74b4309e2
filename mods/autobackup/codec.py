"""
Record codec for AutoBackup.

Converts records to the bytes written into snapshot files and back. The
payload is JSON; the record identity (id, owner name) is embedded in the
content and located by a key path, so the same codec reads snapshots,
restore candidates and the store's own profile files.

Invariants:
    - encode() never mutates the record content
    - decode() either returns a complete Record or raises RecordParseError

How to change safely:
    - Keep decode() accepting every format encode() has ever produced
    - Changing the id/name key paths breaks existing restore files
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .errors import RecordParseError
from .models import Record

DEFAULT_ID_PATH: tuple[str, ...] = ("info", "id")
DEFAULT_NAME_PATH: tuple[str, ...] = ("info", "username")


def _lookup(content: Any, path: tuple[str, ...]) -> Any:
    value = content
    for key in path:
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value


class RecordCodec:
    """JSON codec for records.

    Attributes:
        id_path: Key path of the record id inside the content
        name_path: Key path of the owner name inside the content
        compress: Write compact JSON instead of indented JSON

    Example:
        >>> codec = RecordCodec()
        >>> data = codec.encode(record)
        >>> codec.decode(data).id == record.id
        True
    """

    def __init__(
        self,
        id_path: tuple[str, ...] = DEFAULT_ID_PATH,
        name_path: tuple[str, ...] = DEFAULT_NAME_PATH,
        compress: bool = False,
    ) -> None:
        self.id_path = id_path
        self.name_path = name_path
        self.compress = compress

    def encode(self, record: Record) -> bytes:
        """Serialize record content."""
        if self.compress:
            text = json.dumps(record.content, separators=(",", ":"), ensure_ascii=False)
        else:
            text = json.dumps(record.content, indent=4, ensure_ascii=False)
        return text.encode("utf-8")

    def decode(self, data: bytes, source: Path | str | None = None) -> Record:
        """Parse bytes into a Record.

        Args:
            data: Serialized content
            source: File the bytes came from, for error context

        Raises:
            RecordParseError: If content is not JSON or lacks id/owner name
        """
        try:
            content = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RecordParseError(f"Invalid JSON content: {e}", path=source)

        return self.from_content(content, source=source)

    def from_content(self, content: Any, source: Path | str | None = None) -> Record:
        """Build a Record from already-parsed content."""
        if not isinstance(content, dict):
            raise RecordParseError("Record content must be a JSON object", path=source)

        record_id = _lookup(content, self.id_path)
        owner_name = _lookup(content, self.name_path)
        if not isinstance(record_id, str) or not record_id:
            raise RecordParseError(
                f"Missing record id at '{'.'.join(self.id_path)}'", path=source
            )
        if not isinstance(owner_name, str):
            raise RecordParseError(
                f"Missing owner name at '{'.'.join(self.name_path)}'", path=source
            )
        return Record(id=record_id, owner_name=owner_name, content=content)

    def read_file(self, path: Path) -> Record:
        """Read and decode a file.

        Raises:
            RecordParseError: If the file cannot be read or decoded
        """
        try:
            data = path.read_bytes()
        except OSError as e:
            raise RecordParseError(f"Unreadable file: {e}", path=path)
        return self.decode(data, source=path)
