"""
Unit tests for filesystem primitives.

Tests cover:
- Idempotent directory creation
- Exclusive publish, atomic write and name sanitizing
- Relocation fallbacks and failure handling
"""

import errno
import tempfile
from pathlib import Path

import pytest

from mods.autobackup import fsutil
from mods.autobackup.errors import BackupIOError


class TestFsUtil:
    """Tests for fsutil helpers."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_ensure_dir_idempotent(self, data_dir):
        """Creating an existing directory is not an error."""
        target = data_dir / "a" / "b"
        assert fsutil.ensure_dir(target) is True
        assert fsutil.ensure_dir(target) is False
        assert target.is_dir()

    def test_ensure_dir_over_file_fails(self, data_dir):
        """A file in the way is reported as an IO failure."""
        blocker = data_dir / "blocker"
        blocker.write_text("x")

        with pytest.raises(BackupIOError) as exc_info:
            fsutil.ensure_dir(blocker / "child")
        assert exc_info.value.code == "IO_FAILURE"

    def test_publish_exclusive(self, data_dir):
        """The first publish writes the full content; a second never overwrites."""
        path = data_dir / "x.json"

        assert fsutil.publish_exclusive(path, b'{"a": 1}') is True
        assert fsutil.publish_exclusive(path, b'{"b": 2}') is False

        assert path.read_bytes() == b'{"a": 1}'
        assert [p.name for p in data_dir.iterdir()] == ["x.json"]

    def test_publish_exclusive_failure_leaves_nothing(self, data_dir, monkeypatch):
        """A failed publish leaves neither an empty file nor a temporary file."""
        path = data_dir / "x.json"

        def no_links(src, dst):
            raise OSError(errno.EPERM, "Operation not permitted")

        monkeypatch.setattr(fsutil.os, "link", no_links)

        with pytest.raises(BackupIOError):
            fsutil.publish_exclusive(path, b"{}")
        monkeypatch.undo()

        assert list(data_dir.iterdir()) == []

    def test_safe_component(self):
        """Only reserved characters are replaced; other letters are kept."""
        assert fsutil.safe_component("Иван-42") == "Иван-42"
        assert fsutil.safe_component("a/b\\c:d") == "a-b-c-d"
        assert fsutil.safe_component("..") == "-"
        assert fsutil.is_safe_component("6613a1b2c")
        assert fsutil.is_safe_component("a.b")
        assert not fsutil.is_safe_component("a/b")
        assert not fsutil.is_safe_component("")

    def test_write_atomic_replaces_content(self, data_dir):
        """write_atomic leaves the new content and no temporary files."""
        path = data_dir / "x.json"
        path.write_bytes(b"old")

        fsutil.write_atomic(path, b"new")

        assert path.read_bytes() == b"new"
        assert [p.name for p in data_dir.iterdir()] == ["x.json"]

    def test_list_files_filters(self, data_dir):
        """Only visible regular files with the extension are listed."""
        (data_dir / "a.json").write_text("{}")
        (data_dir / "b.txt").write_text("")
        (data_dir / ".a.json.123.tmp").write_text("")
        (data_dir / "sub.json").mkdir()

        assert [p.name for p in fsutil.list_files(data_dir, "json")] == ["a.json"]

    def test_relocate_rename(self, data_dir):
        """Same-filesystem relocation is a rename."""
        source = data_dir / "in" / "f.json"
        source.parent.mkdir()
        source.write_text("{}")
        dest_dir = data_dir / "out"
        dest_dir.mkdir()

        result = fsutil.relocate_file(source, dest_dir)

        assert result.method == "rename"
        assert result.destination == dest_dir / "f.json"
        assert not source.exists()

    def test_relocate_copy_failure_keeps_source(self, data_dir, monkeypatch):
        """A failed copy never removes the source."""
        source = data_dir / "f.json"
        source.write_text("{}")
        dest_dir = data_dir / "out"
        dest_dir.mkdir()

        def cross_device_rename(src, dst):
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        def broken_copy(src, dst):
            Path(dst).write_text("{")
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(fsutil.os, "rename", cross_device_rename)
        monkeypatch.setattr(fsutil.shutil, "copy2", broken_copy)

        with pytest.raises(BackupIOError):
            fsutil.relocate_file(source, dest_dir)
        monkeypatch.undo()

        assert source.read_text() == "{}"
        assert list(dest_dir.iterdir()) == []

    def test_relocate_other_error_raises(self, data_dir, monkeypatch):
        """Non cross-device rename errors are surfaced, source untouched."""
        source = data_dir / "f.json"
        source.write_text("{}")

        def denied_rename(src, dst):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(fsutil.os, "rename", denied_rename)

        with pytest.raises(BackupIOError):
            fsutil.relocate_file(source, data_dir / "missing")
        monkeypatch.undo()

        assert source.exists()
