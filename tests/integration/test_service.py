"""
Integration tests for AutoBackupService.

Tests run the service against a FileRecordStore in a temporary profiles
directory and cover:
- Capture with retention end to end
- Restore reconciliation at startup
- Startup ordering (restore before events)
- Per-call isolation of capture failures
- Event routing and log toggles
"""

import asyncio
import json
import logging
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mods.autobackup.codec import RecordCodec
from mods.autobackup.config import AutoBackupConfig, AutoBackupEvent, PathsConfig
from mods.autobackup.service import AutoBackupService
from mods.autobackup.snapshot import CaptureStatus
from mods.autobackup.store import FileRecordStore


class StepClock:
    """Clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def write_profile(path: Path, record_id: str, username: str, **extra) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"info": {"id": record_id, "username": username}, **extra}))


class TestAutoBackupService:
    """Tests for AutoBackupService."""

    @pytest.fixture
    def root(self):
        """Create temporary profiles directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def config(self, root):
        return AutoBackupConfig(
            maximum_backup_per_profile=2,
            maximum_restored_files=5,
            paths=PathsConfig(root_dir=str(root)),
            auto_backup_events=(
                AutoBackupEvent(True, "raidStart", "/client/match/local/start"),
                AutoBackupEvent(True, "raidEnd", "/client/match/local/end"),
                AutoBackupEvent(False, "logout", "/client/game/logout"),
            ),
        )

    async def start_service(self, config, root):
        store = FileRecordStore(root, codec=RecordCodec())
        await store.load_all()
        service = AutoBackupService(config, store, clock=StepClock())
        report = await service.start()
        return service, store, report

    @pytest.mark.asyncio
    async def test_capture_retention_end_to_end(self, config, root):
        """Three captures with a bound of 2 keep the two most recent."""
        write_profile(root / "42.json", "42", "alice")
        service, _, _ = await self.start_service(config, root)

        await service.on_event("raidStart", "42")
        second = await service.on_event("raidEnd", "42")
        third = await service.on_event("raidStart", "42")

        files = sorted(p.name for p in (root / "backups" / "alice-42").iterdir())
        assert files == [second.snapshot.file_name, third.snapshot.file_name]
        assert files == [
            "2026-10-19_12-00-01-000000_raidEnd.json",
            "2026-10-19_12-00-02-000000_raidStart.json",
        ]

    @pytest.mark.asyncio
    async def test_restore_at_startup(self, config, root):
        """A staged file is installed, persisted and moved on startup."""
        write_profile(root / "ProfilesToRestore" / "snap1.json", "7", "bob")

        service, store, report = await self.start_service(config, root)

        assert [r.record_id for r in report.installed] == ["7"]
        assert await store.has_record("7")
        assert (root / "7.json").exists()
        assert [p.name for p in (root / "RestoredProfiles").iterdir()] == ["snap1.json"]
        assert list((root / "ProfilesToRestore").iterdir()) == []

    @pytest.mark.asyncio
    async def test_restore_replaces_loaded_profile(self, config, root):
        """A restore overwrites the loaded profile and its file."""
        write_profile(root / "42.json", "42", "alice", level=40)
        write_profile(root / "ProfilesToRestore" / "alice-backup.json", "42", "alice", level=12)

        service, store, report = await self.start_service(config, root)

        assert report.installed[0].replaced is True
        assert (await store.get_record("42")).content["level"] == 12
        assert json.loads((root / "42.json").read_text())["level"] == 12

    @pytest.mark.asyncio
    async def test_restored_profile_can_be_captured(self, config, root):
        """Captures after startup see the restored content."""
        write_profile(root / "ProfilesToRestore" / "snap1.json", "7", "bob", level=5)
        service, _, _ = await self.start_service(config, root)

        result = await service.on_event("raidEnd", "7")

        assert result.status == CaptureStatus.SAVED
        assert json.loads(result.snapshot.path.read_text())["level"] == 5

    @pytest.mark.asyncio
    async def test_event_before_start_rejected(self, config, root):
        """Captures are refused until startup reconciliation is done."""
        write_profile(root / "42.json", "42", "alice")
        store = FileRecordStore(root)
        await store.load_all()
        service = AutoBackupService(config, store)

        result = await service.on_event("raidStart", "42")

        assert result.status == CaptureStatus.FAILED
        assert result.error.code == "NOT_READY"
        assert not (root / "backups").exists()

    @pytest.mark.asyncio
    async def test_disabled_service(self, config, root):
        """A disabled service restores nothing and registers nothing."""
        write_profile(root / "ProfilesToRestore" / "snap1.json", "7", "bob")

        service, store, report = await self.start_service(replace(config, enabled=False), root)

        assert report is None
        assert service.router is None
        assert not await store.has_record("7")
        assert (root / "ProfilesToRestore" / "snap1.json").exists()

    @pytest.mark.asyncio
    async def test_failure_isolated_per_call(self, config, root):
        """A failing capture for one owner does not affect another."""
        write_profile(root / "42.json", "42", "alice")
        service, _, _ = await self.start_service(config, root)

        failed = await service.on_event("raidStart", "unknown")
        saved = await service.on_event("raidStart", "42")

        assert failed.status == CaptureStatus.FAILED
        assert failed.error.code == "UNKNOWN_OWNER"
        assert saved.status == CaptureStatus.SAVED

    @pytest.mark.asyncio
    async def test_headless_owner_skipped(self, config, root):
        write_profile(root / "99.json", "99", "headless_abc")
        service, _, _ = await self.start_service(config, root)

        result = await service.on_event("raidStart", "99")

        assert result.status == CaptureStatus.SKIPPED
        assert not (root / "backups").exists()

    @pytest.mark.asyncio
    async def test_dispatch_routes(self, config, root):
        """Enabled routes map to their event; disabled and unknown routes do nothing."""
        write_profile(root / "42.json", "42", "alice")
        service, _, _ = await self.start_service(config, root)

        result = await service.dispatch("/client/match/local/end", "42")

        assert result.snapshot.event_tag == "raidEnd"
        assert await service.dispatch("/client/game/logout", "42") is None
        assert await service.dispatch("/unknown", "42") is None

    @pytest.mark.asyncio
    async def test_start_repairs_keys_first(self, config, root):
        """A profile stored under the wrong name is re-keyed before restore."""
        write_profile(root / "stale.json", "42", "alice")

        service, store, _ = await self.start_service(config, root)

        assert await store.list_ids() == ["42"]
        assert (root / "42.json").exists()

    @pytest.mark.asyncio
    async def test_saved_log_toggle(self, config, root, caplog):
        """Success messages follow toggles; failures are always logged."""
        write_profile(root / "42.json", "42", "alice")
        quiet = replace(config, backup_saved_log=False, maximum_backup_delete_log=False)
        service, _, _ = await self.start_service(quiet, root)

        with caplog.at_level(logging.INFO):
            for _ in range(3):
                await service.on_event("raidStart", "42")
            await service.on_event("raidStart", "unknown")

        assert "New backup file" not in caplog.text
        assert "Maximum backup reached" not in caplog.text
        assert "backup failed" in caplog.text

    @pytest.mark.asyncio
    async def test_delete_log_enabled(self, config, root, caplog):
        write_profile(root / "42.json", "42", "alice")
        service, _, _ = await self.start_service(config, root)

        with caplog.at_level(logging.INFO):
            for _ in range(3):
                await service.on_event("raidStart", "42")

        assert "New backup file" in caplog.text
        assert "Maximum backup reached (2)" in caplog.text

    @pytest.mark.asyncio
    async def test_restore_time_limit_keeps_live_record(self, config, root):
        """Hitting the time limit never leaves a replaced record half-installed."""

        class SlowFileStore(FileRecordStore):
            async def add_record(self, record):
                await asyncio.sleep(0.3)
                await super().add_record(record)

        write_profile(root / "42.json", "42", "alice", level=10)
        write_profile(root / "ProfilesToRestore" / "a.json", "42", "alice", level=3)
        write_profile(root / "ProfilesToRestore" / "b.json", "7", "bob")
        store = SlowFileStore(root)
        await store.load_all()
        service = AutoBackupService(replace(config, restore_timeout_seconds=0.1), store)

        report = await service.start()

        assert [f.code for f in report.failed] == ["TIMEOUT"]
        assert service.is_ready
        assert (await store.get_record("42")).content["level"] == 3
        assert json.loads((root / "42.json").read_text())["level"] == 3
        assert (root / "ProfilesToRestore" / "b.json").exists()
