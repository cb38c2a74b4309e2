"""
AutoBackup service - host-facing entry points.

The service wires the components together from one explicit context
(configuration, record store, codec, clock) and enforces startup order:

    1. repair mismatched record keys (if the store supports it)
    2. reconcile staged restore files
    3. register event routes; on_event() accepted from here on

Invariants:
    - on_event() never raises; failures come back as a failed CaptureResult
    - Each on_event() call is isolated; one owner's failure never affects another
    - Success messages follow the log toggles, failures are always logged

How to change safely:
    - Keep reconciliation ahead of route registration
    - New log toggles must only ever suppress success messages
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime

from .codec import RecordCodec
from .config import AutoBackupConfig, AutoBackupEvent
from .errors import AutoBackupError, ServiceNotReadyError
from .filters import ExclusionFilter
from .restore import RestoreReconciler, RestoreReport
from .snapshot import CaptureResult, CaptureStatus, SnapshotWriter
from .snapshot.writer import utc_now
from .store.base import RecordStore

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, str], Awaitable[CaptureResult]]


class EventRouter:
    """Route table from host routes to backup event names.

    Only enabled events are registered; disabled ones are logged.

    Example:
        >>> router = EventRouter(config.auto_backup_events, service.on_event)
        >>> await router.dispatch("/client/match/local/end", session_id)
    """

    def __init__(self, events: Iterable[AutoBackupEvent], handler: EventHandler) -> None:
        self.handler = handler
        self.routes: dict[str, str] = {}
        for event in events:
            if event.enabled:
                self.routes[event.route] = event.name
                logger.info(f"Registered {event.name} event with route {event.route}")
            else:
                logger.warning(
                    f"Found {event.name} event with route {event.route} but it is disabled"
                )

    async def dispatch(self, route: str, owner_id: str) -> CaptureResult | None:
        """Forward a route hit to the handler.

        Returns:
            CaptureResult, or None if the route is not registered
        """
        event_name = self.routes.get(route)
        if event_name is None:
            return None
        return await self.handler(event_name, owner_id)


class AutoBackupService:
    """Snapshot and restore orchestration for one host.

    Attributes:
        config: AutoBackup configuration
        store: Live record store
        codec: Record codec
        writer: Snapshot writer
        reconciler: Restore reconciler
        router: Event router, set once start() has finished

    Example:
        >>> service = AutoBackupService(config, store)
        >>> report = await service.start()
        >>> await service.on_event("RaidEnd", session_id)
    """

    def __init__(
        self,
        config: AutoBackupConfig,
        store: RecordStore,
        codec: RecordCodec | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.config = config
        self.store = store
        self.codec = codec or RecordCodec(compress=config.compress)
        self.writer = SnapshotWriter(
            store=store,
            codec=self.codec,
            archive_root=config.paths.archive_root,
            max_count=config.maximum_backup_per_profile,
            extension=config.paths.extension,
            exclusion_filter=ExclusionFilter(config.excluded_prefixes),
            clock=clock,
        )
        self.reconciler = RestoreReconciler(
            store=store,
            codec=self.codec,
            staging_dir=config.paths.staging_path,
            processed_dir=config.paths.processed_path,
            max_processed=config.maximum_restored_files,
            extension=config.paths.extension,
        )
        self.router: EventRouter | None = None

    @property
    def is_ready(self) -> bool:
        return self.router is not None

    async def start(self) -> RestoreReport | None:
        """Run startup reconciliation, then register event routes.

        Returns:
            RestoreReport, or None when the service is disabled
        """
        if not self.config.enabled:
            logger.warning("AutoBackup is disabled. Backups will not be made.")
            return None
        if self.is_ready:
            logger.warning("AutoBackup service already started")
            return None

        logger.info("AutoBackup is enabled. Loading...")

        repair = getattr(self.store, "repair_mismatched_keys", None)
        if repair is not None:
            await repair()

        report = await self.restore()
        self.router = EventRouter(self.config.auto_backup_events, self.on_event)
        logger.info("Finished registering events")
        return report

    async def restore(self) -> RestoreReport:
        """Run one reconciliation pass within the configured time limit.

        The limit is checked between restore files; a file that has started
        is always finished, so the store is never left mid-replace.
        """
        report = await self.reconciler.reconcile(timeout=self.config.restore_timeout_seconds)
        self._log_restore_report(report)
        return report

    async def on_event(self, event_tag: str, owner_id: str) -> CaptureResult:
        """Capture a snapshot for an owner. Never raises.

        Args:
            event_tag: Event name written into the snapshot filename
            owner_id: Id of a loaded record

        Returns:
            CaptureResult with status saved, skipped or failed
        """
        if not self.is_ready:
            error = ServiceNotReadyError()
            logger.error(f"{owner_id}: {event_tag} backup rejected: {error.message}")
            return CaptureResult(CaptureStatus.FAILED, owner_id, event_tag, error=error)

        try:
            result = await self.writer.capture(owner_id, event_tag)
        except AutoBackupError as e:
            logger.error(f"{owner_id}: {event_tag} backup failed: {e.message}")
            return CaptureResult(CaptureStatus.FAILED, owner_id, event_tag, error=e)
        except Exception as e:
            logger.error(f"{owner_id}: {event_tag} backup failed: {e}", exc_info=True)
            return CaptureResult(CaptureStatus.FAILED, owner_id, event_tag, error=e)

        if result.saved:
            self._log_capture(result)
        return result

    async def dispatch(self, route: str, owner_id: str) -> CaptureResult | None:
        """Forward a host route hit; None if the route is not registered."""
        if self.router is None:
            logger.error(f"{owner_id}: route {route} hit before AutoBackup finished starting")
            return CaptureResult(
                CaptureStatus.FAILED, owner_id, route, error=ServiceNotReadyError()
            )
        return await self.router.dispatch(route, owner_id)

    def _log_capture(self, result: CaptureResult) -> None:
        label = f"{result.owner_name}-{result.owner_id}"
        retention = result.retention

        if retention is not None:
            for path, message in retention.failed:
                logger.warning(f'{label}: Failed to delete old backup "{path.name}": {message}')

            if self.config.maximum_backup_delete_log:
                if retention.deleted_count == 1:
                    logger.warning(
                        f"{label}: Maximum backup reached ({retention.max_count}), "
                        f'Backup file "{retention.deleted[0].name}" deleted'
                    )
                elif retention.deleted_count > 1:
                    logger.warning(
                        f"{label}: Maximum backup reached ({retention.max_count}), "
                        f'Total "{retention.deleted_count}" backup files deleted'
                    )

        if self.config.backup_saved_log and result.snapshot is not None:
            logger.info(
                f'{label}: New backup file "{result.snapshot.file_name}" saved',
                extra={"owner_id": result.owner_id, "event": result.event_tag},
            )

    def _log_restore_report(self, report: RestoreReport) -> None:
        if report.installed:
            logger.info(
                f"Restored {len(report.installed)} profiles",
                extra={"record_ids": [r.record_id for r in report.installed]},
            )
        if report.skipped_invalid:
            logger.warning(
                f"{len(report.skipped_invalid)} restore files were invalid and left in "
                f"{self.reconciler.staging_dir}"
            )

        retention = report.retention
        if retention is None:
            return
        for path, message in retention.failed:
            logger.warning(f'Failed to delete old restored file "{path.name}": {message}')
        if self.config.maximum_restored_delete_log and retention.deleted_count:
            logger.warning(
                f"Maximum restored files reached ({retention.max_count}), "
                f'Total "{retention.deleted_count}" restored files deleted'
            )
