"""
Tests for the automatic backup scheduler.

Uses a real AsyncIOScheduler with sub-second intervals.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from exam_manager.services.backup_types import BackupErrorKind, BackupResult
from exam_manager.services.scheduler_service import AutomaticBackupScheduler, run_auto_backup


class CountingOrchestrator:
    """Counts automatic runs; the first one raises"""

    def __init__(self, fail_first: bool = True):
        self.calls = 0
        self.fail_first = fail_first

    async def perform_automatic_backup(self) -> BackupResult:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("first cycle explodes")
        return BackupResult.success("Backup completed successfully.")


class BlockingOrchestrator:
    """Blocks until cancelled"""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def perform_automatic_backup(self) -> BackupResult:
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class TestRunAutoBackup:
    """Tests for the scheduled job body"""

    @pytest.mark.asyncio
    async def test_crash_is_logged_not_raised(self, caplog):
        orchestrator = CountingOrchestrator()

        with caplog.at_level(logging.INFO, logger="exam_manager.scheduler"):
            await run_auto_backup(orchestrator)

        critical = [r for r in caplog.records if r.levelno == logging.CRITICAL]
        assert len(critical) == 1
        assert "first cycle explodes" in critical[0].getMessage()

    @pytest.mark.asyncio
    async def test_failed_result_is_logged(self, caplog):
        class FailingOrchestrator:
            async def perform_automatic_backup(self):
                return BackupResult.failed(BackupErrorKind.UPLOAD_FAILURE, "Backup failed: quota exceeded")

        with caplog.at_level(logging.INFO, logger="exam_manager.scheduler"):
            await run_auto_backup(FailingOrchestrator())

        assert "Auto-backup failed: Backup failed: quota exceeded" in caplog.text


class TestAutomaticBackupScheduler:

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            AutomaticBackupScheduler(CountingOrchestrator(), timedelta(0))
        with pytest.raises(ValueError):
            AutomaticBackupScheduler(CountingOrchestrator(), timedelta(seconds=-5))

    def test_not_running_before_start(self):
        scheduler = AutomaticBackupScheduler(CountingOrchestrator(), timedelta(hours=24))

        assert scheduler.running is False
        assert scheduler.next_run_time is None

    @pytest.mark.asyncio
    async def test_first_run_waits_one_interval(self):
        scheduler = AutomaticBackupScheduler(CountingOrchestrator(), timedelta(hours=24))
        before = datetime.now(timezone.utc)

        scheduler.start()
        try:
            assert scheduler.running is True
            next_run = scheduler.next_run_time
            assert next_run is not None
            assert next_run >= before + timedelta(hours=23, minutes=59)
        finally:
            scheduler.shutdown()

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_keeps_running_after_a_crashed_cycle(self):
        orchestrator = CountingOrchestrator(fail_first=True)
        scheduler = AutomaticBackupScheduler(orchestrator, timedelta(seconds=0.2))

        scheduler.start()
        try:
            await asyncio.sleep(0.05)
            assert orchestrator.calls == 0

            await asyncio.sleep(1.0)
            assert orchestrator.calls >= 2
            assert scheduler.running is True
        finally:
            scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_cancels_running_cycle(self):
        orchestrator = BlockingOrchestrator()
        scheduler = AutomaticBackupScheduler(orchestrator, timedelta(seconds=0.1))

        scheduler.start()
        try:
            await asyncio.wait_for(orchestrator.started.wait(), timeout=5)
        finally:
            scheduler.shutdown()

        for _ in range(5):
            await asyncio.sleep(0)
        assert orchestrator.cancelled is True
