"""
Background scheduler for automatic database backups.

One APScheduler interval job calls the orchestrator every backup_interval.
The first run fires one full interval after start, and missed runs are
coalesced rather than backfilled.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from exam_manager.core.config import get_backup_config
from exam_manager.services.backup_service import BackupOrchestrator, get_backup_orchestrator

logger = logging.getLogger("exam_manager.scheduler")

AUTO_BACKUP_JOB_ID = "auto_backup"


async def run_auto_backup(orchestrator: BackupOrchestrator):
    """Job: one automatic backup cycle. Never raises, so the next cycle still fires."""
    logger.info("Starting automatic backup cycle...")
    try:
        result = await orchestrator.perform_automatic_backup()
        if result.succeeded:
            logger.info(f"Auto-backup successful: {result.attempt.artifact_name if result.attempt else ''}")
        else:
            logger.error(f"Auto-backup failed: {result.message}")
    except Exception as e:
        logger.critical(f"CRITICAL: Automatic backup crashed: {e}", exc_info=True)


class AutomaticBackupScheduler:
    """Owns the AsyncIOScheduler that drives automatic backups"""

    def __init__(self, orchestrator: BackupOrchestrator, interval: timedelta):
        if interval.total_seconds() <= 0:
            raise ValueError("Backup interval must be positive")
        self.orchestrator = orchestrator
        self.interval = interval
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def next_run_time(self) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(AUTO_BACKUP_JOB_ID)
        return job.next_run_time if job else None

    def start(self):
        """Start the scheduler. Must be called from a running event loop."""
        if self.running:
            return

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop(), timezone="UTC")
        self._scheduler.add_job(
            run_auto_backup,
            IntervalTrigger(seconds=self.interval.total_seconds(), timezone="UTC"),
            args=[self.orchestrator],
            id=AUTO_BACKUP_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(">>> APScheduler STARTED <<<")
        logger.info(f"Automatic backups every {self.interval}, next run at {self.next_run_time}")

    def shutdown(self):
        """Stop scheduling. A cycle that is still running is cancelled."""
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler stopped")
        self._scheduler = None


@lru_cache()
def get_backup_scheduler() -> AutomaticBackupScheduler:
    """Process-wide scheduler bound to the shared orchestrator"""
    return AutomaticBackupScheduler(get_backup_orchestrator(), get_backup_config().backup_interval)
