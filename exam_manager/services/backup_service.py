"""
Backup orchestration: pg_dump snapshot, Google Drive upload, history record.

Manual (HTTP) and automatic (scheduler) triggers share one orchestrator, and
one lock serialises complete runs so two dumps never overlap.
"""
import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from exam_manager.core.config import BackupConfig, get_backup_config
from exam_manager.services.backup_types import (
    BackupAttempt,
    BackupErrorKind,
    BackupResult,
    InitiatorKind,
    StepResult,
    artifact_stamp,
    build_artifact_name,
    utc_now,
)
from exam_manager.services.drive_service import DriveUploader
from exam_manager.services.history_service import HistoryRecorder
from exam_manager.services.snapshot_service import SnapshotProducer

logger = logging.getLogger("exam_manager.backup")

Step = Callable[[], Awaitable[StepResult]]


class BackupOrchestrator:
    """Single entry point for backup and restore runs"""

    def __init__(
        self,
        config: BackupConfig,
        snapshot_producer: Optional[SnapshotProducer] = None,
        uploader: Optional[DriveUploader] = None,
        recorder: Optional[HistoryRecorder] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.snapshot_producer = snapshot_producer or SnapshotProducer(config)
        self.uploader = uploader or DriveUploader(config)
        self.recorder = recorder or HistoryRecorder()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_stamp: Optional[str] = None
        self._sequence = 0

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def perform_manual_backup(self, operator_id: int) -> BackupResult:
        """Run a backup for an operator, rejecting immediately if one is already running"""
        return await self._run_backup(InitiatorKind.MANUAL, operator_id, wait=False)

    async def perform_automatic_backup(self) -> BackupResult:
        """Run a scheduled backup, waiting for any running backup to finish first"""
        return await self._run_backup(InitiatorKind.AUTOMATIC, None, wait=True)

    async def restore_backup(self, backup_id: int, operator_id: int) -> BackupResult:
        """
        Download a previously uploaded artifact and load it with pg_restore.

        Shares the backup lock, so a restore never overlaps a dump.
        """
        try:
            record = await asyncio.to_thread(self.recorder.get, backup_id)
        except Exception as e:
            return self._unexpected("Restore", e)

        if record is None:
            return BackupResult.failed(BackupErrorKind.NOT_FOUND, "Backup record not found.")
        if not record.succeeded or record.initiator_kind == InitiatorKind.RESTORE.value:
            return BackupResult.failed(
                BackupErrorKind.RESTORE_FAILURE,
                f"Record {backup_id} is not a successful backup and cannot be restored."
            )

        if self._lock.locked():
            return self._busy(InitiatorKind.RESTORE)

        async with self._lock:
            try:
                return await self._process_restore(record.artifact_name, operator_id)
            except Exception as e:
                return self._unexpected("Restore", e)

    async def _run_backup(self, kind: InitiatorKind, operator_id: Optional[int], wait: bool) -> BackupResult:
        if self._lock.locked():
            if not wait:
                return self._busy(kind)
            logger.info(f"{kind.value} backup waiting for the running backup to finish")

        async with self._lock:
            try:
                return await self._process_backup(kind, operator_id)
            except Exception as e:
                return self._unexpected("Backup", e)

    async def _process_backup(self, kind: InitiatorKind, operator_id: Optional[int]) -> BackupResult:
        started_at = self._clock()
        artifact_name = self._next_artifact_name(started_at)
        local_path = Path(self.config.temp_dir) / artifact_name

        attempt = BackupAttempt(
            timestamp=started_at,
            artifact_name=artifact_name,
            initiator_kind=kind,
            initiator_id=operator_id,
            succeeded=True,
        )
        logger.info(f"Starting {kind.value.lower()} backup: {artifact_name}")

        return await self._execute(
            attempt,
            local_path,
            steps=[
                lambda: self.snapshot_producer.create_snapshot(local_path),
                lambda: self.uploader.upload(local_path, artifact_name),
            ],
            success_message="Backup completed successfully.",
            failure_prefix="Backup failed",
        )

    async def _process_restore(self, artifact_name: str, operator_id: int) -> BackupResult:
        started_at = self._clock()
        local_path = Path(self.config.temp_dir) / f"restore_{artifact_stamp(started_at)}_{artifact_name}"

        attempt = BackupAttempt(
            timestamp=started_at,
            artifact_name=artifact_name,
            initiator_kind=InitiatorKind.RESTORE,
            initiator_id=operator_id,
            succeeded=True,
        )
        logger.info(f"Starting restore from {artifact_name}")

        return await self._execute(
            attempt,
            local_path,
            steps=[
                lambda: self.uploader.download(artifact_name, local_path),
                lambda: self.snapshot_producer.restore_snapshot(local_path),
            ],
            success_message="Database restored successfully.",
            failure_prefix="Restore failed",
        )

    async def _execute(
        self,
        attempt: BackupAttempt,
        local_path: Path,
        steps: List[Step],
        success_message: str,
        failure_prefix: str,
    ) -> BackupResult:
        """Run steps in order, stopping at the first failure; always finalize."""
        try:
            for step in steps:
                outcome = await step()
                if not outcome.succeeded:
                    attempt.mark_failed(outcome.detail)
                    logger.error(f"✗ {failure_prefix}: {outcome.detail}")
                    return BackupResult.failed(
                        outcome.error_kind or BackupErrorKind.UNEXPECTED_ERROR,
                        f"{failure_prefix}: {outcome.detail}",
                        errors=[outcome.detail],
                        attempt=attempt,
                    )

            attempt.succeeded = True
            logger.info(f"✓ {success_message} ({attempt.artifact_name})")
            return BackupResult.success(success_message, attempt)

        except asyncio.CancelledError:
            attempt.mark_failed("Run was cancelled before it completed")
            logger.warning(f"{attempt.initiator_kind.value} run {attempt.artifact_name} cancelled")
            raise
        except Exception as e:
            detail = str(e) or e.__class__.__name__
            attempt.mark_failed(detail)
            logger.exception(f"✗ {failure_prefix} unexpectedly: {detail}")
            return BackupResult.failed(
                BackupErrorKind.UNEXPECTED_ERROR,
                f"{failure_prefix}: {detail}",
                attempt=attempt,
            )
        finally:
            await self._finalize(attempt, local_path)

    async def _finalize(self, attempt: BackupAttempt, local_path: Path) -> None:
        """Record the attempt and delete the local file. Neither may change the result."""
        try:
            try:
                await asyncio.to_thread(self.recorder.record, attempt)
            except Exception as e:
                logger.error(f"Critical error saving backup history: {e}")
        finally:
            self._remove_local_file(local_path)

    @staticmethod
    def _remove_local_file(local_path: Path) -> None:
        try:
            local_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete temporary backup file {local_path}: {e}")

    def _next_artifact_name(self, started_at: datetime) -> str:
        """Timestamped name, with a counter suffix if runs start within the same second."""
        stamp = artifact_stamp(started_at)
        if stamp == self._last_stamp:
            self._sequence += 1
        else:
            self._last_stamp = stamp
            self._sequence = 0

        name = build_artifact_name(started_at, self.config.artifact_extension, self._sequence)
        while (Path(self.config.temp_dir) / name).exists():
            self._sequence += 1
            name = build_artifact_name(started_at, self.config.artifact_extension, self._sequence)
        return name

    @staticmethod
    def _busy(kind: InitiatorKind) -> BackupResult:
        logger.warning(f"{kind.value} request rejected: a backup is already in progress")
        return BackupResult.failed(
            BackupErrorKind.IN_PROGRESS,
            "A backup is already in progress. Try again when it has finished."
        )

    @staticmethod
    def _unexpected(label: str, error: Exception) -> BackupResult:
        logger.exception(f"{label} crashed: {error}")
        return BackupResult.failed(
            BackupErrorKind.UNEXPECTED_ERROR,
            f"An unexpected error occurred during {label.lower()}: {error}"
        )


@lru_cache()
def get_backup_orchestrator() -> BackupOrchestrator:
    """Process-wide orchestrator shared by the HTTP routes and the scheduler"""
    return BackupOrchestrator(get_backup_config())
