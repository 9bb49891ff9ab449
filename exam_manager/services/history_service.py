"""
Backup history service.
Appends one audit record per backup/restore run and looks records up for restores.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from exam_manager.core.database import SessionLocal
from exam_manager.modules.backups.models import BackupHistory
from exam_manager.repositories.backup_history_repository import BackupHistoryRepository
from exam_manager.services.backup_types import BackupAttempt

logger = logging.getLogger("exam_manager.history")


class HistoryRecorder:
    """Writes BackupAttempt values to the backup_history table"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self.repo = BackupHistoryRepository()

    def record(self, attempt: BackupAttempt) -> Optional[BackupHistory]:
        """
        Persist one attempt.

        A failed write is logged and swallowed: losing an audit entry must never
        change the outcome reported for the backup itself.

        Returns:
            The stored row, or None if the write failed
        """
        db = None
        try:
            db = self.session_factory()
            history = BackupHistory(
                timestamp=attempt.timestamp,
                artifact_name=attempt.artifact_name,
                initiator_kind=attempt.initiator_kind.value,
                initiator_id=attempt.initiator_id,
                succeeded=attempt.succeeded,
                error_detail=None if attempt.succeeded else attempt.error_detail,
            )
            history = self.repo.create(db, history)
            attempt.id = history.id
            logger.info(
                f"Recorded {attempt.initiator_kind.value} attempt {attempt.artifact_name} "
                f"(id={history.id}, succeeded={attempt.succeeded})"
            )
            return history
        except Exception as e:
            logger.error(f"Critical error saving backup history for {attempt.artifact_name}: {e}")
            if db is not None:
                db.rollback()
            return None
        finally:
            if db is not None:
                db.close()

    def get(self, history_id: int) -> Optional[BackupHistory]:
        """Get a single history entry by ID"""
        db = self.session_factory()
        try:
            return self.repo.get_by_id(db, history_id)
        finally:
            db.close()
