"""
Backup history repository - Data access layer for BackupHistory model.
History is append-only: there are no update or delete operations.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from exam_manager.modules.backups.models import BackupHistory


class BackupHistoryRepository:
    """Repository for BackupHistory data access"""

    @staticmethod
    def create(db: Session, history: BackupHistory) -> BackupHistory:
        """Insert a new history entry"""
        db.add(history)
        db.commit()
        db.refresh(history)
        return history

    @staticmethod
    def get_by_id(db: Session, history_id: int) -> Optional[BackupHistory]:
        """Get history entry by ID"""
        return db.query(BackupHistory).filter(BackupHistory.id == history_id).first()

    @staticmethod
    def get_all(db: Session, limit: int = 50) -> List[BackupHistory]:
        """Get history entries ordered by start time (newest first)"""
        return db.query(BackupHistory).order_by(
            BackupHistory.timestamp.desc(), BackupHistory.id.desc()
        ).limit(limit).all()
