"""
Backup history database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text

from exam_manager.core.database import Base


class BackupHistory(Base):
    __tablename__ = "backup_history"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)  # UTC start of the run
    artifact_name = Column(String, nullable=False)  # e.g., "backup_20240101_000000.custom"

    # "Manual", "Automatic" or "Restore"
    initiator_kind = Column(String, nullable=False)
    initiator_id = Column(Integer, nullable=True)  # Operator ID, empty for automatic runs

    # Outcome
    succeeded = Column(Boolean, nullable=False, default=False)
    error_detail = Column(Text, nullable=True)
