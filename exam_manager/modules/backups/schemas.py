"""
Backup API schemas.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class BackupHistoryResponse(BaseModel):
    id: int
    timestamp: datetime
    artifact_name: str
    initiator_kind: str
    initiator_id: Optional[int] = None
    succeeded: bool
    error_detail: Optional[str] = None

    class Config:
        from_attributes = True


class BackupRunResponse(BaseModel):
    succeeded: bool
    message: str
    artifact_name: Optional[str] = None
    initiator_kind: Optional[str] = None
    initiator_id: Optional[int] = None
    timestamp: Optional[datetime] = None


class BackupErrorResponse(BaseModel):
    message: str
    error_kind: Optional[str] = None
    details: List[str] = []


class BackupStatusResponse(BaseModel):
    in_progress: bool
    automatic_backups_enabled: bool
    next_automatic_run: Optional[datetime] = None
