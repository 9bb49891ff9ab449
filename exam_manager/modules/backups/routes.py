"""
Backup HTTP routes.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from exam_manager.core.config import BackupConfig, get_backup_config
from exam_manager.core.database import get_db
from exam_manager.core.security import Operator, get_current_operator, require_admin
from exam_manager.repositories.backup_history_repository import BackupHistoryRepository
from exam_manager.services.backup_service import BackupOrchestrator, get_backup_orchestrator
from exam_manager.services.backup_types import BackupErrorKind, BackupResult
from exam_manager.services.scheduler_service import AutomaticBackupScheduler, get_backup_scheduler
from .schemas import BackupErrorResponse, BackupHistoryResponse, BackupRunResponse, BackupStatusResponse

logger = logging.getLogger("exam_manager.api.backups")

router = APIRouter(prefix="/api/backups", tags=["backups"])

ERROR_STATUS_CODES = {
    BackupErrorKind.IN_PROGRESS: 409,
    BackupErrorKind.NOT_FOUND: 404,
}


def _to_response(result: BackupResult):
    """200 with the run summary, or an error status with message and details."""
    if result.succeeded:
        attempt = result.attempt
        return BackupRunResponse(
            succeeded=True,
            message=result.message,
            artifact_name=attempt.artifact_name if attempt else None,
            initiator_kind=attempt.initiator_kind.value if attempt else None,
            initiator_id=attempt.initiator_id if attempt else None,
            timestamp=attempt.timestamp if attempt else None,
        )

    status_code = ERROR_STATUS_CODES.get(result.error_kind, 500)
    if status_code == 500:
        logger.error(f"Backup request failed: {', '.join(result.errors)}")
    body = BackupErrorResponse(
        message=result.message or "An unexpected error occurred during backup.",
        error_kind=result.error_kind.value if result.error_kind else None,
        details=result.errors,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post("/manual", response_model=BackupRunResponse)
async def perform_manual_backup(
    operator: Operator = Depends(require_admin),
    orchestrator: BackupOrchestrator = Depends(get_backup_orchestrator),
):
    """Create a backup now and upload it to Google Drive"""
    result = await orchestrator.perform_manual_backup(operator.id)
    return _to_response(result)


@router.post("/{backup_id}/restore", response_model=BackupRunResponse)
async def restore_backup(
    backup_id: int,
    operator: Operator = Depends(require_admin),
    orchestrator: BackupOrchestrator = Depends(get_backup_orchestrator),
):
    """Restore the database from a previously uploaded backup"""
    if backup_id <= 0:
        raise HTTPException(status_code=400, detail="Invalid backup ID.")
    result = await orchestrator.restore_backup(backup_id, operator.id)
    return _to_response(result)


@router.get("/history", response_model=List[BackupHistoryResponse])
def get_backup_history(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    _: Operator = Depends(get_current_operator),
):
    """Get backup history (newest first)"""
    return BackupHistoryRepository.get_all(db, limit)


@router.get("/history/{backup_id}", response_model=BackupHistoryResponse)
def get_backup_record(
    backup_id: int,
    db: Session = Depends(get_db),
    _: Operator = Depends(get_current_operator),
):
    """Get a single backup history record"""
    record = BackupHistoryRepository.get_by_id(db, backup_id)
    if not record:
        raise HTTPException(status_code=404, detail="Backup record not found")
    return record


@router.get("/status", response_model=BackupStatusResponse)
def get_backup_status(
    orchestrator: BackupOrchestrator = Depends(get_backup_orchestrator),
    scheduler: AutomaticBackupScheduler = Depends(get_backup_scheduler),
    config: BackupConfig = Depends(get_backup_config),
    _: Operator = Depends(get_current_operator),
):
    """Whether a backup is running and when the next automatic one is due"""
    return BackupStatusResponse(
        in_progress=orchestrator.in_progress,
        automatic_backups_enabled=config.auto_backup_enabled,
        next_automatic_run=scheduler.next_run_time,
    )
