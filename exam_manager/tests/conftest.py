"""
Pytest configuration and fixtures.
"""
import asyncio
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Set test environment before importing the app
os.environ["EXAM_MANAGER_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["EXAM_MANAGER_JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["EXAM_MANAGER_AUTO_BACKUP_ENABLED"] = "false"
os.environ["EXAM_MANAGER_LOG_DIR"] = os.path.join(tempfile.gettempdir(), "exam-manager-test-logs")

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from exam_manager.core.config import BackupConfig
from exam_manager.core.database import Base
from exam_manager.modules.backups.models import BackupHistory
from exam_manager.services.backup_service import BackupOrchestrator
from exam_manager.services.backup_types import BackupErrorKind, StepResult
from exam_manager.services.history_service import HistoryRecorder
from exam_manager.services.snapshot_service import SnapshotProducer

TEST_JWT_SECRET = os.environ["EXAM_MANAGER_JWT_SECRET"]
FIXED_NOW = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

# Use in-memory SQLite for testing
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeSnapshotProducer:
    """Stands in for pg_dump/pg_restore; records calls and concurrency"""

    def __init__(
        self,
        content: bytes = b"PGDMP fake dump",
        result: Optional[StepResult] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.content = content
        self.result = result
        self.gate = gate
        self.started = asyncio.Event()
        self.calls = []
        self.restored = []
        self.restore_result: Optional[StepResult] = None
        self.active = 0
        self.max_active = 0

    async def create_snapshot(self, output_path: Path) -> StepResult:
        self.calls.append(output_path)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            # Partial output exists before any failure, like a real dump
            output_path.write_bytes(self.content)
            self.started.set()
            if self.gate is not None:
                await self.gate.wait()
            return self.result or StepResult.ok("Snapshot created")
        finally:
            self.active -= 1

    async def restore_snapshot(self, input_path: Path) -> StepResult:
        self.restored.append(input_path.read_bytes())
        return self.restore_result or StepResult.ok("Database restored")


class FakeUploader:
    """Stands in for Google Drive; keeps what was uploaded"""

    def __init__(self, result: Optional[StepResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.uploads = []
        self.downloads = []
        self.download_result: Optional[StepResult] = None

    async def upload(self, local_path: Path, name: str) -> StepResult:
        if self.error is not None:
            raise self.error
        self.uploads.append((name, local_path.read_bytes()))
        return self.result or StepResult.ok("drive-file-id")

    async def download(self, name: str, local_path: Path) -> StepResult:
        self.downloads.append(name)
        if self.download_result is not None:
            return self.download_result
        local_path.write_bytes(b"PGDMP downloaded dump")
        return StepResult.ok("Downloaded")


def upload_failure(detail: str) -> StepResult:
    return StepResult.failed(BackupErrorKind.UPLOAD_FAILURE, detail)


def make_token(operator_id: int = 42, role: str = "Admin", secret: str = TEST_JWT_SECRET) -> str:
    return jwt.encode({"sub": str(operator_id), "role": role}, secret, algorithm="HS256")


def create_history(db, artifact_name: str, succeeded: bool = True, initiator_kind: str = "Manual",
                   initiator_id: Optional[int] = 1, timestamp: datetime = FIXED_NOW) -> BackupHistory:
    """Helper to insert a history row directly"""
    history = BackupHistory(
        timestamp=timestamp,
        artifact_name=artifact_name,
        initiator_kind=initiator_kind,
        initiator_id=initiator_id,
        succeeded=succeeded,
        error_detail=None if succeeded else "boom",
    )
    db.add(history)
    db.commit()
    db.refresh(history)
    return history


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def backup_config(tmp_path) -> BackupConfig:
    return BackupConfig(
        db_container=None,
        db_password="s3cret",
        temp_dir=str(tmp_path),
        snapshot_timeout_seconds=30,
        drive_client_id="client-id",
        drive_client_secret="client-secret",
        drive_refresh_token="refresh-token",
        drive_folder_id="folder-123",
        drive_upload_attempts=1,
        drive_retry_delay_seconds=0,
        auto_backup_enabled=False,
    )


@pytest.fixture
def recorder(db_session) -> HistoryRecorder:
    return HistoryRecorder(session_factory=TestingSessionLocal)


@pytest.fixture
def snapshot_producer() -> FakeSnapshotProducer:
    return FakeSnapshotProducer()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def orchestrator(backup_config, snapshot_producer, uploader, recorder) -> BackupOrchestrator:
    return BackupOrchestrator(
        backup_config,
        snapshot_producer=snapshot_producer,
        uploader=uploader,
        recorder=recorder,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def history_rows(db_session):
    """Callable returning every history row, oldest first"""
    def _rows():
        db_session.expire_all()
        return db_session.query(BackupHistory).order_by(BackupHistory.id).all()
    return _rows


class ScriptSnapshotProducer(SnapshotProducer):
    """Real SnapshotProducer that runs Python one-liners instead of pg_dump/pg_restore"""

    def __init__(self, config: BackupConfig, dump_script: str = "", restore_script: str = ""):
        super().__init__(config)
        self.dump_script = dump_script
        self.restore_script = restore_script

    def build_dump_command(self):
        return [sys.executable, "-c", self.dump_script]

    def build_restore_command(self):
        return [sys.executable, "-c", self.restore_script]
