"""
Value types shared by the backup components.

Every component reports external failures as a StepResult instead of raising,
and the orchestrator turns those into a single BackupResult for its caller.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from exam_manager.constants import ARTIFACT_PREFIX, ARTIFACT_TIMESTAMP_FORMAT


class InitiatorKind(str, Enum):
    MANUAL = "Manual"
    AUTOMATIC = "Automatic"
    RESTORE = "Restore"


class BackupErrorKind(str, Enum):
    SNAPSHOT_FAILURE = "SNAPSHOT_FAILURE"
    UPLOAD_FAILURE = "UPLOAD_FAILURE"
    DOWNLOAD_FAILURE = "DOWNLOAD_FAILURE"
    RESTORE_FAILURE = "RESTORE_FAILURE"
    IN_PROGRESS = "IN_PROGRESS"
    NOT_FOUND = "NOT_FOUND"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one step (snapshot, upload, download, restore)."""

    succeeded: bool
    detail: str = ""
    error_kind: Optional[BackupErrorKind] = None

    @classmethod
    def ok(cls, detail: str = "") -> "StepResult":
        return cls(succeeded=True, detail=detail)

    @classmethod
    def failed(cls, error_kind: BackupErrorKind, detail: str) -> "StepResult":
        return cls(succeeded=False, detail=detail, error_kind=error_kind)


@dataclass
class BackupAttempt:
    """In-memory audit entry for one orchestration run."""

    timestamp: datetime
    artifact_name: str
    initiator_kind: InitiatorKind
    initiator_id: Optional[int] = None
    succeeded: bool = True
    error_detail: Optional[str] = None
    id: Optional[int] = None

    def mark_failed(self, detail: str) -> None:
        self.succeeded = False
        self.error_detail = detail


@dataclass
class BackupResult:
    """What a manual, automatic or restore trigger returns."""

    succeeded: bool
    message: str
    error_kind: Optional[BackupErrorKind] = None
    errors: List[str] = field(default_factory=list)
    attempt: Optional[BackupAttempt] = None

    @classmethod
    def success(cls, message: str, attempt: Optional[BackupAttempt] = None) -> "BackupResult":
        return cls(succeeded=True, message=message, attempt=attempt)

    @classmethod
    def failed(
        cls,
        error_kind: BackupErrorKind,
        message: str,
        errors: Optional[List[str]] = None,
        attempt: Optional[BackupAttempt] = None,
    ) -> "BackupResult":
        return cls(
            succeeded=False,
            message=message,
            error_kind=error_kind,
            errors=errors if errors is not None else [message],
            attempt=attempt,
        )


_ARTIFACT_PATTERN = re.compile(
    r"^" + re.escape(ARTIFACT_PREFIX) + r"(?P<stamp>\d{8}_\d{6})(?:_(?P<seq>\d+))?\.(?P<ext>[A-Za-z0-9.]+)$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def artifact_stamp(moment: datetime) -> str:
    """yyyyMMdd_HHmmss in UTC; naive datetimes are taken to be UTC already."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(ARTIFACT_TIMESTAMP_FORMAT)


def build_artifact_name(moment: datetime, extension: str, sequence: int = 0) -> str:
    """
    Build a timestamp-qualified artifact name.

    Examples:
        2024-01-01T00:00:00Z, "custom"     -> backup_20240101_000000.custom
        2024-01-01T00:00:00Z, "custom", 2  -> backup_20240101_000000_2.custom
    """
    stamp = artifact_stamp(moment)
    suffix = f"_{sequence}" if sequence else ""
    return f"{ARTIFACT_PREFIX}{stamp}{suffix}.{extension.lstrip('.')}"


def parse_artifact_timestamp(name: str) -> Optional[datetime]:
    """Return the UTC timestamp embedded in an artifact name, or None if the name is foreign."""
    match = _ARTIFACT_PATTERN.match(name)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group("stamp"), ARTIFACT_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)
