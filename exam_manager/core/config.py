"""
Backup and authentication configuration.

Both settings objects are read from the environment exactly once and then
passed explicitly to the components that need them.
"""
import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from exam_manager.constants import (
    DEFAULT_ADMIN_ROLE,
    DEFAULT_BACKUP_EXTENSION,
    DEFAULT_BACKUP_INTERVAL_HOURS,
    DEFAULT_DB_CONTAINER,
    DEFAULT_DB_HOST,
    DEFAULT_DB_NAME,
    DEFAULT_DB_PORT,
    DEFAULT_DB_USER,
    DEFAULT_DOCKER_PATH,
    DEFAULT_DRIVE_RETRY_DELAY_SECONDS,
    DEFAULT_DRIVE_UPLOAD_ATTEMPTS,
    DEFAULT_JWT_ALGORITHM,
    DEFAULT_SNAPSHOT_TIMEOUT_SECONDS,
    GOOGLE_TOKEN_URI,
)
from exam_manager.exceptions import ConfigurationException

ENV_PREFIX = "EXAM_MANAGER_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationException(ENV_PREFIX + name, f"expected an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationException(ENV_PREFIX + name, f"must be at least {minimum}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationException(ENV_PREFIX + name, f"expected a number, got {raw!r}")
    if value < 0:
        raise ConfigurationException(ENV_PREFIX + name, "must not be negative")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BackupConfig:
    """Settings for the dump utility, Google Drive and the automatic schedule."""

    # pg_dump / pg_restore. An empty container runs the tools directly against db_host.
    db_container: Optional[str] = DEFAULT_DB_CONTAINER
    db_host: str = DEFAULT_DB_HOST
    db_port: int = DEFAULT_DB_PORT
    db_name: str = DEFAULT_DB_NAME
    db_user: str = DEFAULT_DB_USER
    db_password: str = field(default="", repr=False)
    docker_path: str = DEFAULT_DOCKER_PATH
    temp_dir: str = field(default_factory=tempfile.gettempdir)
    artifact_extension: str = DEFAULT_BACKUP_EXTENSION
    snapshot_timeout_seconds: float = DEFAULT_SNAPSHOT_TIMEOUT_SECONDS

    # Google Drive (OAuth2 refresh-token credentials)
    drive_client_id: str = ""
    drive_client_secret: str = field(default="", repr=False)
    drive_refresh_token: str = field(default="", repr=False)
    drive_folder_id: str = ""
    drive_token_uri: str = GOOGLE_TOKEN_URI
    drive_upload_attempts: int = DEFAULT_DRIVE_UPLOAD_ATTEMPTS
    drive_retry_delay_seconds: float = DEFAULT_DRIVE_RETRY_DELAY_SECONDS

    # Automatic backups
    auto_backup_enabled: bool = True
    backup_interval_hours: float = DEFAULT_BACKUP_INTERVAL_HOURS

    @property
    def backup_interval(self) -> timedelta:
        return timedelta(hours=self.backup_interval_hours)

    @property
    def drive_configured(self) -> bool:
        return all((
            self.drive_client_id,
            self.drive_client_secret,
            self.drive_refresh_token,
            self.drive_folder_id,
        ))

    @classmethod
    def from_env(cls) -> "BackupConfig":
        """Build the configuration from EXAM_MANAGER_* environment variables."""
        interval_hours = _env_float("BACKUP_INTERVAL_HOURS", DEFAULT_BACKUP_INTERVAL_HOURS)
        if interval_hours == 0:
            raise ConfigurationException(ENV_PREFIX + "BACKUP_INTERVAL_HOURS", "must be greater than zero")

        return cls(
            # Set to an empty string to call pg_dump on the host instead of through docker.
            db_container=os.getenv(ENV_PREFIX + "DB_CONTAINER", DEFAULT_DB_CONTAINER).strip() or None,
            db_host=_env("DB_HOST", DEFAULT_DB_HOST),
            db_port=_env_int("DB_PORT", DEFAULT_DB_PORT, minimum=1),
            db_name=_env("DB_NAME", DEFAULT_DB_NAME),
            db_user=_env("DB_USER", DEFAULT_DB_USER),
            db_password=_env("DB_PASSWORD", ""),
            docker_path=_env("DOCKER_PATH", DEFAULT_DOCKER_PATH),
            temp_dir=_env("BACKUP_TEMP_DIR", tempfile.gettempdir()),
            artifact_extension=_env("BACKUP_EXTENSION", DEFAULT_BACKUP_EXTENSION).lstrip("."),
            snapshot_timeout_seconds=_env_float("SNAPSHOT_TIMEOUT_SECONDS", DEFAULT_SNAPSHOT_TIMEOUT_SECONDS),
            drive_client_id=_env("DRIVE_CLIENT_ID", ""),
            drive_client_secret=_env("DRIVE_CLIENT_SECRET", ""),
            drive_refresh_token=_env("DRIVE_REFRESH_TOKEN", ""),
            drive_folder_id=_env("DRIVE_FOLDER_ID", ""),
            drive_token_uri=_env("DRIVE_TOKEN_URI", GOOGLE_TOKEN_URI),
            drive_upload_attempts=_env_int("DRIVE_UPLOAD_ATTEMPTS", DEFAULT_DRIVE_UPLOAD_ATTEMPTS, minimum=1),
            drive_retry_delay_seconds=_env_float("DRIVE_RETRY_DELAY_SECONDS", DEFAULT_DRIVE_RETRY_DELAY_SECONDS),
            auto_backup_enabled=_env_bool("AUTO_BACKUP_ENABLED", True),
            backup_interval_hours=interval_hours,
        )


@dataclass(frozen=True)
class AuthConfig:
    """Settings for verifying operator tokens issued by the main application."""

    jwt_secret: str = field(repr=False)
    jwt_algorithm: str = DEFAULT_JWT_ALGORITHM
    admin_role: str = DEFAULT_ADMIN_ROLE

    @classmethod
    def from_env(cls) -> "AuthConfig":
        secret = _env("JWT_SECRET")
        if not secret:
            raise ConfigurationException(ENV_PREFIX + "JWT_SECRET", "is required")
        return cls(
            jwt_secret=secret,
            jwt_algorithm=_env("JWT_ALGORITHM", DEFAULT_JWT_ALGORITHM),
            admin_role=_env("ADMIN_ROLE", DEFAULT_ADMIN_ROLE),
        )


@lru_cache()
def get_backup_config() -> BackupConfig:
    return BackupConfig.from_env()


@lru_cache()
def get_auth_config() -> AuthConfig:
    return AuthConfig.from_env()
