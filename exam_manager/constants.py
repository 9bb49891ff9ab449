"""
Application-wide constants and defaults.
"""
import os

# Logging
DEFAULT_LOG_DIRECTORY_PROD = "/var/log/exam-manager"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

# CORS
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "EXAM_MANAGER_CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
    ).split(",")
    if origin.strip()
]

# Database dump defaults
DEFAULT_DOCKER_PATH = "/usr/local/bin/docker"
DEFAULT_DB_CONTAINER = "postgresql"
DEFAULT_DB_HOST = "localhost"
DEFAULT_DB_PORT = 5432
DEFAULT_DB_NAME = "examdb"
DEFAULT_DB_USER = "adminuser"
DEFAULT_BACKUP_EXTENSION = "custom"
DEFAULT_SNAPSHOT_TIMEOUT_SECONDS = 1800

# Google Drive
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
DEFAULT_DRIVE_UPLOAD_ATTEMPTS = 3
DEFAULT_DRIVE_RETRY_DELAY_SECONDS = 5.0

# Scheduling
DEFAULT_BACKUP_INTERVAL_HOURS = 24.0

# Authentication
DEFAULT_JWT_ALGORITHM = "HS256"
DEFAULT_ADMIN_ROLE = "Admin"

# Artifact naming: backup_<yyyyMMdd_HHmmss>.<ext>
ARTIFACT_PREFIX = "backup_"
ARTIFACT_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
