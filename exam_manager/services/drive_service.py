"""
Google Drive integration for backup artifacts.

Authenticates with a stored OAuth2 refresh token (no interactive consent) and
uploads/downloads files in the configured destination folder.
"""
import asyncio
import io
import logging
import socket
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

import httplib2
from google.auth.exceptions import GoogleAuthError, RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload

from exam_manager.constants import GOOGLE_DRIVE_SCOPES
from exam_manager.core.config import BackupConfig
from exam_manager.services.backup_types import BackupErrorKind, StepResult

logger = logging.getLogger("exam_manager.drive")

BACKUP_MIME_TYPE = "application/octet-stream"
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
NETWORK_ERRORS = (ConnectionError, TimeoutError, socket.timeout, socket.gaierror, httplib2.HttpLib2Error)

T = TypeVar("T")


class UploadIncompleteError(Exception):
    """Raised when Drive finishes the upload request without returning a file id"""


class DriveFileNotFoundError(Exception):
    """Raised when no file with the requested name exists in the backup folder"""
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"File: {name} not found in Google Drive.")


class TransferStoppedError(Exception):
    """Raised inside a worker thread when the awaiting run was cancelled"""


def _error_text(error: Exception) -> str:
    """Best human-readable message for a Drive/auth/network error."""
    if isinstance(error, HttpError):
        reason = getattr(error, "reason", None)
        status = getattr(error.resp, "status", "?")
        return f"Google Drive API error {status}: {reason or error}"
    if isinstance(error, RefreshError):
        return f"Google Drive authentication failed: {error}"
    return str(error) or error.__class__.__name__


def _is_transient(error: Exception) -> bool:
    if isinstance(error, HttpError):
        return getattr(error.resp, "status", None) in RETRYABLE_STATUS_CODES
    # Local file errors (missing or unreadable artifact) are OSErrors too, but never transient
    return isinstance(error, (TransportError, *NETWORK_ERRORS))


async def _run_stoppable(func: Callable[..., T], *args) -> T:
    """
    Run a blocking transfer in a worker thread.

    func receives a threading.Event as its last argument and must check it
    between chunks. If the awaiting task is cancelled the event is set and
    the thread is awaited before CancelledError propagates, so the caller
    never outlives its own transfer.
    """
    stop = threading.Event()
    transfer = asyncio.ensure_future(asyncio.to_thread(func, *args, stop))
    try:
        return await asyncio.shield(transfer)
    except asyncio.CancelledError:
        stop.set()
        logger.warning("Drive transfer cancelled, waiting for the worker thread to stop")
        while not transfer.done():
            try:
                await asyncio.wait({transfer})
            except asyncio.CancelledError:
                continue
        if not transfer.cancelled() and transfer.exception() is not None:
            logger.info(f"Drive transfer stopped: {_error_text(transfer.exception())}")
        raise


class DriveUploader:
    """Uploads and downloads backup files in a single Google Drive folder"""

    def __init__(self, config: BackupConfig):
        self.config = config

    def _build_credentials(self) -> Credentials:
        return Credentials(
            token=None,
            refresh_token=self.config.drive_refresh_token,
            token_uri=self.config.drive_token_uri,
            client_id=self.config.drive_client_id,
            client_secret=self.config.drive_client_secret,
            scopes=GOOGLE_DRIVE_SCOPES,
        )

    def _build_service(self):
        return build("drive", "v3", credentials=self._build_credentials(), cache_discovery=False)

    def _upload_file(self, local_path: Path, name: str, stop: threading.Event) -> str:
        """Blocking upload. Returns the Drive file id."""
        service = self._build_service()

        file_metadata = {
            "name": name,
            "parents": [self.config.drive_folder_id],
        }
        media = MediaFileUpload(
            str(local_path),
            mimetype=BACKUP_MIME_TYPE,
            chunksize=UPLOAD_CHUNK_SIZE,
            resumable=True,
        )
        request = service.files().create(body=file_metadata, media_body=media, fields="id, name")

        response = None
        while response is None:
            if stop.is_set():
                raise TransferStoppedError(f"Upload of {name} stopped")
            progress, response = request.next_chunk()
            if progress:
                logger.debug(f"Uploading {name}: {int(progress.progress() * 100)}%")

        file_id = response.get("id") if isinstance(response, dict) else None
        if not file_id:
            raise UploadIncompleteError(f"Upload of {name} did not complete")
        return file_id

    def _find_file_id(self, service, name: str) -> Optional[str]:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        response = service.files().list(
            q=f"name = '{escaped}' and '{self.config.drive_folder_id}' in parents and trashed = false",
            spaces="drive",
            fields="files(id, name)",
            pageSize=1,
        ).execute()
        files = response.get("files", [])
        return files[0]["id"] if files else None

    def _download_file(self, name: str, local_path: Path, stop: threading.Event) -> int:
        """Blocking download. Returns the number of bytes written."""
        service = self._build_service()
        file_id = self._find_file_id(service, name)
        if not file_id:
            raise DriveFileNotFoundError(name)

        request = service.files().get_media(fileId=file_id)
        with io.FileIO(str(local_path), "wb") as fh:
            downloader = MediaIoBaseDownload(fh, request, chunksize=UPLOAD_CHUNK_SIZE)
            done = False
            while not done:
                if stop.is_set():
                    raise TransferStoppedError(f"Download of {name} stopped")
                _, done = downloader.next_chunk()
        return local_path.stat().st_size

    async def upload(self, local_path: Path, name: str) -> StepResult:
        """
        Upload local_path to the backup folder as name.

        Transient failures (HTTP 429/5xx, network errors) are retried up to
        drive_upload_attempts times, each attempt being a full re-upload.
        Authentication failures and other rejections fail immediately.
        """
        if not self.config.drive_configured:
            return StepResult.failed(
                BackupErrorKind.UPLOAD_FAILURE,
                "Google Drive credentials are not configured"
            )

        attempts = max(1, self.config.drive_upload_attempts)
        attempt = 0
        while True:
            attempt += 1
            try:
                file_id = await _run_stoppable(self._upload_file, local_path, name)
            except (HttpError, GoogleAuthError, OSError, httplib2.HttpLib2Error, UploadIncompleteError) as e:
                detail = _error_text(e)
                if attempt < attempts and _is_transient(e):
                    delay = self.config.drive_retry_delay_seconds * attempt
                    logger.warning(
                        f"Upload of {name} failed (attempt {attempt}/{attempts}): {detail}; "
                        f"retrying in {delay:.0f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"✗ Google Drive upload failed: {detail}")
                return StepResult.failed(
                    BackupErrorKind.UPLOAD_FAILURE,
                    f"Failed to upload backup to Google Drive, {detail}"
                )

            logger.info(f"✓ Uploaded to Google Drive: {name} (file id {file_id})")
            return StepResult.ok(file_id)

    async def download(self, name: str, local_path: Path) -> StepResult:
        """Download the backup called name from the backup folder into local_path."""
        if not self.config.drive_configured:
            return StepResult.failed(
                BackupErrorKind.DOWNLOAD_FAILURE,
                "Google Drive credentials are not configured"
            )

        logger.info(f"Downloading {name} from Google Drive")
        try:
            size_bytes = await _run_stoppable(self._download_file, name, local_path)
        except DriveFileNotFoundError as e:
            logger.error(str(e))
            return StepResult.failed(BackupErrorKind.DOWNLOAD_FAILURE, str(e))
        except (HttpError, GoogleAuthError, OSError, httplib2.HttpLib2Error) as e:
            detail = _error_text(e)
            logger.error(f"✗ Google Drive download failed: {detail}")
            return StepResult.failed(
                BackupErrorKind.DOWNLOAD_FAILURE,
                f"Failed to download backup from Google Drive, {detail}"
            )

        logger.info(f"✓ Downloaded from Google Drive: {name} ({size_bytes} bytes)")
        return StepResult.ok(f"Downloaded {size_bytes} bytes")
