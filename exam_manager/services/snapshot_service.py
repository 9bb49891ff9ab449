"""
Snapshot service: runs pg_dump / pg_restore as child processes.

Dumps are streamed straight from the child's stdout into the destination file,
stderr is buffered for diagnostics. The caller owns the file afterwards.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from exam_manager.core.config import BackupConfig
from exam_manager.services.backup_types import BackupErrorKind, StepResult

logger = logging.getLogger("exam_manager.snapshot")


class SnapshotProducer:
    """Creates and restores database snapshots with the PostgreSQL client tools"""

    def __init__(self, config: BackupConfig):
        self.config = config

    def _wrap(self, tool_args: List[str]) -> List[str]:
        """Run the tool inside the database container, or directly on the host."""
        if self.config.db_container:
            # "-e PGPASSWORD" without a value forwards it from our own environment
            return [
                self.config.docker_path, "exec", "-i", "-e", "PGPASSWORD",
                self.config.db_container, *tool_args,
            ]
        return [
            tool_args[0],
            "--host", self.config.db_host,
            "--port", str(self.config.db_port),
            *tool_args[1:],
        ]

    def build_dump_command(self) -> List[str]:
        return self._wrap(["pg_dump", "-U", self.config.db_user, "-F", "c", self.config.db_name])

    def build_restore_command(self) -> List[str]:
        return self._wrap([
            "pg_restore", "-U", self.config.db_user, "-d", self.config.db_name,
            "--clean", "--if-exists", "--no-owner",
        ])

    def _process_env(self) -> dict:
        env = dict(os.environ)
        env["PGPASSWORD"] = self.config.db_password
        return env

    async def create_snapshot(self, output_path: Path) -> StepResult:
        """
        Dump the database into output_path.

        Returns:
            StepResult with SNAPSHOT_FAILURE when the tool cannot be started,
            exits non-zero, times out or leaves an empty file.
        """
        command = self.build_dump_command()
        logger.info(f"Starting database dump into {output_path}")

        try:
            output_file = open(output_path, "wb")
        except OSError as e:
            return StepResult.failed(
                BackupErrorKind.SNAPSHOT_FAILURE,
                f"Could not create snapshot file {output_path}: {e}"
            )

        with output_file:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=output_file,
                    stderr=asyncio.subprocess.PIPE,
                    env=self._process_env(),
                )
            except OSError as e:
                return StepResult.failed(
                    BackupErrorKind.SNAPSHOT_FAILURE,
                    f"Could not start dump utility '{command[0]}': {e}"
                )

            failure, error = await self._wait(process, "Database dump")
            if failure:
                return failure

        if process.returncode != 0:
            logger.error(f"pg_dump exited with code {process.returncode}: {error}")
            return StepResult.failed(
                BackupErrorKind.SNAPSHOT_FAILURE,
                f"pg_dump failed with exit code {process.returncode}: {error}"
            )

        if not output_path.exists() or output_path.stat().st_size == 0:
            return StepResult.failed(
                BackupErrorKind.SNAPSHOT_FAILURE,
                "The backup file was not created or is empty."
            )

        size_bytes = output_path.stat().st_size
        logger.info(f"Database dump finished: {output_path.name} ({size_bytes} bytes)")
        return StepResult.ok(f"Snapshot created ({size_bytes} bytes)")

    async def restore_snapshot(self, input_path: Path) -> StepResult:
        """Feed a custom-format dump to pg_restore, replacing existing objects."""
        command = self.build_restore_command()
        logger.info(f"Restoring database from {input_path}")

        try:
            input_file = open(input_path, "rb")
        except OSError as e:
            return StepResult.failed(
                BackupErrorKind.RESTORE_FAILURE,
                f"Could not open snapshot file {input_path}: {e}"
            )

        with input_file:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=input_file,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                    env=self._process_env(),
                )
            except OSError as e:
                return StepResult.failed(
                    BackupErrorKind.RESTORE_FAILURE,
                    f"Could not start restore utility '{command[0]}': {e}"
                )

            failure, error = await self._wait(process, "Database restore", BackupErrorKind.RESTORE_FAILURE)
            if failure:
                return failure

        if process.returncode != 0:
            logger.error(f"pg_restore exited with code {process.returncode}: {error}")
            return StepResult.failed(
                BackupErrorKind.RESTORE_FAILURE,
                f"pg_restore failed with exit code {process.returncode}: {error}"
            )

        logger.info("Database restore finished")
        return StepResult.ok("Database restored")

    async def _wait(
        self,
        process: asyncio.subprocess.Process,
        label: str,
        error_kind: BackupErrorKind = BackupErrorKind.SNAPSHOT_FAILURE,
    ) -> Tuple[Optional[StepResult], str]:
        """
        Wait for the child to exit, killing it on timeout or cancellation.

        Returns:
            (failure, stderr text); failure is None when the child exited on its own
        """
        timeout = self.config.snapshot_timeout_seconds or None
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(process)
            logger.error(f"{label} timed out after {timeout} seconds")
            return StepResult.failed(error_kind, f"{label} timed out after {timeout} seconds"), ""
        except asyncio.CancelledError:
            logger.warning(f"{label} cancelled, killing child process {process.pid}")
            await self._kill(process)
            raise

        return None, (stderr or b"").decode("utf-8", errors="replace").strip()

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()
