"""
Tests for artifact naming helpers.
"""
from datetime import datetime, timedelta, timezone

import pytest

from exam_manager.services.backup_types import (
    BackupErrorKind,
    BackupResult,
    build_artifact_name,
    parse_artifact_timestamp,
)


class TestArtifactNames:

    def test_utc_name(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

        assert build_artifact_name(moment, "custom") == "backup_20240101_000000.custom"

    def test_sequence_suffix(self):
        moment = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)

        assert build_artifact_name(moment, ".custom", 2) == "backup_20240101_000000_2.custom"

    def test_other_timezone_converted_to_utc(self):
        moment = datetime(2024, 1, 1, 3, 0, 0, tzinfo=timezone(timedelta(hours=3)))

        assert build_artifact_name(moment, "custom") == "backup_20240101_000000.custom"

    def test_parse_timestamp(self):
        assert parse_artifact_timestamp("backup_20240315_134501_1.custom") == datetime(
            2024, 3, 15, 13, 45, 1, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize("name", [
        "notes.txt",
        "backup_2024_01.custom",
        "backup_20241340_000000.custom",
    ])
    def test_parse_foreign_names(self, name):
        assert parse_artifact_timestamp(name) is None


def test_failed_result_defaults_errors_to_message():
    result = BackupResult.failed(BackupErrorKind.UNEXPECTED_ERROR, "boom")

    assert result.errors == ["boom"]
    assert result.succeeded is False
