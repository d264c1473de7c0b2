from datetime import datetime, timedelta

import pytest

from src.shift_sync.shift_sync.core.constants import MAX_SYNC_ATTEMPTS
from src.shift_sync.shift_sync.core.enums import QueueStatus, SyncOperation
from src.shift_sync.shift_sync.sync.queue import (
    calculate_retry_delay,
    create_entry,
    is_due,
    mark_as_completed,
    mark_as_failed,
    mark_as_processing,
    reset_for_retry,
    should_retry,
    validate_entry,
)

NOW = datetime(2024, 1, 15, 9, 0, 0)


@pytest.mark.parametrize(
    "operation,data",
    [
        (SyncOperation.CREATE, {"id": "r1"}),
        (SyncOperation.UPDATE, {"id": "r1"}),
        (SyncOperation.DELETE, None),
        ("delete", {"id": "r1"}),
    ],
)
def test_valid_entries(operation, data):
    entry = create_entry(operation, "attendance_record", "r1", data, now=NOW)
    assert validate_entry(entry) == []
    assert entry.status == QueueStatus.PENDING
    assert entry.attempts == 0


def test_unknown_operation_is_reported():
    entry = create_entry("upsert", "attendance_record", "r1", {}, now=NOW)
    assert validate_entry(entry) == ["Invalid operation: upsert"]


def test_missing_fields_are_reported():
    entry = create_entry(SyncOperation.UPDATE, " ", "", None, now=NOW)
    errors = validate_entry(entry)
    assert "Entity type is required" in errors
    assert "Entity ID is required" in errors
    assert "Data is required for update operations" in errors


@pytest.mark.parametrize("attempts,expected", [(0, 1000), (1, 2000), (2, 4000), (3, 8000), (4, 16000)])
def test_retry_delay_doubles(attempts, expected):
    assert calculate_retry_delay(attempts) == expected


def test_failed_entry_retries_until_attempt_limit():
    entry = create_entry(SyncOperation.CREATE, "attendance_record", "r1", {}, now=NOW)
    assert should_retry(entry) is False

    for _ in range(MAX_SYNC_ATTEMPTS - 1):
        entry = mark_as_failed(entry, NOW)
        assert should_retry(entry)

    entry = mark_as_failed(entry, NOW)
    assert entry.attempts == MAX_SYNC_ATTEMPTS
    assert should_retry(entry) is False


def test_failed_entry_is_due_after_backoff():
    entry = create_entry(SyncOperation.CREATE, "attendance_record", "r1", {}, now=NOW)
    entry = mark_as_failed(mark_as_processing(entry, NOW), NOW, error="boom")

    assert entry.last_error == "boom"
    assert not is_due(entry, NOW + timedelta(milliseconds=999))
    assert is_due(entry, NOW + timedelta(seconds=1))

    entry = mark_as_failed(entry, NOW)
    assert not is_due(entry, NOW + timedelta(seconds=1))
    assert is_due(entry, NOW + timedelta(seconds=2))


def test_parked_conflict_is_never_due():
    entry = create_entry(SyncOperation.UPDATE, "attendance_record", "r1", {}, now=NOW)
    entry = mark_as_failed(entry, NOW, conflict_data={"conflict_id": "c1", "conflict_type": "data"})

    assert entry.conflict_id == "c1"
    assert not is_due(entry, NOW + timedelta(days=1))


def test_terminal_failure_exhausts_attempts():
    entry = create_entry(SyncOperation.CREATE, "attendance_record", "r1", {}, now=NOW)
    entry = mark_as_failed(entry, NOW, terminal=True)

    assert entry.attempts == MAX_SYNC_ATTEMPTS
    assert not should_retry(entry)

    revived = reset_for_retry(entry, NOW)
    assert revived.status == QueueStatus.PENDING
    assert revived.attempts == 0


def test_completion_clears_last_error():
    entry = mark_as_failed(create_entry(SyncOperation.CREATE, "t", "1", {}, now=NOW), NOW, error="x")
    done = mark_as_completed(entry, NOW)
    assert done.status == QueueStatus.COMPLETED
    assert done.last_error is None
