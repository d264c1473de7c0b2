from datetime import datetime

from src.shift_sync.shift_sync.core.enums import ConflictType
from src.shift_sync.shift_sync.sync.detector import detect_conflict, diff_fields

LAST_SYNC = datetime(2024, 1, 15, 9, 0, 0)


def _record(**overrides):
    data = {
        "id": "r1",
        "employee_id": "emp-1",
        "clock_in_time": "2024-01-15T09:00:00",
        "clock_out_time": "2024-01-15T17:00:00",
        "total_hours": 8.0,
        "notes": None,
        "updated_at": "2024-01-15T08:00:00",
    }
    data.update(overrides)
    return data


def test_identical_payloads_do_not_conflict():
    assert detect_conflict(_record(), _record(), LAST_SYNC).has_conflict is False


def test_both_missing_is_not_a_conflict():
    assert detect_conflict(None, None).has_conflict is False


def test_one_side_missing_is_a_deletion_conflict():
    result = detect_conflict(_record(), None, LAST_SYNC)
    assert result.has_conflict
    assert result.conflict_type == ConflictType.DELETION

    assert detect_conflict(None, _record()).conflict_type == ConflictType.DELETION


def test_differences_without_sync_baseline_are_timestamp_conflicts():
    result = detect_conflict(_record(notes="client"), _record(notes="server"), None)
    assert result.conflict_type == ConflictType.TIMESTAMP
    assert result.conflict_fields == ["notes"]


def test_unreadable_stamp_counts_as_unchanged():
    local = _record(notes="client", updated_at="2024-01-15T10:00:00")
    remote = _record(notes="server", updated_at="half past ten")
    assert detect_conflict(local, remote, LAST_SYNC).conflict_type == ConflictType.DATA


def test_both_sides_changed_since_last_sync_is_timestamp_conflict():
    local = _record(notes="client", updated_at="2024-01-15T10:00:00")
    remote = _record(notes="server", updated_at="2024-01-15T11:00:00")
    assert detect_conflict(local, remote, LAST_SYNC).conflict_type == ConflictType.TIMESTAMP


def test_one_side_changed_since_last_sync_is_data_conflict():
    local = _record(notes="client", updated_at="2024-01-15T10:00:00")
    remote = _record(notes="Remote update")
    result = detect_conflict(local, remote, LAST_SYNC)
    assert result.conflict_type == ConflictType.DATA
    assert result.conflict_fields == ["notes"]


def test_metadata_only_differences_are_ignored():
    local = _record(updated_at="2024-01-15T10:00:00", created_at="a")
    remote = _record(updated_at="2024-01-15T11:00:00", created_at="b")
    assert detect_conflict(local, remote, LAST_SYNC).has_conflict is False


def test_integer_and_float_hours_compare_equal():
    assert diff_fields({"total_hours": 8}, {"total_hours": 8.0}) == []
    assert diff_fields({"a": 1, "b": True}, {"a": 1, "b": 1}) == ["b"]
