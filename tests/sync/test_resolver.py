import pytest

from src.shift_sync.shift_sync.auth.context import SYSTEM_ACTOR
from src.shift_sync.shift_sync.core.enums import (
    ConflictStatus,
    ConflictType,
    QueueStatus,
    RecordSyncStatus,
    Resolution,
    RuleStrategy,
)
from src.shift_sync.shift_sync.core.exceptions import AuthorizationError, SyncTransientError, ValidationError
from src.shift_sync.shift_sync.sync.handlers import ATTENDANCE_RECORD
from src.shift_sync.shift_sync.sync.model import ConflictRecord
from src.shift_sync.shift_sync.sync.resolver import pick_latest


@pytest.fixture
def conflicted_record(container, connectivity, clock, remote):
    """A closed shift whose notes were edited on the server while the kiosk was offline."""
    attendance = container.attendance_service
    record = attendance.clock_in("emp-1")
    connectivity.set_connected(False)
    clock.advance(hours=8)
    attendance.clock_out("emp-1", notes="Client note")
    remote.edit(ATTENDANCE_RECORD, record.id, notes="Remote update", updated_at="2024-01-15T12:00:00")
    connectivity.set_connected(True)
    return record


def _open_conflict(coordinator):
    coordinator.trigger()
    [conflict] = coordinator.conflicts()
    return conflict


def test_use_remote_overwrites_local_copy(conflicted_record, coordinator, attendance_repo, remote, manager):
    conflict = _open_conflict(coordinator)

    coordinator.resolve_conflict(conflict.id, Resolution.USE_REMOTE, actor=manager)

    local = attendance_repo.get_by_id(conflicted_record.id)
    assert local.notes == "Remote update"
    assert local.sync_status == RecordSyncStatus.SYNCED
    assert remote.store[(ATTENDANCE_RECORD, conflicted_record.id)]["notes"] == "Remote update"


def test_use_remote_is_allowed_offline(conflicted_record, coordinator, connectivity, manager):
    conflict = _open_conflict(coordinator)
    connectivity.set_connected(False)

    with pytest.raises(SyncTransientError):
        coordinator.resolve_conflict(conflict.id, "use_local", actor=manager)

    closed = coordinator.resolve_conflict(conflict.id, "use_remote", actor=manager)
    assert closed.status == ConflictStatus.RESOLVED


def test_merge_writes_both_sides(conflicted_record, coordinator, attendance_repo, remote, manager):
    conflict = _open_conflict(coordinator)
    merged = dict(conflict.local_data, notes="Client note\nRemote update")

    coordinator.resolve_conflict(conflict.id, "merge", actor=manager, merged_data=merged)

    assert attendance_repo.get_by_id(conflicted_record.id).notes == "Client note\nRemote update"
    assert remote.store[(ATTENDANCE_RECORD, conflicted_record.id)]["notes"] == "Client note\nRemote update"


def test_merge_needs_valid_data(conflicted_record, coordinator, manager):
    conflict = _open_conflict(coordinator)

    with pytest.raises(ValidationError):
        coordinator.resolve_conflict(conflict.id, "merge", actor=manager)
    with pytest.raises(ValidationError):
        coordinator.resolve_conflict(conflict.id, "merge", actor=manager, merged_data={"notes": "x"})

    assert coordinator.conflicts()[0].is_open


def test_ignore_leaves_data_untouched(conflicted_record, coordinator, attendance_repo, remote, queue_repo, manager):
    conflict = _open_conflict(coordinator)

    closed = coordinator.resolve_conflict(conflict.id, "ignore", actor=manager, reason="Not worth it")

    assert closed.status == ConflictStatus.IGNORED
    assert attendance_repo.get_by_id(conflicted_record.id).sync_status == RecordSyncStatus.CONFLICT
    assert remote.store[(ATTENDANCE_RECORD, conflicted_record.id)]["notes"] == "Remote update"
    assert queue_repo.get(conflict.queue_entry_id).status == QueueStatus.COMPLETED
    [audit] = coordinator.resolution_history()
    assert audit.resolution == Resolution.IGNORE
    assert audit.reason == "Not worth it"


def test_resolution_rules(conflicted_record, coordinator, employee, manager):
    conflict = _open_conflict(coordinator)

    with pytest.raises(AuthorizationError):
        coordinator.resolve_conflict(conflict.id, "use_local", actor=employee)
    with pytest.raises(ValidationError):
        coordinator.resolve_conflict(conflict.id, "flip_a_coin", actor=manager)

    coordinator.resolve_conflict(conflict.id, "use_local", actor=manager)
    with pytest.raises(ValidationError):
        coordinator.resolve_conflict(conflict.id, "use_remote", actor=manager)


def test_first_matching_rule_by_priority_wins(conflicted_record, coordinator, remote, manager):
    coordinator.create_rule(
        actor=manager, entity_type="*", conflict_type="timestamp", strategy="use_local", priority=50
    )
    coordinator.create_rule(
        actor=manager, entity_type=ATTENDANCE_RECORD, conflict_type="timestamp", strategy="use_remote", priority=10
    )

    result = coordinator.trigger(auto_resolve=True)

    assert (result.succeeded, result.conflicts) == (1, 1)
    [closed] = coordinator.conflicts(status=ConflictStatus.RESOLVED)
    assert closed.resolution == Resolution.USE_REMOTE
    assert closed.resolved_by == SYSTEM_ACTOR
    assert coordinator.status().open_conflicts == 0


def test_use_latest_rule_picks_newer_side(conflicted_record, coordinator, remote, manager):
    coordinator.create_rule(actor=manager, entity_type="*", conflict_type="timestamp", strategy="use_latest")

    coordinator.trigger(auto_resolve=True)

    # Local clock-out at 17:00 is newer than the 12:00 server edit.
    assert remote.store[(ATTENDANCE_RECORD, conflicted_record.id)]["notes"] == "Client note"


def test_field_pattern_must_match_a_conflicting_field(conflicted_record, coordinator, manager):
    coordinator.create_rule(
        actor=manager, entity_type="*", conflict_type="timestamp", strategy="use_remote", field_pattern="^employee"
    )

    result = coordinator.trigger(auto_resolve=True)

    assert result.succeeded == 0
    assert coordinator.conflicts()[0].is_open


def test_rules_only_apply_when_enabled(conflicted_record, coordinator, manager):
    coordinator.create_rule(actor=manager, entity_type="*", conflict_type="timestamp", strategy="use_remote")

    coordinator.trigger()

    assert len(coordinator.conflicts()) == 1


def test_rule_validation(coordinator, employee, manager):
    with pytest.raises(AuthorizationError):
        coordinator.create_rule(actor=employee, entity_type="*", conflict_type="data", strategy="use_local")
    with pytest.raises(ValidationError):
        coordinator.create_rule(actor=manager, entity_type="payroll", conflict_type="data", strategy="use_local")
    with pytest.raises(ValidationError):
        coordinator.create_rule(
            actor=manager, entity_type="*", conflict_type="data", strategy="use_local", field_pattern="("
        )

    rule = coordinator.create_rule(actor=manager, entity_type="*", conflict_type="data", strategy="use_latest")
    assert rule.strategy == RuleStrategy.USE_LATEST
    assert coordinator.rules() == [rule]


def _conflict(local_at, remote_at):
    return ConflictRecord(
        id="c1",
        queue_entry_id="q1",
        entity_type=ATTENDANCE_RECORD,
        entity_id="r1",
        local_data={"updated_at": local_at},
        remote_data={"updated_at": remote_at},
        conflict_type=ConflictType.TIMESTAMP,
    )


@pytest.mark.parametrize(
    "local_at,remote_at,expected",
    [
        ("2024-01-15T10:00:00", "2024-01-15T09:00:00", Resolution.USE_LOCAL),
        ("2024-01-15T09:00:00", "2024-01-15T10:00:00", Resolution.USE_REMOTE),
        ("2024-01-15T09:00:00", "2024-01-15T09:00:00", Resolution.USE_REMOTE),
        (None, "2024-01-15T09:00:00", Resolution.USE_REMOTE),
        ("2024-01-15T09:00:00", None, Resolution.USE_LOCAL),
        ("2024-01-15T09:00:00", "yesterday", Resolution.USE_LOCAL),
        ("15/01/2024", "2024-01-15T09:00:00", Resolution.USE_REMOTE),
    ],
)
def test_pick_latest(local_at, remote_at, expected):
    assert pick_latest(_conflict(local_at, remote_at)) == expected


def test_use_latest_rule_survives_an_unreadable_remote_stamp(conflicted_record, coordinator, remote, manager):
    remote.edit(ATTENDANCE_RECORD, conflicted_record.id, updated_at="soon")
    coordinator.create_rule(actor=manager, entity_type="*", conflict_type="data", strategy="use_latest")

    result = coordinator.trigger(auto_resolve=True)

    assert (result.succeeded, result.conflicts) == (1, 1)
    [closed] = coordinator.conflicts(status=ConflictStatus.RESOLVED)
    assert closed.resolution == Resolution.USE_LOCAL
    assert coordinator.conflicts() == []
    assert remote.store[(ATTENDANCE_RECORD, conflicted_record.id)]["notes"] == "Client note"
