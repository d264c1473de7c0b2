from __future__ import annotations

import copy
import itertools
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from src.shift_sync.shift_sync.attendance.model import AttendanceRecord, TimeAdjustment
from src.shift_sync.shift_sync.auth.context import AuthContext
from src.shift_sync.shift_sync.common.clock import FixedClock
from src.shift_sync.shift_sync.container import assemble
from src.shift_sync.shift_sync.core.enums import ConflictStatus, QueueStatus, RecordSyncStatus, Role, SyncOperation
from src.shift_sync.shift_sync.core.exceptions import SyncPermanentError, SyncTransientError
from src.shift_sync.shift_sync.employees.model import Employee
from src.shift_sync.shift_sync.sync.connectivity import StaticConnectivity
from src.shift_sync.shift_sync.time_categories.model import TimeCategory


class InMemoryAttendance:
    def __init__(self):
        self.records: Dict[str, AttendanceRecord] = {}
        self.adjustments: List[TimeAdjustment] = []

    def get_by_id(self, record_id: str) -> Optional[AttendanceRecord]:
        return self.records.get(record_id)

    def get_open_for_employee(self, employee_id: str) -> Optional[AttendanceRecord]:
        open_records = [r for r in self.records.values() if r.employee_id == employee_id and r.is_open]
        open_records.sort(key=lambda r: r.clock_in_time, reverse=True)
        return open_records[0] if open_records else None

    def list_for_employee(self, employee_id, *, start=None, end=None, include_incomplete=True):
        items = [r for r in self.records.values() if r.employee_id == employee_id]
        if start is not None:
            items = [r for r in items if r.clock_in_time >= start]
        if end is not None:
            items = [r for r in items if r.clock_in_time <= end]
        if not include_incomplete:
            items = [r for r in items if not r.is_open]
        return sorted(items, key=lambda r: r.clock_in_time, reverse=True)

    def create(self, record: AttendanceRecord) -> None:
        self.records[record.id] = record

    def update(self, record: AttendanceRecord) -> None:
        self.records[record.id] = record

    def update_with_adjustments(self, record, adjustments) -> None:
        self.records[record.id] = record
        self.adjustments.extend(adjustments)

    def set_sync_status(self, record_id: str, status: RecordSyncStatus) -> bool:
        record = self.records.get(record_id)
        if not record:
            return False
        self.records[record_id] = record.with_changes(sync_status=status)
        return True

    def list_adjustments(self, record_id: str):
        items = [a for a in self.adjustments if a.record_id == record_id]
        return sorted(items, key=lambda a: a.timestamp, reverse=True)


class InMemoryCategories:
    def __init__(self):
        self.categories: Dict[str, TimeCategory] = {}

    def get_by_id(self, category_id):
        return self.categories.get(category_id)

    def get_by_name(self, name):
        for c in self.categories.values():
            if c.name.lower() == name.strip().lower():
                return c
        return None

    def list_all(self, *, active_only=False):
        items = [c for c in self.categories.values() if c.is_active or not active_only]
        return sorted(items, key=lambda c: c.min_hours)

    def save(self, category):
        self.categories[category.id] = category


class InMemoryEmployees:
    def __init__(self):
        self.employees: Dict[str, Employee] = {}

    def get_by_id(self, employee_id):
        return self.employees.get(employee_id)

    def get_by_number(self, employee_number):
        for e in self.employees.values():
            if e.employee_number == employee_number:
                return e
        return None

    def list_all(self, *, active_only=False):
        return [e for e in self.employees.values() if e.is_active or not active_only]

    def save(self, employee):
        self.employees[employee.id] = employee


class InMemoryQueue:
    def __init__(self):
        self.entries: Dict[str, object] = {}
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count()

    def add(self, entry):
        self.entries[entry.id] = entry
        self._seq[entry.id] = next(self._counter)

    def update(self, entry):
        self.entries[entry.id] = entry

    def get(self, entry_id):
        return self.entries.get(entry_id)

    def _ordered(self):
        return sorted(self.entries.values(), key=lambda e: (e.created_at, self._seq[e.id]))

    def list_unfinished(self):
        return [e for e in self._ordered() if e.status != QueueStatus.COMPLETED]

    def list_by_status(self, status):
        return [e for e in self._ordered() if e.status == status]

    def count_by_status(self):
        counts = {s: 0 for s in QueueStatus}
        for e in self.entries.values():
            counts[e.status] += 1
        return counts

    def has_unfinished(self, entity_type, entity_id):
        return any(
            e.entity_type == entity_type and e.entity_id == entity_id and e.status != QueueStatus.COMPLETED
            for e in self.entries.values()
        )

    def reset_processing(self, now):
        count = 0
        for e in list(self.entries.values()):
            if e.status == QueueStatus.PROCESSING:
                self.entries[e.id] = e.with_changes(status=QueueStatus.PENDING, updated_at=now)
                count += 1
        return count

    def delete_completed_before(self, cutoff):
        doomed = [e.id for e in self.entries.values() if e.status == QueueStatus.COMPLETED and e.updated_at < cutoff]
        for entry_id in doomed:
            del self.entries[entry_id]
        return len(doomed)


class InMemoryConflicts:
    def __init__(self):
        self.conflicts: Dict[str, object] = {}
        self.audit: List[object] = []

    def add(self, conflict):
        self.conflicts[conflict.id] = conflict

    def update(self, conflict):
        self.conflicts[conflict.id] = conflict

    def get(self, conflict_id):
        return self.conflicts.get(conflict_id)

    def list(self, *, status: Optional[ConflictStatus] = None):
        return [c for c in self.conflicts.values() if status is None or c.status == status]

    def add_audit(self, entry):
        self.audit.append(entry)

    def list_audit(self, *, limit=50):
        return list(reversed(self.audit))[:limit]


class InMemoryRules:
    def __init__(self):
        self.rules: List[object] = []

    def add(self, rule):
        self.rules.append(rule)

    def list_active(self):
        return sorted((r for r in self.rules if r.is_active), key=lambda r: r.priority)


class InMemoryRuns:
    def __init__(self):
        self.runs: List[object] = []
        self.last_sync_at: Optional[datetime] = None

    def add(self, run):
        self.runs.append(run)

    def list_recent(self, *, limit=20):
        return list(reversed(self.runs))[:limit]

    def get_last_sync_at(self):
        return self.last_sync_at

    def set_last_sync_at(self, value):
        self.last_sync_at = value


class FakeRemote:
    """Authoritative copy kept in a dict, with switchable failures."""

    def __init__(self):
        self.store: Dict[tuple, dict] = {}
        self.applied: List[tuple] = []
        self._failures: List[Exception] = []

    def fail_next(self, count: int = 1, *, permanent: bool = False) -> None:
        exc_type = SyncPermanentError if permanent else SyncTransientError
        self._failures.extend(exc_type("forced failure") for _ in range(count))

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.pop(0)

    def fetch(self, entity_type, entity_id):
        data = self.store.get((entity_type, entity_id))
        return copy.deepcopy(data) if data is not None else None

    def apply(self, operation, entity_type, entity_id, data):
        self._maybe_fail()
        self.applied.append((operation, entity_type, entity_id))
        if operation == SyncOperation.DELETE:
            self.store.pop((entity_type, entity_id), None)
            return None
        self.store[(entity_type, entity_id)] = copy.deepcopy(data)
        return copy.deepcopy(data)

    def edit(self, entity_type, entity_id, **changes) -> None:
        """Change the remote copy behind the client's back."""
        self.store[(entity_type, entity_id)].update(changes)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 15, 9, 0, 0))


@pytest.fixture
def connectivity():
    return StaticConnectivity(True)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def attendance_repo():
    return InMemoryAttendance()


@pytest.fixture
def category_repo():
    return InMemoryCategories()


@pytest.fixture
def employee_repo():
    repo = InMemoryEmployees()
    for emp_id, number, role in (
        ("emp-1", "E001", Role.EMPLOYEE),
        ("emp-2", "E002", Role.EMPLOYEE),
        ("mgr-1", "M001", Role.MANAGER),
        ("adm-1", "A001", Role.ADMIN),
    ):
        repo.save(Employee(id=emp_id, employee_number=number, first_name="Test", last_name=number, role=role))
    return repo


@pytest.fixture
def queue_repo():
    return InMemoryQueue()


@pytest.fixture
def conflict_repo():
    return InMemoryConflicts()


@pytest.fixture
def rule_repo():
    return InMemoryRules()


@pytest.fixture
def run_repo():
    return InMemoryRuns()


@pytest.fixture
def container(
    clock,
    connectivity,
    remote,
    attendance_repo,
    category_repo,
    employee_repo,
    queue_repo,
    conflict_repo,
    rule_repo,
    run_repo,
):
    return assemble(
        attendance_repo=attendance_repo,
        category_repo=category_repo,
        employee_repo=employee_repo,
        clock=clock,
        queue_repo=queue_repo,
        conflict_repo=conflict_repo,
        rule_repo=rule_repo,
        run_repo=run_repo,
        remote=remote,
        connectivity=connectivity,
    )


@pytest.fixture
def coordinator(container):
    return container.coordinator


@pytest.fixture
def standard_categories(category_repo):
    """Quarter [0,4], Half [4,8], Full [8,+inf)."""
    items = [
        TimeCategory(id="cat-quarter", name="Quarter", min_hours=0, max_hours=4),
        TimeCategory(id="cat-half", name="Half", min_hours=4, max_hours=8),
        TimeCategory(id="cat-full", name="Full", min_hours=8, max_hours=None, pay_multiplier=1.5),
    ]
    for c in items:
        category_repo.save(c)
    return items


@pytest.fixture
def employee():
    return AuthContext(employee_id="emp-1", role=Role.EMPLOYEE)


@pytest.fixture
def other_employee():
    return AuthContext(employee_id="emp-2", role=Role.EMPLOYEE)


@pytest.fixture
def manager():
    return AuthContext(employee_id="mgr-1", role=Role.MANAGER)


@pytest.fixture
def admin():
    return AuthContext(employee_id="adm-1", role=Role.ADMIN)
