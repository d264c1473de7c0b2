"""Per-entity sync handlers, dispatched by ``entity_type``.

Each handler owns the typed payload of its entity kind: it parses queued dicts into the
model, diffs two payloads, reads and writes the local copy, and flags the local row's sync
state where the entity tracks one.

``store`` runs the same business rules as the services and raises their domain errors.
``apply`` is the replication entry point: a change that breaks a rule can never succeed
on retry, so it surfaces as a ``SyncPermanentError``.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

from ..attendance.model import AttendanceRecord
from ..attendance.repository import AttendanceRepository
from ..common.clock import Clock
from ..common.datetime_utils import hours_between
from ..common.locks import KeyedLock
from ..common.validators import require_max_length
from ..core.enums import RecordSyncStatus, SyncOperation
from ..core.exceptions import AlreadyClockedInError, DomainError, DuplicateError, SyncPermanentError, ValidationError
from ..employees.model import Employee
from ..employees.repository import EmployeeRepository
from ..time_categories.classifier import validate_category, validate_no_conflicts
from ..time_categories.model import TimeCategory
from ..time_categories.repository import TimeCategoryRepository
from .detector import diff_fields

ATTENDANCE_RECORD = "attendance_record"
TIME_CATEGORY = "time_category"
EMPLOYEE = "employee"

M = TypeVar("M")


def _sync_status(synced: bool) -> RecordSyncStatus:
    return RecordSyncStatus.SYNCED if synced else RecordSyncStatus.PENDING


class EntityHandler(Generic[M]):
    entity_type: str = ""

    def __init__(self, *, parse: Callable[[dict], M], dump: Callable[[M], dict]):
        self._parse = parse
        self._dump = dump

    def parse(self, data: Mapping[str, Any]) -> M:
        try:
            return self._parse(dict(data))
        except (KeyError, TypeError, ValueError) as exc:
            raise SyncPermanentError(f"Malformed {self.entity_type} payload: {exc}") from exc

    def normalize(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Round-trip through the typed payload so both sides diff on the same shape."""
        return self._dump(self.parse(data))

    def diff_fields(self, local: Mapping[str, Any], remote: Mapping[str, Any]) -> List[str]:
        return diff_fields(dict(local), dict(remote))

    def load(self, entity_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def store(
        self,
        operation: SyncOperation,
        entity_id: str,
        data: Optional[Mapping[str, Any]],
        *,
        synced: bool = True,
    ) -> Optional[Dict[str, Any]]:
        """Validate and write the local copy; returns the stored payload (None after a delete)."""
        raise NotImplementedError

    def apply(self, operation: SyncOperation, entity_id: str, data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
        try:
            return self.store(operation, entity_id, data)
        except DomainError as exc:
            raise SyncPermanentError(f"Rejected {self.entity_type} {entity_id}: {exc}") from exc

    def mark_synced(self, entity_id: str) -> None:
        return None

    def mark_conflict(self, entity_id: str) -> None:
        return None

    def _require_matching_id(self, model_id: str, entity_id: str) -> None:
        if model_id != str(entity_id):
            raise ValidationError(f"Payload id {model_id} does not match entity {entity_id}", field="id")


class AttendanceRecordHandler(EntityHandler[AttendanceRecord]):
    entity_type = ATTENDANCE_RECORD

    def __init__(self, repo: AttendanceRepository, locks: Optional[KeyedLock] = None):
        super().__init__(parse=AttendanceRecord.from_payload, dump=AttendanceRecord.to_payload)
        self._repo = repo
        self._locks = locks or KeyedLock()

    def load(self, entity_id: str) -> Optional[Dict[str, Any]]:
        record = self._repo.get_by_id(entity_id)
        return record.to_payload() if record else None

    @staticmethod
    def _check_times(record: AttendanceRecord) -> None:
        require_max_length(record.notes, "notes")
        if record.is_open:
            if record.total_hours is not None:
                raise ValidationError("An open shift cannot carry total hours", field="total_hours")
            return
        if record.clock_out_time <= record.clock_in_time:
            raise ValidationError("Clock-out time must be after clock-in time", field="clock_out_time")
        expected = hours_between(record.clock_in_time, record.clock_out_time)
        if expected <= 0:
            raise ValidationError("Shift is too short to record", field="clock_out_time")
        if record.total_hours is None or round(record.total_hours, 2) != expected:
            raise ValidationError(
                f"Total hours {record.total_hours} do not match the shift length {expected}", field="total_hours"
            )

    def store(
        self,
        operation: SyncOperation,
        entity_id: str,
        data: Optional[Mapping[str, Any]],
        *,
        synced: bool = True,
    ) -> Optional[Dict[str, Any]]:
        if operation == SyncOperation.DELETE:
            raise ValidationError("Attendance records are never deleted")

        record = self.parse(data or {})
        self._require_matching_id(record.id, entity_id)
        self._check_times(record)

        with self._locks.hold(record.employee_id):
            if record.is_open:
                open_record = self._repo.get_open_for_employee(record.employee_id)
                if open_record is not None and open_record.id != record.id:
                    raise AlreadyClockedInError(record.employee_id)

            existing = self._repo.get_by_id(record.id)
            stored = record.with_changes(sync_status=_sync_status(synced))
            if existing is None:
                self._repo.create(stored)
            else:
                self._repo.update(stored)
        return stored.to_payload()

    def mark_synced(self, entity_id: str) -> None:
        self._repo.set_sync_status(entity_id, RecordSyncStatus.SYNCED)

    def mark_conflict(self, entity_id: str) -> None:
        self._repo.set_sync_status(entity_id, RecordSyncStatus.CONFLICT)


class TimeCategoryHandler(EntityHandler[TimeCategory]):
    entity_type = TIME_CATEGORY

    def __init__(self, repo: TimeCategoryRepository, clock: Clock, write_lock: Optional[threading.Lock] = None):
        super().__init__(parse=TimeCategory.from_payload, dump=TimeCategory.to_payload)
        self._repo = repo
        self._clock = clock
        self._write_lock = write_lock or threading.Lock()

    def load(self, entity_id: str) -> Optional[Dict[str, Any]]:
        category = self._repo.get_by_id(entity_id)
        return category.to_payload() if category else None

    def store(
        self,
        operation: SyncOperation,
        entity_id: str,
        data: Optional[Mapping[str, Any]],
        *,
        synced: bool = True,
    ) -> Optional[Dict[str, Any]]:
        if operation == SyncOperation.DELETE:
            # Categories stay referenced by past records; a delete deactivates.
            with self._write_lock:
                existing = self._repo.get_by_id(entity_id)
                if existing is None:
                    return None
                deactivated = existing.with_changes(is_active=False, updated_at=self._clock.now())
                self._repo.save(deactivated)
            return deactivated.to_payload()

        category = self.parse(data or {})
        self._require_matching_id(category.id, entity_id)
        validate_category(category)

        with self._write_lock:
            other = self._repo.get_by_name(category.name)
            if other is not None and other.id != category.id:
                raise DuplicateError(f"Time category with name '{category.name}' already exists", field="name")
            if category.is_active:
                validate_no_conflicts(category, self._repo.list_all(active_only=True), exclude_id=category.id)
            self._repo.save(category)
        return category.to_payload()


class EmployeeHandler(EntityHandler[Employee]):
    entity_type = EMPLOYEE

    def __init__(self, repo: EmployeeRepository, clock: Clock):
        super().__init__(parse=Employee.from_payload, dump=Employee.to_payload)
        self._repo = repo
        self._clock = clock

    def load(self, entity_id: str) -> Optional[Dict[str, Any]]:
        employee = self._repo.get_by_id(entity_id)
        return employee.to_payload() if employee else None

    def store(
        self,
        operation: SyncOperation,
        entity_id: str,
        data: Optional[Mapping[str, Any]],
        *,
        synced: bool = True,
    ) -> Optional[Dict[str, Any]]:
        if operation == SyncOperation.DELETE:
            existing = self._repo.get_by_id(entity_id)
            if existing is None:
                return None
            deactivated = existing.with_changes(is_active=False, updated_at=self._clock.now())
            self._repo.save(deactivated)
            return deactivated.to_payload()

        employee = self.parse(data or {})
        self._require_matching_id(employee.id, entity_id)
        other = self._repo.get_by_number(employee.employee_number)
        if other is not None and other.id != employee.id:
            raise DuplicateError(f"Employee number {employee.employee_number} is already taken", field="employee_number")
        self._repo.save(employee)
        return employee.to_payload()


class HandlerRegistry:
    """Dispatch table from entity type to its handler."""

    def __init__(self, handlers: Optional[Mapping[str, EntityHandler]] = None):
        self._handlers: Dict[str, EntityHandler] = dict(handlers or {})

    def register(self, handler: EntityHandler) -> None:
        self._handlers[handler.entity_type] = handler

    def get(self, entity_type: str) -> Optional[EntityHandler]:
        return self._handlers.get(entity_type)

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._handlers

    @property
    def entity_types(self) -> List[str]:
        return sorted(self._handlers)


def build_registry(
    *,
    attendance_repo: AttendanceRepository,
    category_repo: TimeCategoryRepository,
    employee_repo: EmployeeRepository,
    clock: Clock,
    attendance_locks: Optional[KeyedLock] = None,
    category_lock: Optional[threading.Lock] = None,
) -> HandlerRegistry:
    """Handlers share the services' locks so replicated and local writes serialize together."""
    registry = HandlerRegistry()
    registry.register(AttendanceRecordHandler(attendance_repo, attendance_locks))
    registry.register(TimeCategoryHandler(category_repo, clock, category_lock))
    registry.register(EmployeeHandler(employee_repo, clock))
    return registry
