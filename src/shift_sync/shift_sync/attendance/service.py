from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from ..auth.context import AuthContext, require_self_or_supervisor
from ..common.clock import Clock
from ..common.datetime_utils import hours_between, parse_iso_datetime, to_iso
from ..common.locks import KeyedLock
from ..common.validators import require_max_length, require_non_empty, require_not_future
from ..core.enums import RecordSyncStatus, SyncOperation
from ..core.exceptions import AlreadyClockedInError, NotClockedInError, NotFoundError, ValidationError
from ..employees.repository import EmployeeRepository
from ..sync.coordinator import SyncCoordinator
from ..sync.handlers import ATTENDANCE_RECORD
from ..time_categories.classifier import assign_category
from ..time_categories.repository import TimeCategoryRepository
from .model import AttendanceRecord, AttendanceSummary, CategoryTotals, CurrentShift, TimeAdjustment
from .repository import AttendanceRepository

logger = structlog.get_logger(__name__)

ADJUSTABLE_FIELDS = ("clock_in_time", "clock_out_time", "notes")
UNCATEGORIZED = "Uncategorized"


def _append_notes(existing: Optional[str], extra: Optional[str]) -> Optional[str]:
    if not extra:
        return existing
    return f"{existing}\n{extra}" if existing else extra


def _audit_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class AttendanceService:
    """Clock-in/clock-out state machine: NOT_CLOCKED_IN -> CLOCKED_IN -> NOT_CLOCKED_IN.

    At most one open record per employee. Writes for one employee are serialized by a
    per-employee lock; the database backs this with a unique index on open shifts.
    Every local change is handed to the sync coordinator when one is configured (client
    nodes); the server node is the authoritative copy and marks its rows synced.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        employees: EmployeeRepository,
        categories: TimeCategoryRepository,
        *,
        clock: Clock,
        sync: Optional[SyncCoordinator] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._attendance = attendance
        self._employees = employees
        self._categories = categories
        self._clock = clock
        self._sync = sync
        self._locks = locks or KeyedLock()

    def _require_active_employee(self, employee_id: str) -> None:
        employee = self._employees.get_by_id(employee_id)
        if not employee:
            raise NotFoundError(f"Employee {employee_id} not found")
        if not employee.is_active:
            raise ValidationError(f"Employee {employee_id} is inactive")

    def _get_record(self, record_id: str) -> AttendanceRecord:
        record = self._attendance.get_by_id(record_id)
        if not record:
            raise NotFoundError(f"Attendance record {record_id} not found")
        return record

    def _derive(self, clock_in: datetime, clock_out: datetime) -> tuple[float, Optional[str]]:
        if clock_out <= clock_in:
            raise ValidationError("Clock-out time must be after clock-in time", field="clock_out_time")
        hours = hours_between(clock_in, clock_out)
        if hours <= 0:
            raise ValidationError("Shift is too short to record", field="clock_out_time")
        category = assign_category(hours, self._categories.list_all(active_only=True))
        return hours, category.id if category else None

    def _publish(
        self,
        operation: SyncOperation,
        record: AttendanceRecord,
        base: Optional[AttendanceRecord] = None,
    ) -> AttendanceRecord:
        if self._sync is None:
            self._attendance.set_sync_status(record.id, RecordSyncStatus.SYNCED)
            return record.with_changes(sync_status=RecordSyncStatus.SYNCED)

        outcome = self._sync.publish(
            operation,
            ATTENDANCE_RECORD,
            record.id,
            record.to_payload(),
            base_data=base.to_payload() if base else None,
        )
        return record.with_changes(sync_status=outcome.sync_status)

    def clock_in(
        self,
        employee_id: str,
        *,
        time: Optional[datetime] = None,
        notes: Optional[str] = None,
        actor: Optional[AuthContext] = None,
    ) -> AttendanceRecord:
        if actor is not None:
            require_self_or_supervisor(actor, employee_id, "clock in")
        now = self._clock.now()
        clock_in_time = time or now
        require_not_future(clock_in_time, now, "clock_in_time")
        require_max_length(notes, "notes")

        with self._locks.hold(employee_id):
            self._require_active_employee(employee_id)
            if self._attendance.get_open_for_employee(employee_id):
                raise AlreadyClockedInError(employee_id)

            record = AttendanceRecord(
                id=str(uuid.uuid4()),
                employee_id=str(employee_id),
                clock_in_time=clock_in_time,
                notes=notes or None,
                sync_status=RecordSyncStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self._attendance.create(record)

        logger.info("clocked_in", employee_id=employee_id, record_id=record.id, at=to_iso(clock_in_time))
        return self._publish(SyncOperation.CREATE, record)

    def clock_out(
        self,
        employee_id: str,
        *,
        time: Optional[datetime] = None,
        notes: Optional[str] = None,
        actor: Optional[AuthContext] = None,
    ) -> AttendanceRecord:
        if actor is not None:
            require_self_or_supervisor(actor, employee_id, "clock out")
        now = self._clock.now()
        clock_out_time = time or now
        require_not_future(clock_out_time, now, "clock_out_time")
        require_max_length(notes, "notes")

        with self._locks.hold(employee_id):
            current = self._attendance.get_open_for_employee(employee_id)
            if not current:
                raise NotClockedInError(employee_id)

            hours, category_id = self._derive(current.clock_in_time, clock_out_time)
            updated = current.with_changes(
                clock_out_time=clock_out_time,
                total_hours=hours,
                time_category=category_id,
                notes=_append_notes(current.notes, notes),
                sync_status=RecordSyncStatus.PENDING,
                updated_at=now,
            )
            self._attendance.update(updated)

        logger.info("clocked_out", employee_id=employee_id, record_id=updated.id, total_hours=hours, category=category_id)
        return self._publish(SyncOperation.UPDATE, updated, base=current)

    def get_current_shift(self, employee_id: str) -> CurrentShift:
        record = self._attendance.get_open_for_employee(employee_id)
        if not record:
            return CurrentShift(is_active=False)
        return CurrentShift(is_active=True, record=record, elapsed_hours=self.elapsed_time(record))

    def elapsed_time(self, record: AttendanceRecord, now: Optional[datetime] = None) -> float:
        if not record.is_open and record.total_hours is not None:
            return record.total_hours
        return max(0.0, hours_between(record.clock_in_time, now or self._clock.now()))

    def adjust_time(
        self,
        record_id: str,
        field: str,
        new_value: Any,
        reason: str,
        actor: AuthContext,
    ) -> AttendanceRecord:
        return self.adjust_record(record_id, {field: new_value}, reason=reason, actor=actor)

    def adjust_record(
        self,
        record_id: str,
        changes: Mapping[str, Any],
        *,
        reason: str,
        actor: AuthContext,
    ) -> AttendanceRecord:
        """Manual correction of a completed record; one audit entry per changed field."""
        reason = require_non_empty(reason, "reason")
        unknown = sorted(set(changes) - set(ADJUSTABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Fields cannot be adjusted: {', '.join(unknown)}", field=unknown[0])
        if not changes:
            raise ValidationError("No changes supplied")

        record = self._get_record(record_id)
        require_self_or_supervisor(actor, record.employee_id, "adjust attendance records")

        now = self._clock.now()
        with self._locks.hold(record.employee_id):
            record = self._get_record(record_id)
            if record.is_open:
                raise ValidationError("Only completed records can be adjusted")

            values: Dict[str, Any] = {
                "clock_in_time": record.clock_in_time,
                "clock_out_time": record.clock_out_time,
                "notes": record.notes,
            }
            for name, raw in changes.items():
                if name == "notes":
                    values[name] = require_max_length(raw or None, "notes")
                    continue
                try:
                    parsed = parse_iso_datetime(raw)
                except (TypeError, ValueError) as exc:
                    raise ValidationError(f"{name} must be an ISO date-time", field=name) from exc
                if parsed is None:
                    raise ValidationError(f"{name} is required", field=name)
                values[name] = require_not_future(parsed, now, name)

            adjustments: List[TimeAdjustment] = [
                TimeAdjustment(
                    id=str(uuid.uuid4()),
                    record_id=record.id,
                    adjusted_by=str(actor.employee_id),
                    field=name,
                    original_value=_audit_value(getattr(record, name)),
                    new_value=_audit_value(values[name]),
                    reason=reason,
                    timestamp=now,
                )
                for name in ADJUSTABLE_FIELDS
                if name in changes and values[name] != getattr(record, name)
            ]
            if not adjustments:
                return record

            updated = record.with_changes(notes=values["notes"], sync_status=RecordSyncStatus.PENDING, updated_at=now)
            if any(a.field != "notes" for a in adjustments):
                hours, category_id = self._derive(values["clock_in_time"], values["clock_out_time"])
                updated = updated.with_changes(
                    clock_in_time=values["clock_in_time"],
                    clock_out_time=values["clock_out_time"],
                    total_hours=hours,
                    time_category=category_id,
                )
            self._attendance.update_with_adjustments(updated, adjustments)

        logger.info(
            "attendance_adjusted",
            record_id=record.id,
            adjusted_by=actor.employee_id,
            fields=[a.field for a in adjustments],
        )
        return self._publish(SyncOperation.UPDATE, updated, base=record)

    def adjustments(self, record_id: str, *, actor: Optional[AuthContext] = None) -> Sequence[TimeAdjustment]:
        record = self._get_record(record_id)
        if actor is not None:
            require_self_or_supervisor(actor, record.employee_id, "view adjustments")
        return self._attendance.list_adjustments(record_id)

    def history(
        self,
        employee_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        actor: Optional[AuthContext] = None,
    ) -> Sequence[AttendanceRecord]:
        if actor is not None:
            require_self_or_supervisor(actor, employee_id, "view attendance history")
        return self._attendance.list_for_employee(employee_id, start=start, end=end)

    def summarize(
        self,
        employee_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        actor: Optional[AuthContext] = None,
    ) -> AttendanceSummary:
        if actor is not None:
            require_self_or_supervisor(actor, employee_id, "view attendance summaries")
        records = self._attendance.list_for_employee(employee_id, start=start, end=end, include_incomplete=False)
        names = {c.id: c.name for c in self._categories.list_all()}

        total_hours = 0.0
        days = set()
        per_category: Dict[str, CategoryTotals] = {}
        for r in records:
            hours = r.total_hours or 0.0
            total_hours += hours
            days.add(r.clock_in_time.date())
            label = names.get(r.time_category, UNCATEGORIZED) if r.time_category else UNCATEGORIZED
            current = per_category.get(label, CategoryTotals())
            per_category[label] = CategoryTotals(count=current.count + 1, hours=round(current.hours + hours, 2))

        total_hours = round(total_hours, 2)
        return AttendanceSummary(
            total_records=len(records),
            total_hours=total_hours,
            average_hours_per_day=round(total_hours / len(days), 2) if days else 0.0,
            category_summary=per_category,
        )
