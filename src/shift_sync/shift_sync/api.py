"""Result-returning facade over the services.

Expected business failures come back as ``Result`` values carrying an ``ErrorCode``;
infrastructure exceptions still propagate.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from .attendance.model import AttendanceRecord, CurrentShift
from .attendance.service import AttendanceService
from .auth.context import AuthContext
from .core.enums import Resolution, SyncOperation
from .core.exceptions import DomainError
from .core.result import Result
from .sync.coordinator import SyncCoordinator
from .sync.model import ConflictRecord, SubmitOutcome, SyncRunResult, SyncStatusSnapshot
from .time_categories.model import CategoryOverlap, PayPreview
from .time_categories.service import TimeCategoryService

T = TypeVar("T")


def _call(fn: Callable[..., T], *args, **kwargs) -> Result[T]:
    try:
        return Result.success(fn(*args, **kwargs))
    except DomainError as exc:
        return Result.from_error(exc)


class SyncApi:
    def __init__(self, coordinator: SyncCoordinator):
        self._coordinator = coordinator

    def status(self) -> Result[SyncStatusSnapshot]:
        return _call(self._coordinator.status)

    def trigger(self, *, auto_resolve: Optional[bool] = None, batch_size: Optional[int] = None) -> Result[SyncRunResult]:
        return _call(self._coordinator.trigger, auto_resolve=auto_resolve, batch_size=batch_size)

    def conflicts(self) -> Result[Sequence[ConflictRecord]]:
        return _call(self._coordinator.conflicts)

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: Resolution | str,
        *,
        actor: AuthContext,
        merged_data: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> Result[ConflictRecord]:
        return _call(
            self._coordinator.resolve_conflict,
            conflict_id,
            resolution,
            actor=actor,
            merged_data=merged_data,
            reason=reason,
        )


class TimeCategoryApi:
    def __init__(self, service: TimeCategoryService):
        self._service = service

    def preview(self, hours: float, base_rate: float) -> Result[PayPreview]:
        return _call(self._service.preview, hours, base_rate)

    def detect_conflicts(self) -> Result[List[CategoryOverlap]]:
        return _call(self._service.detect_conflicts)


class TimeclockApi:
    def __init__(
        self,
        *,
        attendance: AttendanceService,
        time_categories: TimeCategoryService,
        coordinator: SyncCoordinator,
    ):
        self._attendance = attendance
        self._coordinator = coordinator
        self.sync = SyncApi(coordinator)
        self.time_categories = TimeCategoryApi(time_categories)

    def clock_in(self, employee_id: str, *, actor: Optional[AuthContext] = None, notes: Optional[str] = None) -> Result[AttendanceRecord]:
        return _call(self._attendance.clock_in, employee_id, actor=actor, notes=notes)

    def clock_out(self, employee_id: str, *, actor: Optional[AuthContext] = None, notes: Optional[str] = None) -> Result[AttendanceRecord]:
        return _call(self._attendance.clock_out, employee_id, actor=actor, notes=notes)

    def get_current_shift(self, employee_id: str) -> Result[CurrentShift]:
        return _call(self._attendance.get_current_shift, employee_id)

    def adjust_time(
        self,
        record_id: str,
        field: str,
        new_value: Any,
        reason: str,
        actor: AuthContext,
    ) -> Result[AttendanceRecord]:
        return _call(self._attendance.adjust_time, record_id, field, new_value, reason, actor)

    def submit(
        self,
        operation: SyncOperation | str,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Result[SubmitOutcome]:
        return _call(self._coordinator.submit, operation, entity_type, entity_id, data)
