from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from ..core.enums import RecordSyncStatus
from .model import AttendanceRecord, TimeAdjustment


class AttendanceRepository(Protocol):
    def get_by_id(self, record_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_open_for_employee(self, employee_id: str) -> Optional[AttendanceRecord]:
        """Most recent record (by clock_in_time) whose clock_out_time is null."""

        raise NotImplementedError

    def list_for_employee(
        self,
        employee_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_incomplete: bool = True,
    ) -> Sequence[AttendanceRecord]:
        """Records ordered by clock_in_time, newest first."""

        raise NotImplementedError

    def create(self, record: AttendanceRecord) -> None:
        raise NotImplementedError

    def update(self, record: AttendanceRecord) -> None:
        raise NotImplementedError

    def update_with_adjustments(self, record: AttendanceRecord, adjustments: Sequence[TimeAdjustment]) -> None:
        """Persist the record and its audit entries atomically."""

        raise NotImplementedError

    def set_sync_status(self, record_id: str, status: RecordSyncStatus) -> bool:
        raise NotImplementedError

    def list_adjustments(self, record_id: str) -> Sequence[TimeAdjustment]:
        raise NotImplementedError
