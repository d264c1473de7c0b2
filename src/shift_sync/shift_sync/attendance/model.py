from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..core.enums import RecordSyncStatus


@dataclass(frozen=True)
class AttendanceRecord:
    """One shift of one employee.

    `total_hours` and `time_category` are derived at clock-out and pinned; they only
    change again through a manual adjustment.
    """

    id: str
    employee_id: str
    clock_in_time: datetime
    clock_out_time: Optional[datetime] = None
    total_hours: Optional[float] = None
    time_category: Optional[str] = None
    notes: Optional[str] = None
    sync_status: RecordSyncStatus = RecordSyncStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.clock_out_time is None

    def with_changes(self, **changes) -> "AttendanceRecord":
        return replace(self, **changes)

    def to_payload(self) -> dict:
        """Wire form shared with the authoritative copy (sync status stays local)."""
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "clock_in_time": to_iso(self.clock_in_time),
            "clock_out_time": to_iso(self.clock_out_time),
            "total_hours": self.total_hours,
            "time_category": self.time_category,
            "notes": self.notes,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_payload(cls, data: dict, *, sync_status: RecordSyncStatus = RecordSyncStatus.SYNCED) -> "AttendanceRecord":
        total_hours = data.get("total_hours")
        return cls(
            id=str(data["id"]),
            employee_id=str(data["employee_id"]),
            clock_in_time=parse_iso_datetime(data["clock_in_time"]),
            clock_out_time=parse_iso_datetime(data.get("clock_out_time")),
            total_hours=float(total_hours) if total_hours is not None else None,
            time_category=data.get("time_category"),
            notes=data.get("notes"),
            sync_status=sync_status,
            created_at=parse_iso_datetime(data.get("created_at")),
            updated_at=parse_iso_datetime(data.get("updated_at")),
        )


@dataclass(frozen=True)
class TimeAdjustment:
    """Audit entry for one field changed by a manual adjustment."""

    id: str
    record_id: str
    adjusted_by: str
    field: str
    original_value: Optional[str]
    new_value: Optional[str]
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class CurrentShift:
    is_active: bool
    record: Optional[AttendanceRecord] = None
    elapsed_hours: Optional[float] = None


@dataclass(frozen=True)
class CategoryTotals:
    count: int = 0
    hours: float = 0.0


@dataclass(frozen=True)
class AttendanceSummary:
    total_records: int
    total_hours: float
    average_hours_per_day: float
    category_summary: Dict[str, CategoryTotals] = field(default_factory=dict)
