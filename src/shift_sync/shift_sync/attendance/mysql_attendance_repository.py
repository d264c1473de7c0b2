from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from ..core.enums import RecordSyncStatus
from ..database.store import TransactionalStore
from .model import AttendanceRecord, TimeAdjustment
from .repository import AttendanceRepository

_COLUMNS = (
    "id, employee_id, clock_in_time, clock_out_time, total_hours, time_category, notes, "
    "sync_status, created_at, updated_at"
)


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    @staticmethod
    def _to_model(r: dict) -> AttendanceRecord:
        return AttendanceRecord(
            id=str(r["id"]),
            employee_id=str(r["employee_id"]),
            clock_in_time=r["clock_in_time"],
            clock_out_time=r.get("clock_out_time"),
            total_hours=float(r["total_hours"]) if r.get("total_hours") is not None else None,
            time_category=r.get("time_category"),
            notes=r.get("notes"),
            sync_status=RecordSyncStatus(r["sync_status"]),
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )

    @staticmethod
    def _params(record: AttendanceRecord) -> tuple:
        return (
            record.employee_id,
            record.clock_in_time,
            record.clock_out_time,
            record.total_hours,
            record.time_category,
            record.notes,
            record.sync_status.value,
            record.updated_at,
        )

    def get_by_id(self, record_id: str) -> Optional[AttendanceRecord]:
        r = self._store.get(f"SELECT {_COLUMNS} FROM attendance_records WHERE id=%s", (record_id,))
        return self._to_model(r) if r else None

    def get_open_for_employee(self, employee_id: str) -> Optional[AttendanceRecord]:
        r = self._store.get(
            f"""
            SELECT {_COLUMNS} FROM attendance_records
            WHERE employee_id=%s AND clock_out_time IS NULL
            ORDER BY clock_in_time DESC
            LIMIT 1
            """,
            (employee_id,),
        )
        return self._to_model(r) if r else None

    def list_for_employee(
        self,
        employee_id: str,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        include_incomplete: bool = True,
    ) -> Sequence[AttendanceRecord]:
        clauses = ["employee_id=%s"]
        params: list[object] = [employee_id]
        if start is not None:
            clauses.append("clock_in_time >= %s")
            params.append(start)
        if end is not None:
            clauses.append("clock_in_time <= %s")
            params.append(end)
        if not include_incomplete:
            clauses.append("clock_out_time IS NOT NULL")

        rows = self._store.all(
            f"SELECT {_COLUMNS} FROM attendance_records WHERE {' AND '.join(clauses)} ORDER BY clock_in_time DESC",
            params,
        )
        return [self._to_model(r) for r in rows]

    def create(self, record: AttendanceRecord) -> None:
        self._store.run(
            """
            INSERT INTO attendance_records(
                employee_id, clock_in_time, clock_out_time, total_hours, time_category, notes,
                sync_status, updated_at, id, created_at)
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            self._params(record) + (record.id, record.created_at),
        )

    def update(self, record: AttendanceRecord) -> None:
        self._store.run(
            """
            UPDATE attendance_records
            SET employee_id=%s, clock_in_time=%s, clock_out_time=%s, total_hours=%s, time_category=%s,
                notes=%s, sync_status=%s, updated_at=%s
            WHERE id=%s
            """,
            self._params(record) + (record.id,),
        )

    def update_with_adjustments(self, record: AttendanceRecord, adjustments: Sequence[TimeAdjustment]) -> None:
        with self._store.transaction():
            self.update(record)
            for adj in adjustments:
                self._store.run(
                    """
                    INSERT INTO time_adjustments(id, record_id, adjusted_by, field, original_value, new_value, reason, timestamp)
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (adj.id, adj.record_id, adj.adjusted_by, adj.field, adj.original_value, adj.new_value, adj.reason, adj.timestamp),
                )

    def set_sync_status(self, record_id: str, status: RecordSyncStatus) -> bool:
        result = self._store.run("UPDATE attendance_records SET sync_status=%s WHERE id=%s", (status.value, record_id))
        return result.rowcount > 0

    def list_adjustments(self, record_id: str) -> Sequence[TimeAdjustment]:
        rows = self._store.all(
            """
            SELECT id, record_id, adjusted_by, field, original_value, new_value, reason, timestamp
            FROM time_adjustments WHERE record_id=%s ORDER BY timestamp DESC
            """,
            (record_id,),
        )
        return [
            TimeAdjustment(
                id=str(r["id"]),
                record_id=str(r["record_id"]),
                adjusted_by=str(r["adjusted_by"]),
                field=r["field"],
                original_value=r.get("original_value"),
                new_value=r.get("new_value"),
                reason=r["reason"],
                timestamp=r["timestamp"],
            )
            for r in rows
        ]
