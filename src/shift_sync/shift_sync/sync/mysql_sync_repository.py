from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Sequence

from ..core.enums import ConflictStatus, ConflictType, QueueStatus, Resolution, RuleStrategy, SyncRunStatus
from ..database.mysql_base import from_json, to_json
from ..database.store import TransactionalStore
from .model import AutoResolutionRule, ConflictAuditEntry, ConflictRecord, SyncQueueEntry, SyncRunLog
from .repository import AutoResolutionRuleRepository, ConflictRepository, SyncQueueRepository, SyncRunRepository

_QUEUE_COLUMNS = (
    "id, operation, entity_type, entity_id, data, base_data, attempts, status, "
    "created_at, updated_at, last_attempt, conflict_data, last_error"
)
_CONFLICT_COLUMNS = (
    "id, queue_entry_id, entity_type, entity_id, local_data, remote_data, conflict_type, conflict_fields, "
    "status, resolution, resolved_by, resolved_at, created_at, updated_at"
)
_LAST_SYNC_KEY = "last_sync_at"


class MySQLSyncQueueRepository(SyncQueueRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    @staticmethod
    def _to_model(r: dict) -> SyncQueueEntry:
        return SyncQueueEntry(
            id=str(r["id"]),
            operation=r["operation"],
            entity_type=r["entity_type"],
            entity_id=str(r["entity_id"]),
            data=from_json(r.get("data")),
            base_data=from_json(r.get("base_data")),
            attempts=int(r["attempts"]),
            status=QueueStatus(r["status"]),
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
            last_attempt=r.get("last_attempt"),
            conflict_data=from_json(r.get("conflict_data")),
            last_error=r.get("last_error"),
        )

    def add(self, entry: SyncQueueEntry) -> None:
        self._store.run(
            f"INSERT INTO sync_queue({_QUEUE_COLUMNS}) VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)",
            (
                entry.id,
                entry.operation,
                entry.entity_type,
                entry.entity_id,
                to_json(entry.data),
                to_json(entry.base_data),
                entry.attempts,
                entry.status.value,
                entry.created_at,
                entry.updated_at,
                entry.last_attempt,
                to_json(entry.conflict_data),
                entry.last_error,
            ),
        )

    def update(self, entry: SyncQueueEntry) -> None:
        self._store.run(
            """
            UPDATE sync_queue
            SET attempts=%s, status=%s, updated_at=%s, last_attempt=%s, conflict_data=%s, last_error=%s
            WHERE id=%s
            """,
            (
                entry.attempts,
                entry.status.value,
                entry.updated_at,
                entry.last_attempt,
                to_json(entry.conflict_data),
                entry.last_error,
                entry.id,
            ),
        )

    def get(self, entry_id: str) -> Optional[SyncQueueEntry]:
        r = self._store.get(f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE id=%s", (entry_id,))
        return self._to_model(r) if r else None

    def list_unfinished(self) -> Sequence[SyncQueueEntry]:
        rows = self._store.all(
            f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE status<>%s ORDER BY created_at ASC, seq ASC",
            (QueueStatus.COMPLETED.value,),
        )
        return [self._to_model(r) for r in rows]

    def list_by_status(self, status: QueueStatus) -> Sequence[SyncQueueEntry]:
        rows = self._store.all(
            f"SELECT {_QUEUE_COLUMNS} FROM sync_queue WHERE status=%s ORDER BY created_at ASC, seq ASC",
            (status.value,),
        )
        return [self._to_model(r) for r in rows]

    def count_by_status(self) -> Dict[QueueStatus, int]:
        rows = self._store.all("SELECT status, COUNT(*) AS total FROM sync_queue GROUP BY status")
        counts = {status: 0 for status in QueueStatus}
        for r in rows:
            counts[QueueStatus(r["status"])] = int(r["total"])
        return counts

    def has_unfinished(self, entity_type: str, entity_id: str) -> bool:
        r = self._store.get(
            "SELECT 1 AS found FROM sync_queue WHERE entity_type=%s AND entity_id=%s AND status<>%s LIMIT 1",
            (entity_type, entity_id, QueueStatus.COMPLETED.value),
        )
        return r is not None

    def reset_processing(self, now: datetime) -> int:
        result = self._store.run(
            "UPDATE sync_queue SET status=%s, updated_at=%s WHERE status=%s",
            (QueueStatus.PENDING.value, now, QueueStatus.PROCESSING.value),
        )
        return result.rowcount

    def delete_completed_before(self, cutoff: datetime) -> int:
        result = self._store.run(
            "DELETE FROM sync_queue WHERE status=%s AND updated_at < %s",
            (QueueStatus.COMPLETED.value, cutoff),
        )
        return result.rowcount


class MySQLConflictRepository(ConflictRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    @staticmethod
    def _to_model(r: dict) -> ConflictRecord:
        return ConflictRecord(
            id=str(r["id"]),
            queue_entry_id=str(r["queue_entry_id"]),
            entity_type=r["entity_type"],
            entity_id=str(r["entity_id"]),
            local_data=from_json(r.get("local_data")),
            remote_data=from_json(r.get("remote_data")),
            conflict_type=ConflictType(r["conflict_type"]),
            conflict_fields=list(from_json(r.get("conflict_fields")) or []),
            status=ConflictStatus(r["status"]),
            resolution=Resolution(r["resolution"]) if r.get("resolution") else None,
            resolved_by=r.get("resolved_by"),
            resolved_at=r.get("resolved_at"),
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )

    def add(self, conflict: ConflictRecord) -> None:
        self._store.run(
            f"INSERT INTO conflict_records({_CONFLICT_COLUMNS}) VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)",
            (
                conflict.id,
                conflict.queue_entry_id,
                conflict.entity_type,
                conflict.entity_id,
                to_json(conflict.local_data),
                to_json(conflict.remote_data),
                conflict.conflict_type.value,
                to_json(conflict.conflict_fields),
                conflict.status.value,
                conflict.resolution.value if conflict.resolution else None,
                conflict.resolved_by,
                conflict.resolved_at,
                conflict.created_at,
                conflict.updated_at,
            ),
        )

    def update(self, conflict: ConflictRecord) -> None:
        self._store.run(
            """
            UPDATE conflict_records
            SET status=%s, resolution=%s, resolved_by=%s, resolved_at=%s, updated_at=%s
            WHERE id=%s
            """,
            (
                conflict.status.value,
                conflict.resolution.value if conflict.resolution else None,
                conflict.resolved_by,
                conflict.resolved_at,
                conflict.updated_at,
                conflict.id,
            ),
        )

    def get(self, conflict_id: str) -> Optional[ConflictRecord]:
        r = self._store.get(f"SELECT {_CONFLICT_COLUMNS} FROM conflict_records WHERE id=%s", (conflict_id,))
        return self._to_model(r) if r else None

    def list(self, *, status: Optional[ConflictStatus] = None) -> Sequence[ConflictRecord]:
        if status is None:
            rows = self._store.all(f"SELECT {_CONFLICT_COLUMNS} FROM conflict_records ORDER BY created_at DESC")
        else:
            rows = self._store.all(
                f"SELECT {_CONFLICT_COLUMNS} FROM conflict_records WHERE status=%s ORDER BY created_at DESC",
                (status.value,),
            )
        return [self._to_model(r) for r in rows]

    def add_audit(self, entry: ConflictAuditEntry) -> None:
        self._store.run(
            """
            INSERT INTO conflict_audit_log(id, conflict_id, resolution, actor, timestamp, reason)
            VALUES(%s,%s,%s,%s,%s,%s)
            """,
            (entry.id, entry.conflict_id, entry.resolution.value, entry.actor, entry.timestamp, entry.reason),
        )

    def list_audit(self, *, limit: int = 50) -> Sequence[ConflictAuditEntry]:
        rows = self._store.all(
            """
            SELECT id, conflict_id, resolution, actor, timestamp, reason
            FROM conflict_audit_log ORDER BY timestamp DESC LIMIT %s
            """,
            (int(limit),),
        )
        return [
            ConflictAuditEntry(
                id=str(r["id"]),
                conflict_id=str(r["conflict_id"]),
                resolution=Resolution(r["resolution"]),
                actor=r["actor"],
                timestamp=r["timestamp"],
                reason=r.get("reason"),
            )
            for r in rows
        ]


class MySQLAutoResolutionRuleRepository(AutoResolutionRuleRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    def add(self, rule: AutoResolutionRule) -> None:
        self._store.run(
            """
            INSERT INTO auto_resolution_rules(id, entity_type, conflict_type, field_pattern, strategy, priority, is_active, created_at)
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                rule.id,
                rule.entity_type,
                rule.conflict_type.value,
                rule.field_pattern,
                rule.strategy.value,
                rule.priority,
                1 if rule.is_active else 0,
                rule.created_at,
            ),
        )

    def list_active(self) -> Sequence[AutoResolutionRule]:
        rows = self._store.all(
            """
            SELECT id, entity_type, conflict_type, field_pattern, strategy, priority, is_active, created_at
            FROM auto_resolution_rules WHERE is_active=1 ORDER BY priority ASC, created_at ASC
            """
        )
        return [
            AutoResolutionRule(
                id=str(r["id"]),
                entity_type=r["entity_type"],
                conflict_type=ConflictType(r["conflict_type"]),
                field_pattern=r.get("field_pattern"),
                strategy=RuleStrategy(r["strategy"]),
                priority=int(r["priority"]),
                is_active=bool(r["is_active"]),
                created_at=r.get("created_at"),
            )
            for r in rows
        ]


class MySQLSyncRunRepository(SyncRunRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    def add(self, run: SyncRunLog) -> None:
        self._store.run(
            """
            INSERT INTO sync_runs(id, started_at, finished_at, processed, succeeded, failed, conflicts, status)
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                run.id,
                run.started_at,
                run.finished_at,
                run.processed,
                run.succeeded,
                run.failed,
                run.conflicts,
                run.status.value,
            ),
        )

    def list_recent(self, *, limit: int = 20) -> Sequence[SyncRunLog]:
        rows = self._store.all(
            """
            SELECT id, started_at, finished_at, processed, succeeded, failed, conflicts, status
            FROM sync_runs ORDER BY started_at DESC LIMIT %s
            """,
            (int(limit),),
        )
        return [
            SyncRunLog(
                id=str(r["id"]),
                started_at=r["started_at"],
                finished_at=r["finished_at"],
                processed=int(r["processed"]),
                succeeded=int(r["succeeded"]),
                failed=int(r["failed"]),
                conflicts=int(r["conflicts"]),
                status=SyncRunStatus(r["status"]),
            )
            for r in rows
        ]

    def get_last_sync_at(self) -> Optional[datetime]:
        r = self._store.get("SELECT value_at FROM sync_state WHERE name=%s", (_LAST_SYNC_KEY,))
        return r["value_at"] if r else None

    def set_last_sync_at(self, value: datetime) -> None:
        self._store.run(
            """
            INSERT INTO sync_state(name, value_at) VALUES(%s,%s)
            ON DUPLICATE KEY UPDATE value_at=VALUES(value_at)
            """,
            (_LAST_SYNC_KEY, value),
        )
