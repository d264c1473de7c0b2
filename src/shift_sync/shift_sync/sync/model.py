from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.enums import (
    ConflictStatus,
    ConflictType,
    QueueStatus,
    RecordSyncStatus,
    Resolution,
    RuleStrategy,
    SyncRunStatus,
)


@dataclass(frozen=True)
class SyncQueueEntry:
    """One deferred create/update/delete against an entity.

    `operation` is kept as the stored string so that a corrupted row still loads and is
    rejected by validation instead of at read time. `base_data` is the entity snapshot the
    local change was made on; the drain compares it with the remote copy.
    """

    id: str
    operation: str
    entity_type: str
    entity_id: str
    data: Optional[Dict[str, Any]] = None
    base_data: Optional[Dict[str, Any]] = None
    attempts: int = 0
    status: QueueStatus = QueueStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_attempt: Optional[datetime] = None
    conflict_data: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None

    @property
    def entity_key(self) -> Tuple[str, str]:
        return (self.entity_type, self.entity_id)

    @property
    def conflict_id(self) -> Optional[str]:
        if not self.conflict_data:
            return None
        value = self.conflict_data.get("conflict_id")
        return str(value) if value is not None else None

    def with_changes(self, **changes) -> "SyncQueueEntry":
        return replace(self, **changes)


@dataclass(frozen=True)
class ConflictDetectionResult:
    has_conflict: bool
    conflict_type: Optional[ConflictType] = None
    conflict_fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConflictRecord:
    id: str
    queue_entry_id: str
    entity_type: str
    entity_id: str
    local_data: Optional[Dict[str, Any]]
    remote_data: Optional[Dict[str, Any]]
    conflict_type: ConflictType
    conflict_fields: List[str] = field(default_factory=list)
    status: ConflictStatus = ConflictStatus.PENDING
    resolution: Optional[Resolution] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status == ConflictStatus.PENDING

    def with_changes(self, **changes) -> "ConflictRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class ConflictAuditEntry:
    id: str
    conflict_id: str
    resolution: Resolution
    actor: str
    timestamp: datetime
    reason: Optional[str] = None


@dataclass(frozen=True)
class AutoResolutionRule:
    """Pre-configured policy; `entity_type == "*"` matches every entity kind."""

    id: str
    entity_type: str
    conflict_type: ConflictType
    strategy: RuleStrategy
    priority: int = 100
    field_pattern: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class SubmitOutcome:
    offline: bool
    sync_status: RecordSyncStatus
    result: Optional[Dict[str, Any]] = None
    entry_id: Optional[str] = None


@dataclass(frozen=True)
class SyncRunResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    conflicts: int = 0
    in_progress: bool = False
    offline: bool = False
    cancelled: bool = False
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SyncRunLog:
    id: str
    started_at: datetime
    finished_at: datetime
    processed: int
    succeeded: int
    failed: int
    conflicts: int
    status: SyncRunStatus


@dataclass(frozen=True)
class SyncStatusSnapshot:
    pending_items: int
    failed_items: int
    processing_items: int
    open_conflicts: int
    last_sync_at: Optional[datetime]
    last_sync_status: Optional[SyncRunStatus]
    # failed_items counts terminal failures only.
    retrying_items: int = 0
    parked_items: int = 0
