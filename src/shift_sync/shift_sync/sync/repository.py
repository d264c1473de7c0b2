from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol, Sequence

from ..core.enums import ConflictStatus, QueueStatus
from .model import AutoResolutionRule, ConflictAuditEntry, ConflictRecord, SyncQueueEntry, SyncRunLog


class SyncQueueRepository(Protocol):
    """Durable queue storage. Listings are in creation order."""

    def add(self, entry: SyncQueueEntry) -> None:
        raise NotImplementedError

    def update(self, entry: SyncQueueEntry) -> None:
        raise NotImplementedError

    def get(self, entry_id: str) -> Optional[SyncQueueEntry]:
        raise NotImplementedError

    def list_unfinished(self) -> Sequence[SyncQueueEntry]:
        """Every entry that is not completed, oldest first."""
        raise NotImplementedError

    def list_by_status(self, status: QueueStatus) -> Sequence[SyncQueueEntry]:
        raise NotImplementedError

    def count_by_status(self) -> Dict[QueueStatus, int]:
        raise NotImplementedError

    def has_unfinished(self, entity_type: str, entity_id: str) -> bool:
        raise NotImplementedError

    def reset_processing(self, now: datetime) -> int:
        """Move entries stuck in processing back to pending; returns how many."""
        raise NotImplementedError

    def delete_completed_before(self, cutoff: datetime) -> int:
        raise NotImplementedError


class ConflictRepository(Protocol):
    def add(self, conflict: ConflictRecord) -> None:
        raise NotImplementedError

    def update(self, conflict: ConflictRecord) -> None:
        raise NotImplementedError

    def get(self, conflict_id: str) -> Optional[ConflictRecord]:
        raise NotImplementedError

    def list(self, *, status: Optional[ConflictStatus] = None) -> Sequence[ConflictRecord]:
        raise NotImplementedError

    def add_audit(self, entry: ConflictAuditEntry) -> None:
        raise NotImplementedError

    def list_audit(self, *, limit: int = 50) -> Sequence[ConflictAuditEntry]:
        """Newest first."""
        raise NotImplementedError


class AutoResolutionRuleRepository(Protocol):
    def add(self, rule: AutoResolutionRule) -> None:
        raise NotImplementedError

    def list_active(self) -> Sequence[AutoResolutionRule]:
        """Active rules ordered by ascending priority."""
        raise NotImplementedError


class SyncRunRepository(Protocol):
    def add(self, run: SyncRunLog) -> None:
        raise NotImplementedError

    def list_recent(self, *, limit: int = 20) -> Sequence[SyncRunLog]:
        """Newest first."""
        raise NotImplementedError

    def get_last_sync_at(self) -> Optional[datetime]:
        """Time of the last successful write to the authoritative copy."""
        raise NotImplementedError

    def set_last_sync_at(self, value: datetime) -> None:
        raise NotImplementedError
