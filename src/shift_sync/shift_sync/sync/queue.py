"""Lifecycle rules for queue entries.

pending -> processing -> completed, or failed with ``attempts += 1``. A failed entry goes
back to pending once its backoff has elapsed, until ``MAX_SYNC_ATTEMPTS`` is reached.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..core.constants import INITIAL_RETRY_DELAY_MS, MAX_SYNC_ATTEMPTS
from ..core.enums import QueueStatus, SyncOperation
from .model import SyncQueueEntry

_OPERATIONS = {op.value for op in SyncOperation}
_DATA_REQUIRED = {SyncOperation.CREATE.value, SyncOperation.UPDATE.value}


def create_entry(
    operation: SyncOperation | str,
    entity_type: str,
    entity_id: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    now: datetime,
    base_data: Optional[Dict[str, Any]] = None,
) -> SyncQueueEntry:
    op = operation.value if isinstance(operation, SyncOperation) else str(operation)
    return SyncQueueEntry(
        id=str(uuid.uuid4()),
        operation=op,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else "",
        data=data,
        base_data=base_data,
        attempts=0,
        status=QueueStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def validate_entry(entry: SyncQueueEntry) -> List[str]:
    errors: List[str] = []
    if entry.operation not in _OPERATIONS:
        errors.append(f"Invalid operation: {entry.operation}")
    if not entry.entity_type or not str(entry.entity_type).strip():
        errors.append("Entity type is required")
    if not entry.entity_id or not str(entry.entity_id).strip():
        errors.append("Entity ID is required")
    if entry.operation in _DATA_REQUIRED and entry.data is None:
        errors.append(f"Data is required for {entry.operation} operations")
    return errors


def should_retry(entry: SyncQueueEntry) -> bool:
    return entry.status == QueueStatus.FAILED and entry.attempts < MAX_SYNC_ATTEMPTS


def calculate_retry_delay(attempts: int) -> int:
    """Backoff in milliseconds: 1000, 2000, 4000, 8000, 16000, ..."""
    return INITIAL_RETRY_DELAY_MS * 2 ** attempts


def is_due(entry: SyncQueueEntry, now: datetime) -> bool:
    """A retryable failure whose backoff has elapsed. Parked conflicts are never due."""
    if not should_retry(entry) or entry.conflict_id is not None:
        return False
    if entry.last_attempt is None:
        return True
    delay = calculate_retry_delay(max(entry.attempts - 1, 0))
    return now >= entry.last_attempt + timedelta(milliseconds=delay)


def mark_as_processing(entry: SyncQueueEntry, now: datetime) -> SyncQueueEntry:
    return entry.with_changes(status=QueueStatus.PROCESSING, updated_at=now)


def mark_as_completed(entry: SyncQueueEntry, now: datetime) -> SyncQueueEntry:
    return entry.with_changes(status=QueueStatus.COMPLETED, updated_at=now, last_error=None)


def mark_as_failed(
    entry: SyncQueueEntry,
    now: datetime,
    *,
    conflict_data: Optional[Dict[str, Any]] = None,
    error: Optional[str] = None,
    terminal: bool = False,
) -> SyncQueueEntry:
    attempts = MAX_SYNC_ATTEMPTS if terminal else entry.attempts + 1
    return entry.with_changes(
        status=QueueStatus.FAILED,
        attempts=max(attempts, entry.attempts + 1),
        last_attempt=now,
        updated_at=now,
        conflict_data=conflict_data if conflict_data is not None else entry.conflict_data,
        last_error=error,
    )


def mark_as_pending(entry: SyncQueueEntry, now: datetime) -> SyncQueueEntry:
    """Backoff elapsed: the entry runs again with its attempt count intact."""
    return entry.with_changes(status=QueueStatus.PENDING, updated_at=now)


def reset_for_retry(entry: SyncQueueEntry, now: datetime) -> SyncQueueEntry:
    """Operator action: give a terminal entry a fresh retry budget."""
    return entry.with_changes(
        status=QueueStatus.PENDING,
        attempts=0,
        updated_at=now,
        conflict_data=None,
        last_error=None,
    )
