from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Actor role used for authorization checks."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def is_supervisor(self) -> bool:
        return self in {Role.MANAGER, Role.ADMIN}


class RecordSyncStatus(str, Enum):
    """Sync state of a locally stored attendance record."""

    PENDING = "pending"
    SYNCED = "synced"
    CONFLICT = "conflict"


class SyncOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class QueueStatus(str, Enum):
    """Lifecycle of a queue entry: pending -> processing -> completed | failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConflictType(str, Enum):
    DELETION = "deletion"
    TIMESTAMP = "timestamp"
    DATA = "data"


class ConflictStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class Resolution(str, Enum):
    """Manual resolutions accepted by the conflict resolver."""

    USE_LOCAL = "use_local"
    USE_REMOTE = "use_remote"
    MERGE = "merge"
    IGNORE = "ignore"


class RuleStrategy(str, Enum):
    """Strategies an auto-resolution rule may apply."""

    USE_LOCAL = "use_local"
    USE_REMOTE = "use_remote"
    USE_LATEST = "use_latest"


class SyncRunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    ERROR = "error"
