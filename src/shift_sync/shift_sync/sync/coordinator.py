from __future__ import annotations

import threading
import uuid
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import structlog

from ..auth.context import AuthContext, require_supervisor
from ..common.clock import Clock
from ..core.constants import DEFAULT_COMPLETED_RETENTION_DAYS, DEFAULT_SYNC_BATCH_SIZE, MAX_SYNC_ATTEMPTS
from ..core.enums import ConflictStatus, QueueStatus, RecordSyncStatus, Resolution, SyncOperation, SyncRunStatus
from ..core.exceptions import (
    DomainError,
    DuplicateError,
    NotFoundError,
    SyncError,
    SyncPermanentError,
    SyncTransientError,
    ValidationError,
)
from .connectivity import ConnectivityService
from .detector import detect_conflict
from .handlers import EntityHandler, HandlerRegistry
from .model import (
    AutoResolutionRule,
    ConflictAuditEntry,
    ConflictDetectionResult,
    ConflictRecord,
    SubmitOutcome,
    SyncQueueEntry,
    SyncRunLog,
    SyncRunResult,
    SyncStatusSnapshot,
)
from .queue import (
    create_entry,
    is_due,
    mark_as_completed,
    mark_as_failed,
    mark_as_pending,
    mark_as_processing,
    reset_for_retry,
    should_retry,
    validate_entry,
)
from .remote import RemoteGateway
from .repository import SyncQueueRepository, SyncRunRepository
from .resolver import REMOTE_WRITES, ConflictResolver

logger = structlog.get_logger(__name__)


class _Outcome(str, Enum):
    COMPLETED = "completed"
    AUTO_RESOLVED = "auto_resolved"
    CONFLICT = "conflict"
    FAILED = "failed"


class SyncCoordinator:
    """Routes writes online or into the queue, and drains the queue on reconnection.

    Each instance owns its single-flight guard and cancel flag, so independent
    coordinators never interfere with each other.
    """

    def __init__(
        self,
        *,
        queue: SyncQueueRepository,
        runs: SyncRunRepository,
        resolver: ConflictResolver,
        handlers: HandlerRegistry,
        remote: RemoteGateway,
        connectivity: ConnectivityService,
        clock: Clock,
        batch_size: int = DEFAULT_SYNC_BATCH_SIZE,
        auto_resolve: bool = False,
    ):
        self._queue = queue
        self._runs = runs
        self._resolver = resolver
        self._handlers = handlers
        self._remote = remote
        self._connectivity = connectivity
        self._clock = clock
        self._batch_size = batch_size
        self._auto_resolve = auto_resolve
        self._drain_lock = threading.Lock()
        self._cancel = threading.Event()

    @property
    def is_syncing(self) -> bool:
        return self._drain_lock.locked()

    def is_connected(self) -> bool:
        return self._connectivity.is_connected()

    # ------------------------------------------------------------------ submit

    def _prepare(
        self,
        operation: SyncOperation | str,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]],
        base_data: Optional[Dict[str, Any]] = None,
    ) -> Tuple[SyncQueueEntry, EntityHandler]:
        """Shape checks shared by both entry points; a bad shape never reaches the queue."""
        try:
            op = SyncOperation(operation)
        except ValueError as exc:
            raise ValidationError(f"Invalid operation: {operation}", field="operation") from exc

        handler = self._handlers.get(entity_type)
        if handler is None:
            raise ValidationError(f"Unknown entity type: {entity_type}", field="entity_type")

        entry = create_entry(op, entity_type, entity_id, data, now=self._clock.now(), base_data=base_data)
        errors = validate_entry(entry)
        if errors:
            raise ValidationError("; ".join(errors))
        if data is not None and op != SyncOperation.DELETE:
            try:
                handler.parse(data)
            except SyncPermanentError as exc:
                raise ValidationError(str(exc), field="data") from exc
        return entry, handler

    def submit(
        self,
        operation: SyncOperation | str,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> SubmitOutcome:
        """Apply a raw change to the local copy under its business rules, then publish it.

        A rule violation is raised to the caller and nothing is written or queued.
        """
        entry, handler = self._prepare(operation, entity_type, entity_id, data)
        op = SyncOperation(entry.operation)

        base = handler.load(entry.entity_id)
        if op == SyncOperation.CREATE and base is not None:
            raise DuplicateError(f"{entity_type} {entity_id} already exists", field="entity_id")
        if op != SyncOperation.CREATE and base is None:
            raise NotFoundError(f"{entity_type} {entity_id} not found")

        try:
            stored = handler.store(op, entry.entity_id, data, synced=False)
        except SyncPermanentError as exc:
            raise ValidationError(str(exc), field="data") from exc
        logger.info("local_change_applied", operation=op.value, entity_type=entity_type, entity_id=entry.entity_id)

        entry = entry.with_changes(data=None if op == SyncOperation.DELETE else stored, base_data=base)
        return self._route(entry, handler)

    def publish(
        self,
        operation: SyncOperation | str,
        entity_type: str,
        entity_id: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        base_data: Optional[Dict[str, Any]] = None,
    ) -> SubmitOutcome:
        """Push a change the local copy already holds to the authoritative copy, or queue it."""
        entry, handler = self._prepare(operation, entity_type, entity_id, data, base_data)
        return self._route(entry, handler)

    def _route(self, entry: SyncQueueEntry, handler: EntityHandler) -> SubmitOutcome:
        data = entry.data
        entity_type, entity_id = entry.entity_type, entry.entity_id

        if not self._connectivity.is_connected():
            self._queue.add(entry)
            logger.info("queued_offline", entry_id=entry.id, operation=entry.operation, entity_type=entity_type, entity_id=entity_id)
            return SubmitOutcome(offline=True, sync_status=RecordSyncStatus.PENDING, result=data, entry_id=entry.id)

        if self.is_syncing or self._queue.has_unfinished(entity_type, entity_id):
            # Earlier changes of this entity must land first.
            self._queue.add(entry)
            logger.info("queued_behind_pending", entry_id=entry.id, entity_type=entity_type, entity_id=entity_id)
            return SubmitOutcome(offline=False, sync_status=RecordSyncStatus.PENDING, result=data, entry_id=entry.id)

        try:
            detection, remote = self._check_remote(entry, handler)
            if detection is not None:
                self._queue.add(entry)
                logger.info("queued_for_conflict_check", entry_id=entry.id, entity_type=entity_type, entity_id=entity_id)
                return SubmitOutcome(offline=False, sync_status=RecordSyncStatus.PENDING, result=data, entry_id=entry.id)
            self._push(entry, handler, remote)
        except SyncTransientError as exc:
            self._queue.add(entry)
            logger.warning("direct_write_failed_queued", entry_id=entry.id, entity_type=entity_type, error=str(exc))
            return SubmitOutcome(offline=False, sync_status=RecordSyncStatus.PENDING, result=data, entry_id=entry.id)
        except SyncPermanentError as exc:
            self._queue.add(mark_as_failed(entry, self._clock.now(), error=str(exc), terminal=True))
            logger.error("direct_write_rejected", entry_id=entry.id, entity_type=entity_type, error=str(exc))
            return SubmitOutcome(offline=False, sync_status=RecordSyncStatus.PENDING, result=data, entry_id=entry.id)

        return SubmitOutcome(offline=False, sync_status=RecordSyncStatus.SYNCED, result=data)

    # ----------------------------------------------------------------- trigger

    def trigger(self, *, batch_size: Optional[int] = None, auto_resolve: Optional[bool] = None) -> SyncRunResult:
        if batch_size is not None and batch_size < 1:
            raise ValidationError("batch_size must be at least 1", field="batch_size")
        if not self._drain_lock.acquire(blocking=False):
            logger.info("sync_already_running")
            return SyncRunResult(in_progress=True)
        try:
            if not self._connectivity.is_connected():
                logger.info("sync_skipped_offline")
                return SyncRunResult(offline=True)
            self._cancel.clear()
            return self._drain(
                limit=self._batch_size if batch_size is None else batch_size,
                auto_resolve=self._auto_resolve if auto_resolve is None else auto_resolve,
            )
        finally:
            self._drain_lock.release()

    def cancel(self) -> None:
        """Stop the running drain before its next entry."""
        self._cancel.set()

    def release_due_retries(self) -> int:
        """Failed entries whose backoff has elapsed go back to pending."""
        now = self._clock.now()
        released = 0
        for entry in self._queue.list_by_status(QueueStatus.FAILED):
            if is_due(entry, now):
                self._queue.update(mark_as_pending(entry, now))
                released += 1
        if released:
            logger.info("sync_retries_released", count=released)
        return released

    def _drain(self, *, limit: int, auto_resolve: bool) -> SyncRunResult:
        started_at = self._clock.now()
        processed = succeeded = failed = conflicts = parked = 0
        cancelled = False
        errors: List[str] = []
        blocked: Set[Tuple[str, str]] = set()

        logger.info("sync_started", batch_size=limit, auto_resolve=auto_resolve)
        self.release_due_retries()
        for entry in self._queue.list_unfinished():
            if processed >= limit:
                break
            if entry.entity_key in blocked:
                continue
            if entry.status != QueueStatus.PENDING:
                blocked.add(entry.entity_key)
                continue
            if self._cancel.is_set() or not self._connectivity.is_connected():
                cancelled = True
                logger.info("sync_cancelled", processed=processed)
                break

            processed += 1
            outcome = self._process(entry, auto_resolve=auto_resolve, errors=errors)
            if outcome == _Outcome.COMPLETED:
                succeeded += 1
            elif outcome == _Outcome.AUTO_RESOLVED:
                succeeded += 1
                conflicts += 1
            elif outcome == _Outcome.CONFLICT:
                conflicts += 1
                parked += 1
                blocked.add(entry.entity_key)
            else:
                failed += 1
                blocked.add(entry.entity_key)

        status = self._run_status(succeeded=succeeded, failed=failed, parked=parked)
        finished_at = self._clock.now()
        self._runs.add(
            SyncRunLog(
                id=str(uuid.uuid4()),
                started_at=started_at,
                finished_at=finished_at,
                processed=processed,
                succeeded=succeeded,
                failed=failed,
                conflicts=conflicts,
                status=status,
            )
        )
        logger.info(
            "sync_finished",
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            conflicts=conflicts,
            status=status.value,
            cancelled=cancelled,
        )
        return SyncRunResult(
            processed=processed,
            succeeded=succeeded,
            failed=failed,
            conflicts=conflicts,
            cancelled=cancelled,
            errors=errors,
        )

    @staticmethod
    def _run_status(*, succeeded: int, failed: int, parked: int) -> SyncRunStatus:
        if failed == 0 and parked == 0:
            return SyncRunStatus.SUCCESS
        if succeeded > 0:
            return SyncRunStatus.PARTIAL_SUCCESS
        return SyncRunStatus.ERROR

    def _process(self, entry: SyncQueueEntry, *, auto_resolve: bool, errors: List[str]) -> _Outcome:
        now = self._clock.now()
        entry = mark_as_processing(entry, now)
        self._queue.update(entry)

        handler = self._handlers.get(entry.entity_type)
        problems = validate_entry(entry)
        if handler is None:
            problems.append(f"Unknown entity type: {entry.entity_type}")
        if problems:
            return self._fail(entry, "; ".join(problems), errors=errors)

        try:
            if entry.data is not None and entry.operation != SyncOperation.DELETE.value:
                handler.parse(entry.data)
            detection, remote = self._check_remote(entry, handler)
            if detection is not None:
                return self._park(entry, handler, detection, remote, auto_resolve=auto_resolve)
            self._push(entry, handler, remote)
        except SyncPermanentError as exc:
            return self._fail(entry, str(exc), errors=errors, terminal=True)
        except SyncTransientError as exc:
            return self._fail(entry, str(exc), errors=errors)
        except Exception as exc:
            logger.exception("sync_entry_crashed", entry_id=entry.id)
            return self._fail(entry, f"{type(exc).__name__}: {exc}", errors=errors)

        self._queue.update(mark_as_completed(entry, self._clock.now()))
        logger.info("sync_entry_applied", entry_id=entry.id, operation=entry.operation, entity_id=entry.entity_id)
        return _Outcome.COMPLETED

    def _fail(self, entry: SyncQueueEntry, error: str, *, errors: List[str], terminal: bool = False) -> _Outcome:
        failed = mark_as_failed(entry, self._clock.now(), error=error, terminal=terminal)
        self._queue.update(failed)
        errors.append(f"{entry.id}: {error}")
        if failed.attempts >= MAX_SYNC_ATTEMPTS:
            logger.error("sync_entry_gave_up", entry_id=entry.id, attempts=failed.attempts, error=error)
        else:
            logger.warning("sync_entry_failed", entry_id=entry.id, attempts=failed.attempts, error=error)
        return _Outcome.FAILED

    def _park(
        self,
        entry: SyncQueueEntry,
        handler: EntityHandler,
        detection: ConflictDetectionResult,
        remote: Optional[Dict[str, Any]],
        *,
        auto_resolve: bool,
    ) -> _Outcome:
        conflict = self._resolver.park(entry, detection, remote_data=remote)
        handler.mark_conflict(entry.entity_id)
        # Parked before any rule runs.
        conflict_data = {"conflict_id": conflict.id, "conflict_type": conflict.conflict_type.value}
        self._queue.update(mark_as_failed(entry, self._clock.now(), conflict_data=conflict_data, error="Conflict detected"))

        if auto_resolve:
            try:
                closed = self._resolver.auto_resolve(conflict)
            except (SyncError, DomainError) as exc:
                logger.warning("auto_resolve_failed", conflict_id=conflict.id, error=str(exc))
                closed = None
            except Exception:
                logger.exception("auto_resolve_crashed", conflict_id=conflict.id)
                closed = None
            if closed is not None:
                if closed.resolution in REMOTE_WRITES:
                    self._runs.set_last_sync_at(self._clock.now())
                return _Outcome.AUTO_RESOLVED
        return _Outcome.CONFLICT

    @staticmethod
    def _diverged(handler: EntityHandler, base: Optional[Dict[str, Any]], remote: Optional[Dict[str, Any]]) -> bool:
        if base is None and remote is None:
            return False
        if base is None or remote is None:
            return True
        return bool(handler.diff_fields(base, remote))

    def _check_remote(
        self, entry: SyncQueueEntry, handler: EntityHandler
    ) -> Tuple[Optional[ConflictDetectionResult], Optional[Dict[str, Any]]]:
        """Fetch the remote copy for update/delete and classify it if it moved under us."""
        if entry.operation == SyncOperation.CREATE.value:
            return None, None
        remote = self._remote.fetch(entry.entity_type, entry.entity_id)
        if not self._diverged(handler, entry.base_data, remote):
            return None, remote
        detection = detect_conflict(entry.data, remote, self._runs.get_last_sync_at())
        return (detection if detection.has_conflict else None), remote

    def _push(self, entry: SyncQueueEntry, handler: EntityHandler, remote: Optional[Dict[str, Any]]) -> None:
        op = SyncOperation(entry.operation)
        if op == SyncOperation.DELETE and remote is None:
            # Already gone remotely.
            return
        self._remote.apply(op, entry.entity_type, entry.entity_id, entry.data)
        self._runs.set_last_sync_at(self._clock.now())
        handler.mark_synced(entry.entity_id)

    # ------------------------------------------------------- status & upkeep

    def recover(self) -> int:
        """Entries left processing by a crash go back to pending."""
        count = self._queue.reset_processing(self._clock.now())
        if count:
            logger.warning("sync_recovered_processing", count=count)
        return count

    def status(self) -> SyncStatusSnapshot:
        """Failed entries are counted apart by what they wait on."""
        counts = self._queue.count_by_status()
        recent = self._runs.list_recent(limit=1)
        failed = self._queue.list_by_status(QueueStatus.FAILED)
        parked = sum(1 for e in failed if e.conflict_id is not None)
        retrying = sum(1 for e in failed if e.conflict_id is None and should_retry(e))
        return SyncStatusSnapshot(
            pending_items=counts.get(QueueStatus.PENDING, 0),
            failed_items=len(failed) - parked - retrying,
            retrying_items=retrying,
            parked_items=parked,
            processing_items=counts.get(QueueStatus.PROCESSING, 0),
            open_conflicts=len(self._resolver.list_conflicts(status=ConflictStatus.PENDING)),
            last_sync_at=self._runs.get_last_sync_at(),
            last_sync_status=recent[0].status if recent else None,
        )

    def conflicts(self, *, status: Optional[ConflictStatus] = ConflictStatus.PENDING) -> Sequence[ConflictRecord]:
        return self._resolver.list_conflicts(status=status)

    def resolve_conflict(
        self,
        conflict_id: str,
        resolution: Resolution | str,
        *,
        actor: AuthContext,
        merged_data: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> ConflictRecord:
        try:
            resolution = Resolution(resolution)
        except ValueError as exc:
            raise ValidationError(f"Invalid resolution: {resolution}", field="resolution") from exc
        if resolution in REMOTE_WRITES and not self._connectivity.is_connected():
            raise SyncTransientError("Cannot write the resolution while offline")

        closed = self._resolver.resolve(conflict_id, resolution, actor=actor, merged_data=merged_data, reason=reason)
        if resolution in REMOTE_WRITES:
            self._runs.set_last_sync_at(self._clock.now())
        return closed

    def resolution_history(self, *, limit: int = 50) -> Sequence[ConflictAuditEntry]:
        return self._resolver.resolution_history(limit=limit)

    def rules(self) -> Sequence[AutoResolutionRule]:
        return self._resolver.list_rules()

    def create_rule(self, **kwargs) -> AutoResolutionRule:
        return self._resolver.create_rule(**kwargs)

    def failed_items(self) -> Sequence[SyncQueueEntry]:
        """Entries that exhausted their retry budget and wait for an operator."""
        return [
            e
            for e in self._queue.list_by_status(QueueStatus.FAILED)
            if e.attempts >= MAX_SYNC_ATTEMPTS and e.conflict_id is None
        ]

    def retry_failed(self, entry_id: str, *, actor: AuthContext) -> SyncQueueEntry:
        require_supervisor(actor, "retry failed sync items")
        entry = self._queue.get(entry_id)
        if not entry:
            raise NotFoundError(f"Queue entry {entry_id} not found")
        if entry.status != QueueStatus.FAILED:
            raise ValidationError(f"Queue entry {entry_id} is {entry.status.value}, not failed")
        if entry.conflict_id is not None:
            raise ValidationError("Resolve the attached conflict instead of retrying the entry")

        reset = reset_for_retry(entry, self._clock.now())
        self._queue.update(reset)
        logger.info("sync_entry_reset", entry_id=entry_id, actor=actor.employee_id)
        return reset

    def clear_completed(self, *, older_than_days: int = DEFAULT_COMPLETED_RETENTION_DAYS) -> int:
        cutoff = self._clock.now() - timedelta(days=older_than_days)
        removed = self._queue.delete_completed_before(cutoff)
        logger.info("sync_queue_cleared", removed=removed, older_than_days=older_than_days)
        return removed

    def history(self, *, limit: int = 20) -> Sequence[SyncRunLog]:
        return self._runs.list_recent(limit=limit)
