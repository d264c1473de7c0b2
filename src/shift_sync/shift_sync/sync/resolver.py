from __future__ import annotations

import re
import uuid
from typing import Any, Dict, Optional, Sequence

import structlog

from ..auth.context import SYSTEM_ACTOR, AuthContext, require_supervisor
from ..common.clock import Clock
from ..common.datetime_utils import try_parse_iso_datetime
from ..core.enums import ConflictStatus, ConflictType, Resolution, RuleStrategy, SyncOperation
from ..core.exceptions import NotFoundError, SyncPermanentError, ValidationError
from .handlers import HandlerRegistry
from .model import AutoResolutionRule, ConflictAuditEntry, ConflictDetectionResult, ConflictRecord, SyncQueueEntry
from .queue import mark_as_completed
from .remote import RemoteGateway
from .repository import AutoResolutionRuleRepository, ConflictRepository, SyncQueueRepository

logger = structlog.get_logger(__name__)

REMOTE_WRITES = {Resolution.USE_LOCAL, Resolution.MERGE}


def rule_matches(rule: AutoResolutionRule, conflict: ConflictRecord) -> bool:
    if not rule.is_active:
        return False
    if rule.entity_type not in ("*", conflict.entity_type):
        return False
    if rule.conflict_type != conflict.conflict_type:
        return False
    if rule.field_pattern:
        pattern = re.compile(rule.field_pattern)
        return any(pattern.search(f) for f in conflict.conflict_fields)
    return True


def pick_latest(conflict: ConflictRecord) -> Resolution:
    """Side with the greater `updated_at`; ties and missing or unreadable stamps keep the remote copy."""
    local_at = try_parse_iso_datetime((conflict.local_data or {}).get("updated_at"))
    remote_at = try_parse_iso_datetime((conflict.remote_data or {}).get("updated_at"))
    if local_at is not None and (remote_at is None or local_at > remote_at):
        return Resolution.USE_LOCAL
    return Resolution.USE_REMOTE


class ConflictResolver:
    """Parks detected conflicts and closes them, by hand or through the rule table."""

    def __init__(
        self,
        *,
        conflicts: ConflictRepository,
        rules: AutoResolutionRuleRepository,
        queue: SyncQueueRepository,
        handlers: HandlerRegistry,
        remote: RemoteGateway,
        clock: Clock,
    ):
        self._conflicts = conflicts
        self._rules = rules
        self._queue = queue
        self._handlers = handlers
        self._remote = remote
        self._clock = clock

    def park(
        self,
        entry: SyncQueueEntry,
        detection: ConflictDetectionResult,
        *,
        remote_data: Optional[Dict[str, Any]],
    ) -> ConflictRecord:
        now = self._clock.now()
        conflict = ConflictRecord(
            id=str(uuid.uuid4()),
            queue_entry_id=entry.id,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            local_data=entry.data,
            remote_data=remote_data,
            conflict_type=detection.conflict_type or ConflictType.DATA,
            conflict_fields=list(detection.conflict_fields),
            created_at=now,
            updated_at=now,
        )
        self._conflicts.add(conflict)
        logger.warning(
            "conflict_parked",
            conflict_id=conflict.id,
            entity_type=conflict.entity_type,
            entity_id=conflict.entity_id,
            conflict_type=conflict.conflict_type.value,
            fields=conflict.conflict_fields,
        )
        return conflict

    def list_conflicts(self, *, status: Optional[ConflictStatus] = ConflictStatus.PENDING) -> Sequence[ConflictRecord]:
        return self._conflicts.list(status=status)

    def resolution_history(self, *, limit: int = 50) -> Sequence[ConflictAuditEntry]:
        return self._conflicts.list_audit(limit=limit)

    def list_rules(self) -> Sequence[AutoResolutionRule]:
        return self._rules.list_active()

    def create_rule(
        self,
        *,
        actor: AuthContext,
        entity_type: str,
        conflict_type: ConflictType,
        strategy: RuleStrategy,
        priority: int = 100,
        field_pattern: Optional[str] = None,
    ) -> AutoResolutionRule:
        require_supervisor(actor, "configure auto-resolution rules")
        if not entity_type or not entity_type.strip():
            raise ValidationError("entity_type is required", field="entity_type")
        if entity_type != "*" and entity_type not in self._handlers:
            raise ValidationError(f"Unknown entity type: {entity_type}", field="entity_type")
        if field_pattern:
            try:
                re.compile(field_pattern)
            except re.error as exc:
                raise ValidationError(f"Invalid field pattern: {exc}", field="field_pattern") from exc

        rule = AutoResolutionRule(
            id=str(uuid.uuid4()),
            entity_type=entity_type,
            conflict_type=ConflictType(conflict_type),
            strategy=RuleStrategy(strategy),
            priority=int(priority),
            field_pattern=field_pattern or None,
            created_at=self._clock.now(),
        )
        self._rules.add(rule)
        return rule

    def auto_resolve(self, conflict: ConflictRecord) -> Optional[ConflictRecord]:
        """Apply the first matching rule; None leaves the conflict for a human."""
        for rule in self._rules.list_active():
            if not rule_matches(rule, conflict):
                continue
            if rule.strategy == RuleStrategy.USE_LATEST:
                resolution = pick_latest(conflict)
            else:
                resolution = Resolution(rule.strategy.value)
            logger.info("conflict_rule_matched", conflict_id=conflict.id, rule_id=rule.id, resolution=resolution.value)
            return self._close(
                conflict,
                resolution,
                actor=SYSTEM_ACTOR,
                merged_data=None,
                reason=f"Auto-resolution rule {rule.id} ({rule.strategy.value})",
            )
        return None

    def resolve(
        self,
        conflict_id: str,
        resolution: Resolution,
        *,
        actor: AuthContext,
        merged_data: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ) -> ConflictRecord:
        require_supervisor(actor, "resolve sync conflicts")
        conflict = self._conflicts.get(conflict_id)
        if not conflict:
            raise NotFoundError(f"Conflict {conflict_id} not found")
        if not conflict.is_open:
            raise ValidationError(f"Conflict {conflict_id} is already {conflict.status.value}")

        resolution = Resolution(resolution)
        if resolution == Resolution.MERGE:
            if merged_data is None:
                raise ValidationError("merged_data is required for a merge resolution", field="merged_data")
            handler = self._handlers.get(conflict.entity_type)
            if handler is not None:
                try:
                    handler.parse(merged_data)
                except SyncPermanentError as exc:
                    raise ValidationError(str(exc), field="merged_data") from exc

        return self._close(conflict, resolution, actor=actor.employee_id, merged_data=merged_data, reason=reason)

    def _close(
        self,
        conflict: ConflictRecord,
        resolution: Resolution,
        *,
        actor: str,
        merged_data: Optional[Dict[str, Any]],
        reason: Optional[str],
    ) -> ConflictRecord:
        now = self._clock.now()
        entry = self._queue.get(conflict.queue_entry_id)
        handler = self._handlers.get(conflict.entity_type)
        operation = _entry_operation(entry)

        if resolution == Resolution.USE_LOCAL:
            local_op = SyncOperation.DELETE if conflict.local_data is None else operation
            self._remote.apply(local_op, conflict.entity_type, conflict.entity_id, conflict.local_data)
            if handler is not None:
                handler.mark_synced(conflict.entity_id)
        elif resolution == Resolution.USE_REMOTE:
            if handler is not None:
                if conflict.remote_data is not None:
                    handler.apply(SyncOperation.UPDATE, conflict.entity_id, conflict.remote_data)
                handler.mark_synced(conflict.entity_id)
        elif resolution == Resolution.MERGE:
            merge_op = SyncOperation.UPDATE if operation == SyncOperation.DELETE else operation
            # Local rules run before anything leaves the device.
            if handler is not None:
                handler.store(SyncOperation.UPDATE, conflict.entity_id, merged_data, synced=False)
            self._remote.apply(merge_op, conflict.entity_type, conflict.entity_id, merged_data)
            if handler is not None:
                handler.mark_synced(conflict.entity_id)

        if entry is not None:
            self._queue.update(mark_as_completed(entry, now))

        closed = conflict.with_changes(
            status=ConflictStatus.IGNORED if resolution == Resolution.IGNORE else ConflictStatus.RESOLVED,
            resolution=resolution,
            resolved_by=actor,
            resolved_at=now,
            updated_at=now,
        )
        self._conflicts.update(closed)
        self._conflicts.add_audit(
            ConflictAuditEntry(
                id=str(uuid.uuid4()),
                conflict_id=conflict.id,
                resolution=resolution,
                actor=actor,
                timestamp=now,
                reason=reason,
            )
        )
        logger.info("conflict_resolved", conflict_id=conflict.id, resolution=resolution.value, actor=actor)
        return closed


def _entry_operation(entry: Optional[SyncQueueEntry]) -> SyncOperation:
    if entry is None:
        return SyncOperation.UPDATE
    try:
        return SyncOperation(entry.operation)
    except ValueError:
        return SyncOperation.UPDATE
