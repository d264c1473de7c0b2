from __future__ import annotations

import hmac
from typing import Optional

from flask import Flask, request

from ..auth.context import require_supervisor
from ..common.web import current_actor, json_body, ok
from ..container import Container
from ..core.enums import ConflictType, RuleStrategy, SyncOperation
from ..core.exceptions import AuthorizationError, NotFoundError, ValidationError


def _int_arg(value, field_name: str, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be an integer", field=field_name) from exc


def register(app: Flask, container: Container) -> None:
    if container.is_server:
        _register_replica(app, container)
        return

    coordinator = container.coordinator

    @app.route("/api/sync/status", methods=["GET"], endpoint="sync_status")
    def sync_status():
        current_actor()
        return ok(status=coordinator.status(), is_syncing=coordinator.is_syncing, online=coordinator.is_connected())

    @app.route("/api/sync/trigger", methods=["POST"], endpoint="sync_trigger")
    def sync_trigger():
        current_actor()
        data = json_body()
        auto_resolve = data.get("auto_resolve")
        result = coordinator.trigger(
            batch_size=_int_arg(data.get("batch_size"), "batch_size"),
            auto_resolve=None if auto_resolve is None else bool(auto_resolve),
        )
        return ok(result=result)

    @app.route("/api/sync/cancel", methods=["POST"], endpoint="sync_cancel")
    def sync_cancel():
        require_supervisor(current_actor(), "cancel a sync run")
        coordinator.cancel()
        return ok(message="Cancellation requested")

    @app.route("/api/sync/recover", methods=["POST"], endpoint="sync_recover")
    def sync_recover():
        require_supervisor(current_actor(), "recover the sync queue")
        return ok(recovered=coordinator.recover())

    @app.route("/api/sync/conflicts", methods=["GET"], endpoint="sync_conflicts")
    def sync_conflicts():
        require_supervisor(current_actor(), "view sync conflicts")
        return ok(conflicts=coordinator.conflicts())

    @app.route("/api/sync/conflicts/<conflict_id>/resolve", methods=["POST"], endpoint="sync_resolve_conflict")
    def sync_resolve_conflict(conflict_id: str):
        actor = current_actor()
        data = json_body()
        conflict = coordinator.resolve_conflict(
            conflict_id,
            data.get("resolution", ""),
            actor=actor,
            merged_data=data.get("merged_data"),
            reason=data.get("reason"),
        )
        return ok(message="Conflict resolved", conflict=conflict)

    @app.route("/api/sync/conflicts/history", methods=["GET"], endpoint="sync_resolution_history")
    def sync_resolution_history():
        require_supervisor(current_actor(), "view the resolution history")
        limit = _int_arg(request.args.get("limit"), "limit", 50)
        return ok(history=coordinator.resolution_history(limit=limit))

    @app.route("/api/sync/rules", methods=["GET"], endpoint="sync_rules")
    def sync_rules():
        require_supervisor(current_actor(), "view auto-resolution rules")
        return ok(rules=coordinator.rules())

    @app.route("/api/sync/rules", methods=["POST"], endpoint="sync_create_rule")
    def sync_create_rule():
        actor = current_actor()
        data = json_body()
        try:
            conflict_type = ConflictType(data.get("conflict_type"))
            strategy = RuleStrategy(data.get("strategy"))
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        rule = coordinator.create_rule(
            actor=actor,
            entity_type=data.get("entity_type", ""),
            conflict_type=conflict_type,
            strategy=strategy,
            priority=_int_arg(data.get("priority"), "priority", 100),
            field_pattern=data.get("field_pattern"),
        )
        return ok(201, rule=rule)

    @app.route("/api/sync/failed", methods=["GET"], endpoint="sync_failed_items")
    def sync_failed_items():
        require_supervisor(current_actor(), "view failed sync items")
        return ok(items=coordinator.failed_items())

    @app.route("/api/sync/failed/<entry_id>/retry", methods=["POST"], endpoint="sync_retry_failed")
    def sync_retry_failed(entry_id: str):
        entry = coordinator.retry_failed(entry_id, actor=current_actor())
        return ok(message="Entry queued for retry", entry=entry)

    @app.route("/api/sync/clear-completed", methods=["POST"], endpoint="sync_clear_completed")
    def sync_clear_completed():
        require_supervisor(current_actor(), "clear the sync queue")
        data = json_body()
        removed = coordinator.clear_completed(older_than_days=_int_arg(data.get("older_than_days"), "older_than_days", 7))
        return ok(removed=removed)

    @app.route("/api/sync/history", methods=["GET"], endpoint="sync_history")
    def sync_history():
        current_actor()
        return ok(runs=coordinator.history(limit=_int_arg(request.args.get("limit"), "limit", 20)))


def _register_replica(app: Flask, container: Container) -> None:
    """Authoritative-copy endpoints called by client nodes."""

    def _check_key() -> None:
        expected = app.config.get("SYNC_API_KEY")
        if not expected:
            return
        supplied = (request.headers.get("Authorization") or "").removeprefix("Bearer ").strip()
        if not hmac.compare_digest(supplied, str(expected)):
            raise AuthorizationError("Invalid sync API key")

    def _handler(entity_type: str):
        handler = container.handlers.get(entity_type)
        if handler is None:
            raise NotFoundError(f"Unknown entity type: {entity_type}")
        return handler

    @app.route("/api/sync/entities/<entity_type>/<entity_id>", methods=["GET"], endpoint="replica_fetch")
    def replica_fetch(entity_type: str, entity_id: str):
        _check_key()
        data = _handler(entity_type).load(entity_id)
        if data is None:
            raise NotFoundError(f"{entity_type} {entity_id} not found")
        return ok(data=data)

    @app.route("/api/sync/entities/<entity_type>/<entity_id>", methods=["PUT"], endpoint="replica_apply")
    def replica_apply(entity_type: str, entity_id: str):
        _check_key()
        body = json_body()
        try:
            operation = SyncOperation(body.get("operation", SyncOperation.UPDATE.value))
        except ValueError as exc:
            raise ValidationError(f"Invalid operation: {body.get('operation')}") from exc
        if operation == SyncOperation.DELETE:
            raise ValidationError("Use DELETE for delete operations")
        if not isinstance(body.get("data"), dict):
            raise ValidationError("data is required", field="data")
        stored = _handler(entity_type).apply(operation, entity_id, body["data"])
        return ok(data=stored)

    @app.route("/api/sync/entities/<entity_type>/<entity_id>", methods=["DELETE"], endpoint="replica_delete")
    def replica_delete(entity_type: str, entity_id: str):
        _check_key()
        handler = _handler(entity_type)
        if handler.load(entity_id) is None:
            raise NotFoundError(f"{entity_type} {entity_id} not found")
        return ok(data=handler.apply(SyncOperation.DELETE, entity_id, None))
