"""Flask helpers shared by the controllers: identity headers, JSON shaping, error mapping."""

from __future__ import annotations

import dataclasses
from datetime import date, datetime
from enum import Enum
from typing import Any

import structlog
from flask import Flask, jsonify, request

from ..auth.context import AuthContext
from ..core.enums import Role
from ..core.exceptions import AuthorizationError, DomainError, ErrorCode, SyncPermanentError, SyncTransientError, ValidationError

logger = structlog.get_logger(__name__)

EMPLOYEE_HEADER = "X-Employee-Id"
ROLE_HEADER = "X-Role"

HTTP_STATUS = {
    ErrorCode.VALIDATION: 400,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE: 409,
    ErrorCode.ALREADY_CLOCKED_IN: 409,
    ErrorCode.NOT_CLOCKED_IN: 409,
    ErrorCode.CATEGORY_CONFLICT: 409,
    ErrorCode.SYNC_REJECTED: 422,
}


def serialize(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize(v) for v in value]
    return value


def ok(status: int = 200, **payload):
    body = {"success": True}
    body.update({k: serialize(v) for k, v in payload.items()})
    return jsonify(body), status


def fail(message: str, status: int, *, error: str, field: str | None = None):
    body = {"success": False, "message": message, "error": error}
    if field:
        body["field"] = field
    return jsonify(body), status


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def current_actor() -> AuthContext:
    """Identity set by the authenticating proxy; trusted as-is."""
    employee_id = (request.headers.get(EMPLOYEE_HEADER) or "").strip()
    if not employee_id:
        raise AuthorizationError("Missing caller identity")
    raw_role = (request.headers.get(ROLE_HEADER) or Role.EMPLOYEE.value).strip().lower()
    try:
        role = Role(raw_role)
    except ValueError as exc:
        raise AuthorizationError(f"Unknown role: {raw_role}") from exc
    return AuthContext(employee_id=employee_id, role=role)


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def _domain_error(exc: DomainError):
        return fail(str(exc), HTTP_STATUS.get(exc.code, 400), error=exc.code.value, field=exc.field)

    @app.errorhandler(SyncTransientError)
    def _sync_unavailable(exc: SyncTransientError):
        logger.warning("sync_unavailable", path=request.path, error=str(exc))
        return fail(str(exc), 503, error="sync_unavailable")

    @app.errorhandler(SyncPermanentError)
    def _sync_rejected(exc: SyncPermanentError):
        return fail(str(exc), HTTP_STATUS[ErrorCode.SYNC_REJECTED], error=ErrorCode.SYNC_REJECTED.value)
