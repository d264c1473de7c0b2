from __future__ import annotations

from typing import Optional

from flask import Flask, request

from ..common.datetime_utils import parse_iso_datetime
from ..common.web import current_actor, json_body, ok
from ..container import Container
from ..core.exceptions import ValidationError


def _parse_when(value: Optional[str], field_name: str):
    try:
        return parse_iso_datetime(value)
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be an ISO date-time", field=field_name) from exc


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    def _target_employee(actor, data: Optional[dict] = None) -> str:
        if data is not None and data.get("employee_id"):
            return str(data["employee_id"])
        return request.args.get("employee_id") or actor.employee_id

    @app.route("/api/attendance/clock-in", methods=["POST"], endpoint="clock_in")
    def clock_in():
        actor = current_actor()
        data = json_body()
        record = service.clock_in(_target_employee(actor, data), notes=data.get("notes"), actor=actor)
        return ok(201, message="Clocked in", record=record)

    @app.route("/api/attendance/clock-out", methods=["POST"], endpoint="clock_out")
    def clock_out():
        actor = current_actor()
        data = json_body()
        record = service.clock_out(_target_employee(actor, data), notes=data.get("notes"), actor=actor)
        return ok(message="Clocked out", record=record)

    @app.route("/api/attendance/current", methods=["GET"], endpoint="current_shift")
    def current_shift():
        actor = current_actor()
        shift = service.get_current_shift(_target_employee(actor))
        return ok(shift=shift)

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    def attendance_history():
        actor = current_actor()
        records = service.history(
            _target_employee(actor),
            start=_parse_when(request.args.get("start"), "start"),
            end=_parse_when(request.args.get("end"), "end"),
            actor=actor,
        )
        return ok(records=records)

    @app.route("/api/attendance/summary", methods=["GET"], endpoint="attendance_summary")
    def attendance_summary():
        actor = current_actor()
        summary = service.summarize(
            _target_employee(actor),
            start=_parse_when(request.args.get("start"), "start"),
            end=_parse_when(request.args.get("end"), "end"),
            actor=actor,
        )
        return ok(summary=summary)

    @app.route("/api/attendance/<record_id>/adjust", methods=["POST"], endpoint="adjust_record")
    def adjust_record(record_id: str):
        actor = current_actor()
        data = json_body()
        changes = data.get("changes")
        if changes is None and data.get("field"):
            changes = {data["field"]: data.get("new_value")}
        if not isinstance(changes, dict):
            raise ValidationError("Provide either 'changes' or 'field' and 'new_value'")
        record = service.adjust_record(record_id, changes, reason=data.get("reason", ""), actor=actor)
        return ok(message="Record adjusted", record=record)

    @app.route("/api/attendance/<record_id>/adjustments", methods=["GET"], endpoint="record_adjustments")
    def record_adjustments(record_id: str):
        actor = current_actor()
        return ok(adjustments=service.adjustments(record_id, actor=actor))
