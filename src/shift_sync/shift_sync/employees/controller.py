from __future__ import annotations

from flask import Flask, request

from ..auth.context import require_self_or_supervisor, require_supervisor
from ..common.web import current_actor, json_body, ok
from ..container import Container
from ..core.enums import Role


def register(app: Flask, container: Container) -> None:
    service = container.employee_service

    @app.route("/api/employees", methods=["GET"], endpoint="list_employees")
    def list_employees():
        require_supervisor(current_actor(), "list employees")
        include_inactive = request.args.get("include_inactive", "0").lower() in {"1", "true", "yes"}
        return ok(employees=service.list_employees(active_only=not include_inactive))

    @app.route("/api/employees", methods=["POST"], endpoint="create_employee")
    def create_employee():
        actor = current_actor()
        data = json_body()
        employee = service.create(
            actor=actor,
            employee_number=data.get("employee_number", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            email=data.get("email"),
            role=data.get("role", Role.EMPLOYEE.value),
        )
        return ok(201, message="Employee created", employee=employee)

    @app.route("/api/employees/<employee_id>", methods=["GET"], endpoint="get_employee")
    def get_employee(employee_id: str):
        require_self_or_supervisor(current_actor(), employee_id, "view employee details")
        return ok(employee=service.get(employee_id))

    @app.route("/api/employees/<employee_id>", methods=["DELETE"], endpoint="deactivate_employee")
    def deactivate_employee(employee_id: str):
        employee = service.deactivate(employee_id, actor=current_actor())
        return ok(message="Employee deactivated", employee=employee)
