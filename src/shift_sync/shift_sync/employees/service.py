from __future__ import annotations

import re
import uuid
from typing import Optional, Sequence

import structlog

from ..auth.context import AuthContext, require_supervisor
from ..common.clock import Clock
from ..common.validators import require_non_empty
from ..core.enums import Role, SyncOperation
from ..core.exceptions import DuplicateError, NotFoundError, ValidationError
from ..sync.coordinator import SyncCoordinator
from ..sync.handlers import EMPLOYEE
from .model import Employee
from .repository import EmployeeRepository

logger = structlog.get_logger(__name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class EmployeeService:
    """Use case: manage the employees who clock in and out."""

    def __init__(self, employees: EmployeeRepository, *, clock: Clock, sync: Optional[SyncCoordinator] = None):
        self._employees = employees
        self._clock = clock
        self._sync = sync

    def get(self, employee_id: str) -> Employee:
        employee = self._employees.get_by_id(employee_id)
        if not employee:
            raise NotFoundError(f"Employee {employee_id} not found")
        return employee

    def list_employees(self, *, active_only: bool = True) -> Sequence[Employee]:
        return self._employees.list_all(active_only=active_only)

    def create(
        self,
        *,
        actor: AuthContext,
        employee_number: str,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        role: Role = Role.EMPLOYEE,
    ) -> Employee:
        require_supervisor(actor, "create employees")
        employee_number = require_non_empty(employee_number, "employee_number")
        first_name = require_non_empty(first_name, "first_name")
        last_name = require_non_empty(last_name, "last_name")
        if email and not _EMAIL.match(email):
            raise ValidationError("Invalid email address", field="email")
        try:
            role = Role(role)
        except ValueError as exc:
            raise ValidationError(f"Invalid role: {role}", field="role") from exc
        if role == Role.ADMIN and actor.role != Role.ADMIN:
            raise ValidationError("Only admins may create admin accounts", field="role")

        if self._employees.get_by_number(employee_number):
            raise DuplicateError(f"Employee number {employee_number} already exists", field="employee_number")

        now = self._clock.now()
        employee = Employee(
            id=str(uuid.uuid4()),
            employee_number=employee_number,
            first_name=first_name,
            last_name=last_name,
            email=email or None,
            role=role,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self._employees.save(employee)
        logger.info("employee_created", employee_id=employee.id, employee_number=employee_number)
        if self._sync is not None:
            self._sync.publish(SyncOperation.CREATE, EMPLOYEE, employee.id, employee.to_payload())
        return employee

    def deactivate(self, employee_id: str, *, actor: AuthContext) -> Employee:
        require_supervisor(actor, "deactivate employees")
        existing = self.get(employee_id)
        if not existing.is_active:
            return existing
        updated = existing.with_changes(is_active=False, updated_at=self._clock.now())
        self._employees.save(updated)
        logger.info("employee_deactivated", employee_id=employee_id, actor=actor.employee_id)
        if self._sync is not None:
            self._sync.publish(
                SyncOperation.UPDATE, EMPLOYEE, employee_id, updated.to_payload(), base_data=existing.to_payload()
            )
        return updated
