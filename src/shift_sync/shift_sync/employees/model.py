from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..core.enums import Role


@dataclass(frozen=True)
class Employee:
    """Domain entity: Employee.

    Note: plain data object; `employee_number` is the unique business key.
    """

    id: str
    employee_number: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    role: Role = Role.EMPLOYEE
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def with_changes(self, **changes) -> "Employee":
        return replace(self, **changes)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "employee_number": self.employee_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "role": self.role.value,
            "is_active": self.is_active,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_payload(cls, data: dict) -> "Employee":
        return cls(
            id=str(data["id"]),
            employee_number=str(data["employee_number"]),
            first_name=str(data["first_name"]),
            last_name=str(data["last_name"]),
            email=data.get("email"),
            role=Role(data.get("role", Role.EMPLOYEE.value)),
            is_active=bool(data.get("is_active", True)),
            created_at=parse_iso_datetime(data.get("created_at")),
            updated_at=parse_iso_datetime(data.get("updated_at")),
        )
