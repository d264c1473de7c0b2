from __future__ import annotations

from typing import Optional, Sequence

from ..core.enums import Role
from ..database.store import TransactionalStore
from .model import Employee
from .repository import EmployeeRepository

_COLUMNS = "id, employee_number, first_name, last_name, email, role, is_active, created_at, updated_at"


class MySQLEmployeeRepository(EmployeeRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    @staticmethod
    def _to_model(row: dict) -> Employee:
        return Employee(
            id=str(row["id"]),
            employee_number=row["employee_number"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row.get("email"),
            role=Role(row["role"]),
            is_active=bool(row.get("is_active", True)),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def get_by_id(self, employee_id: str) -> Optional[Employee]:
        row = self._store.get(f"SELECT {_COLUMNS} FROM employees WHERE id=%s", (employee_id,))
        return self._to_model(row) if row else None

    def get_by_number(self, employee_number: str) -> Optional[Employee]:
        row = self._store.get(f"SELECT {_COLUMNS} FROM employees WHERE employee_number=%s", (employee_number,))
        return self._to_model(row) if row else None

    def list_all(self, *, active_only: bool = False) -> Sequence[Employee]:
        where = "WHERE is_active=1" if active_only else ""
        rows = self._store.all(f"SELECT {_COLUMNS} FROM employees {where} ORDER BY last_name, first_name")
        return [self._to_model(r) for r in rows]

    def save(self, employee: Employee) -> None:
        self._store.run(
            """
            INSERT INTO employees(id, employee_number, first_name, last_name, email, role, is_active, created_at, updated_at)
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
            ON DUPLICATE KEY UPDATE
                employee_number=VALUES(employee_number), first_name=VALUES(first_name),
                last_name=VALUES(last_name), email=VALUES(email), role=VALUES(role),
                is_active=VALUES(is_active), updated_at=VALUES(updated_at)
            """,
            (
                employee.id,
                employee.employee_number,
                employee.first_name,
                employee.last_name,
                employee.email,
                employee.role.value,
                1 if employee.is_active else 0,
                employee.created_at,
                employee.updated_at,
            ),
        )
