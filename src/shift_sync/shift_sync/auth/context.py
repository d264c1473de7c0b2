from __future__ import annotations

from dataclasses import dataclass

from ..core.enums import Role
from ..core.exceptions import AuthorizationError

SYSTEM_ACTOR = "system"


@dataclass(frozen=True)
class AuthContext:
    """Already-verified caller identity handed in by the authentication layer."""

    employee_id: str
    role: Role = Role.EMPLOYEE

    @property
    def is_supervisor(self) -> bool:
        return self.role.is_supervisor

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_supervisor(actor: AuthContext, action: str) -> None:
    if not actor.is_supervisor:
        raise AuthorizationError(f"Only managers or admins may {action}")


def require_admin(actor: AuthContext, action: str) -> None:
    if not actor.is_admin:
        raise AuthorizationError(f"Only admins may {action}")


def require_self_or_supervisor(actor: AuthContext, employee_id: str, action: str) -> None:
    if str(actor.employee_id) != str(employee_id) and not actor.is_supervisor:
        raise AuthorizationError(f"Only managers or admins may {action} for another employee")
