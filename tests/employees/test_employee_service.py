import pytest

from src.shift_sync.shift_sync.core.enums import Role, SyncOperation
from src.shift_sync.shift_sync.core.exceptions import AuthorizationError, DuplicateError, NotFoundError, ValidationError
from src.shift_sync.shift_sync.sync.handlers import EMPLOYEE


@pytest.fixture
def service(container):
    return container.employee_service


def test_manager_creates_employee_and_pushes_it(service, manager, remote):
    created = service.create(
        actor=manager, employee_number="E100", first_name=" Ana ", last_name="Lee", email="ana@example.com"
    )

    assert created.first_name == "Ana"
    assert created.role == Role.EMPLOYEE
    assert (SyncOperation.CREATE, EMPLOYEE, created.id) in remote.applied


def test_employee_cannot_create_employees(service, employee):
    with pytest.raises(AuthorizationError):
        service.create(actor=employee, employee_number="E100", first_name="A", last_name="B")


def test_employee_number_must_be_unique(service, manager):
    with pytest.raises(DuplicateError):
        service.create(actor=manager, employee_number="E001", first_name="A", last_name="B")


def test_invalid_email_is_rejected(service, manager):
    with pytest.raises(ValidationError) as exc:
        service.create(actor=manager, employee_number="E100", first_name="A", last_name="B", email="nope")
    assert exc.value.field == "email"


def test_only_admins_create_admins(service, manager, admin):
    with pytest.raises(ValidationError):
        service.create(actor=manager, employee_number="E100", first_name="A", last_name="B", role="admin")

    created = service.create(actor=admin, employee_number="E100", first_name="A", last_name="B", role="admin")
    assert created.role == Role.ADMIN


def test_deactivate_hides_employee_from_active_list(service, manager):
    service.deactivate("emp-2", actor=manager)

    assert "emp-2" not in {e.id for e in service.list_employees()}
    assert "emp-2" in {e.id for e in service.list_employees(active_only=False)}
    assert service.get("emp-2").is_active is False


def test_unknown_employee(service):
    with pytest.raises(NotFoundError):
        service.get("ghost")
