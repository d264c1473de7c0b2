import httpx
import pytest

from src.shift_sync.shift_sync.container import SERVER, assemble
from src.shift_sync.shift_sync.main import create_app
from src.shift_sync.shift_sync.sync.connectivity import StaticConnectivity
from src.shift_sync.shift_sync.sync.handlers import ATTENDANCE_RECORD, TIME_CATEGORY
from src.shift_sync.shift_sync.sync.remote import HttpRemoteGateway

from conftest import (
    InMemoryAttendance,
    InMemoryCategories,
    InMemoryConflicts,
    InMemoryQueue,
    InMemoryRules,
    InMemoryRuns,
)

SYNC_KEY = {"Authorization": "Bearer test-sync-key"}


def _as(employee_id, role="employee"):
    return {"X-Employee-Id": employee_id, "X-Role": role}


@pytest.fixture(autouse=True)
def testing_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.delenv("REMOTE_API_KEY", raising=False)


@pytest.fixture
def client(container):
    return create_app(container=container).test_client()


@pytest.fixture
def server_container(clock, employee_repo):
    return assemble(
        attendance_repo=InMemoryAttendance(),
        category_repo=InMemoryCategories(),
        employee_repo=employee_repo,
        clock=clock,
        node_role=SERVER,
    )


@pytest.fixture
def server_app(server_container):
    return create_app(container=server_container)


def test_health(client):
    body = client.get("/api/health").get_json()
    assert body == {"success": True, "node_role": "client"}


def test_clock_in_and_out(client, clock):
    response = client.post("/api/attendance/clock-in", json={"notes": "Gate 3"}, headers=_as("emp-1"))
    assert response.status_code == 201
    assert response.get_json()["record"]["sync_status"] == "synced"

    clock.advance(hours=8)
    response = client.post("/api/attendance/clock-out", json={}, headers=_as("emp-1"))
    assert response.status_code == 200
    assert response.get_json()["record"]["total_hours"] == 8.0


def test_errors_map_to_status_codes(client):
    assert client.post("/api/attendance/clock-in", json={}).status_code == 403
    assert client.post("/api/attendance/clock-out", json={}, headers=_as("emp-1")).status_code == 409

    response = client.post("/api/attendance/clock-in", json={"employee_id": "emp-1"}, headers=_as("emp-2"))
    assert response.status_code == 403
    assert response.get_json()["error"] == "unauthorized"

    response = client.post("/api/attendance/clock-in", json={"notes": "x" * 501}, headers=_as("emp-1"))
    assert response.status_code == 400
    assert response.get_json()["field"] == "notes"


def test_manager_adjusts_record(client, clock):
    record = client.post("/api/attendance/clock-in", json={}, headers=_as("emp-1")).get_json()["record"]
    clock.advance(hours=4)
    client.post("/api/attendance/clock-out", json={}, headers=_as("emp-1"))

    response = client.post(
        f"/api/attendance/{record['id']}/adjust",
        json={"field": "notes", "new_value": "Covered lunch", "reason": "Requested"},
        headers=_as("mgr-1", "manager"),
    )

    assert response.status_code == 200
    history = client.get(f"/api/attendance/{record['id']}/adjustments", headers=_as("emp-1")).get_json()
    assert [a["field"] for a in history["adjustments"]] == ["notes"]


def test_time_category_routes(client):
    payload = {"name": "Short", "min_hours": 0, "max_hours": 4}
    assert client.post("/api/time-categories", json=payload, headers=_as("mgr-1", "manager")).status_code == 403

    response = client.post("/api/time-categories", json=payload, headers=_as("adm-1", "admin"))
    assert response.status_code == 201

    overlapping = {"name": "Other", "min_hours": 2, "max_hours": 6}
    response = client.post("/api/time-categories", json=overlapping, headers=_as("adm-1", "admin"))
    assert response.status_code == 409

    preview = client.post("/api/time-categories/preview", json={"hours": 3, "base_rate": 10}).get_json()
    assert preview["preview"]["assigned_category"]["name"] == "Short"


def test_sync_routes(client, connectivity, clock):
    connectivity.set_connected(False)
    client.post("/api/attendance/clock-in", json={}, headers=_as("emp-1"))

    status = client.get("/api/sync/status", headers=_as("emp-1")).get_json()
    assert status["status"]["pending_items"] == 1
    assert status["online"] is False

    connectivity.set_connected(True)
    result = client.post("/api/sync/trigger", json={}, headers=_as("emp-1")).get_json()["result"]
    assert result["succeeded"] == 1
    bad_batch = client.post("/api/sync/trigger", json={"batch_size": 0}, headers=_as("emp-1"))
    assert bad_batch.status_code == 400

    assert client.get("/api/sync/conflicts", headers=_as("emp-1")).status_code == 403
    assert client.get("/api/sync/conflicts", headers=_as("mgr-1", "manager")).get_json()["conflicts"] == []
    assert len(client.get("/api/sync/history", headers=_as("emp-1")).get_json()["runs"]) == 1

    response = client.post(
        "/api/sync/rules",
        json={"entity_type": "*", "conflict_type": "data", "strategy": "use_remote"},
        headers=_as("mgr-1", "manager"),
    )
    assert response.status_code == 201
    response = client.post(
        "/api/sync/rules",
        json={"entity_type": "*", "conflict_type": "bogus", "strategy": "use_remote"},
        headers=_as("mgr-1", "manager"),
    )
    assert response.status_code == 400


def _attendance_payload(record_id="r1", employee_id="emp-1", clock_out=None):
    return {
        "id": record_id,
        "employee_id": employee_id,
        "clock_in_time": "2024-01-15T08:00:00",
        "clock_out_time": clock_out,
        "total_hours": None,
        "time_category": None,
        "notes": None,
        "created_at": "2024-01-15T08:00:00",
        "updated_at": "2024-01-15T08:00:00",
    }


def test_replica_endpoints(server_app, server_container):
    client = server_app.test_client()
    url = f"/api/sync/entities/{ATTENDANCE_RECORD}/r1"

    assert client.get(url, headers=SYNC_KEY).status_code == 404
    assert client.put(url, json={"operation": "create", "data": _attendance_payload()}).status_code == 403

    response = client.put(url, json={"operation": "create", "data": _attendance_payload()}, headers=SYNC_KEY)
    assert response.status_code == 200
    assert client.get(url, headers=SYNC_KEY).get_json()["data"]["employee_id"] == "emp-1"
    assert server_container.attendance_repo.get_by_id("r1").sync_status.value == "synced"

    second_open = client.put(
        f"/api/sync/entities/{ATTENDANCE_RECORD}/r2",
        json={"operation": "create", "data": _attendance_payload("r2")},
        headers=SYNC_KEY,
    )
    assert second_open.status_code == 422

    assert client.delete(url, headers=SYNC_KEY).status_code == 422
    assert client.get("/api/sync/entities/payroll/p1", headers=SYNC_KEY).status_code == 404


def test_replica_rejects_rule_breaking_writes(server_app, server_container):
    client = server_app.test_client()

    short = _attendance_payload(clock_out="2024-01-15T07:30:00")
    response = client.put(
        f"/api/sync/entities/{ATTENDANCE_RECORD}/r1", json={"operation": "create", "data": short}, headers=SYNC_KEY
    )
    assert response.status_code == 422
    assert response.get_json()["error"] == "sync_rejected"

    padded = dict(_attendance_payload(clock_out="2024-01-15T12:00:00"), total_hours=9.0)
    response = client.put(
        f"/api/sync/entities/{ATTENDANCE_RECORD}/r1", json={"operation": "create", "data": padded}, headers=SYNC_KEY
    )
    assert response.status_code == 422
    assert server_container.attendance_repo.get_by_id("r1") is None

    url = f"/api/sync/entities/{TIME_CATEGORY}"
    day = {"id": "c1", "name": "Day", "min_hours": 0, "max_hours": 8}
    assert client.put(f"{url}/c1", json={"operation": "create", "data": day}, headers=SYNC_KEY).status_code == 200

    overlapping = {"id": "c2", "name": "Long Day", "min_hours": 6, "max_hours": 12}
    assert client.put(f"{url}/c2", json={"operation": "create", "data": overlapping}, headers=SYNC_KEY).status_code == 422
    free = {"id": "c3", "name": "Free", "min_hours": 2, "max_hours": 4, "pay_multiplier": 0}
    assert client.put(f"{url}/c3", json={"operation": "create", "data": free}, headers=SYNC_KEY).status_code == 422
    assert [c.id for c in server_container.category_repo.list_all()] == ["c1"]


def test_server_node_has_no_queue_routes(server_app):
    client = server_app.test_client()
    assert client.get("/api/sync/status", headers=_as("mgr-1", "manager")).status_code == 404


def test_kiosk_syncs_into_server_over_http(server_app, server_container, clock, employee_repo):
    gateway = HttpRemoteGateway(
        "http://server.local",
        api_key="test-sync-key",
        client=httpx.Client(transport=httpx.WSGITransport(app=server_app)),
    )
    connectivity = StaticConnectivity(False)
    kiosk = assemble(
        attendance_repo=InMemoryAttendance(),
        category_repo=InMemoryCategories(),
        employee_repo=employee_repo,
        clock=clock,
        queue_repo=InMemoryQueue(),
        conflict_repo=InMemoryConflicts(),
        rule_repo=InMemoryRules(),
        run_repo=InMemoryRuns(),
        remote=gateway,
        connectivity=connectivity,
    )

    record = kiosk.attendance_service.clock_in("emp-1")
    clock.advance(hours=8)
    kiosk.attendance_service.clock_out("emp-1", notes="Offline shift")
    connectivity.set_connected(True)

    result = kiosk.coordinator.trigger()

    assert (result.succeeded, result.failed, result.conflicts) == (2, 0, 0)
    stored = server_container.attendance_repo.get_by_id(record.id)
    assert stored.total_hours == 8.0
    assert stored.notes == "Offline shift"
