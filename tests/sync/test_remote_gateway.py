import json
from datetime import datetime

import httpx
import pytest

from src.shift_sync.shift_sync.common.clock import FixedClock
from src.shift_sync.shift_sync.core.enums import SyncOperation
from src.shift_sync.shift_sync.core.exceptions import SyncPermanentError, SyncTransientError
from src.shift_sync.shift_sync.sync.connectivity import HttpConnectivityService
from src.shift_sync.shift_sync.sync.remote import HttpRemoteGateway


def _gateway(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpRemoteGateway("http://hq.example/", api_key="secret", client=client)


def test_fetch_returns_payload_and_sends_key():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": {"id": "r1"}})

    assert _gateway(handler).fetch("attendance_record", "r1") == {"id": "r1"}
    assert seen["url"] == "http://hq.example/api/sync/entities/attendance_record/r1"
    assert seen["auth"] == "Bearer secret"


def test_fetch_of_missing_entity_is_none():
    assert _gateway(lambda request: httpx.Response(404, json={"message": "gone"})).fetch("t", "1") is None


def test_apply_puts_operation_and_data():
    sent = {}

    def handler(request):
        sent["method"] = request.method
        sent["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": sent["body"]["data"]})

    result = _gateway(handler).apply(SyncOperation.CREATE, "time_category", "c1", {"id": "c1"})

    assert sent["method"] == "PUT"
    assert sent["body"] == {"operation": "create", "data": {"id": "c1"}}
    assert result == {"id": "c1"}


def test_delete_uses_http_delete():
    methods = []

    def handler(request):
        methods.append(request.method)
        return httpx.Response(200, json={"data": None})

    assert _gateway(handler).apply(SyncOperation.DELETE, "employee", "e1", None) is None
    assert methods == ["DELETE"]


@pytest.mark.parametrize("status", [500, 503, 429])
def test_server_trouble_is_transient(status):
    gateway = _gateway(lambda request: httpx.Response(status, text="busy"))
    with pytest.raises(SyncTransientError):
        gateway.apply(SyncOperation.UPDATE, "t", "1", {})


@pytest.mark.parametrize("status", [400, 401, 409, 422])
def test_rejections_are_permanent(status):
    gateway = _gateway(lambda request: httpx.Response(status, json={"message": "no"}))
    with pytest.raises(SyncPermanentError, match="no"):
        gateway.apply(SyncOperation.UPDATE, "t", "1", {})


def test_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(SyncTransientError):
        _gateway(handler).fetch("t", "1")


def test_connectivity_probe_is_cached():
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(200)

    clock = FixedClock(datetime(2024, 1, 15, 9, 0))
    service = HttpConnectivityService(
        "http://hq.example/api/health",
        cache_seconds=5,
        clock=clock,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    assert service.is_connected()
    assert service.is_connected()
    assert len(calls) == 1

    clock.advance(seconds=5)
    assert service.is_connected()
    assert len(calls) == 2


def test_connectivity_probe_failure_means_offline():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    service = HttpConnectivityService(
        "http://hq.example/api/health",
        clock=FixedClock(datetime(2024, 1, 15, 9, 0)),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    assert service.is_connected() is False
