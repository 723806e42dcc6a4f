from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from mes_api import external_auth, main
from mes_api.database import get_db
from mes_api.domain_errors import ExternalAPIError, InvalidTransition, not_found
from mes_api.external_auth import has_method_permission
from mes_api.routers import external
from mes_api.services.rate_limit import RateLimitResult

TEAM_ID = uuid4()


def _db_override():
    yield SimpleNamespace()


def _api_key(team_id=TEAM_ID, permissions=None):
    return SimpleNamespace(id=uuid4(), team_id=team_id, permissions=permissions or {"read": True})


def _allowed(remaining: int = 999) -> RateLimitResult:
    return RateLimitResult(allowed=True, limit=1000, remaining=remaining, reset_at_ms=1_700_000_000_000)


@pytest.fixture
def usage_log(monkeypatch: pytest.MonkeyPatch) -> list[dict]:
    recorded: list[dict] = []
    monkeypatch.setattr(main, "_store_api_key_usage", lambda **usage: recorded.append(usage))
    return recorded


@pytest.fixture
def client(usage_log):
    main.app.dependency_overrides[get_db] = _db_override
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


@pytest.fixture
def valid_key(monkeypatch: pytest.MonkeyPatch):
    api_key = _api_key()
    monkeypatch.setattr(external_auth, "validate_api_key", lambda *, db, raw_key: api_key)
    monkeypatch.setattr(external_auth, "check_api_key_rate_limit", lambda _key_id: _allowed())
    return api_key


def _headers(team_id=TEAM_ID) -> dict[str, str]:
    return {"Authorization": "Bearer mes_test", "X-MES-Team-ID": str(team_id)}


@pytest.mark.parametrize(
    ("method", "permissions", "expected"),
    [
        ("GET", {"read": True}, True),
        ("GET", {"write": True}, True),
        ("GET", {}, False),
        ("POST", {"read": True}, False),
        ("PUT", {"write": True}, True),
        ("PATCH", {"admin": True}, True),
        ("DELETE", {"write": True}, False),
        ("DELETE", {"admin": True}, True),
    ],
)
def test_method_permissions(method: str, permissions: dict, expected: bool) -> None:
    assert has_method_permission(method, permissions) is expected


def test_missing_api_key_returns_envelope(client: TestClient) -> None:
    response = client.get("/api/v1/analytics/wip", headers={"X-MES-Team-ID": str(TEAM_ID)})

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "MISSING_API_KEY"
    assert error["status"] == 401
    assert error["requestId"].startswith("req_")


def test_missing_team_header_is_bad_request(client: TestClient) -> None:
    response = client.get("/api/v1/analytics/wip", headers={"Authorization": "Bearer mes_test"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_TEAM_ID"


def test_invalid_key_is_unauthorized(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _reject(*, db, raw_key):
        raise ExternalAPIError(code="INVALID_API_KEY", http_status=401, message="Invalid API key")

    monkeypatch.setattr(external_auth, "validate_api_key", _reject)

    response = client.get("/api/v1/analytics/wip", headers=_headers())

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid API key"


def test_key_of_another_team_is_forbidden(client: TestClient, valid_key, usage_log) -> None:
    response = client.get("/api/v1/analytics/wip", headers=_headers(team_id=uuid4()))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "TEAM_ACCESS_DENIED"
    assert usage_log == []


def test_rate_limited_request_carries_headers(client: TestClient, valid_key, monkeypatch, usage_log) -> None:
    monkeypatch.setattr(
        external_auth,
        "check_api_key_rate_limit",
        lambda _key_id: RateLimitResult(allowed=False, limit=1000, remaining=0, reset_at_ms=1_700_000_060_000),
    )

    response = client.get("/api/v1/analytics/wip", headers=_headers())

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Reset"] == "1700000060000"
    assert usage_log[0]["status_code"] == 429


def test_wip_analytics_success_adds_rate_limit_headers_and_logs_usage(
    client: TestClient, valid_key, monkeypatch, usage_log
) -> None:
    payload = {"summary": {"totalWipOperations": 0, "wipByStatus": {}}, "wipByDepartment": [], "bottlenecks": []}
    monkeypatch.setattr(external, "wip_analytics_use_case", lambda *, db, team_id: payload)

    response = client.get("/api/v1/analytics/wip", headers=_headers())

    assert response.status_code == 200
    assert response.json() == payload
    assert response.headers["X-RateLimit-Limit"] == "1000"
    assert response.headers["X-RateLimit-Remaining"] == "999"
    assert response.headers["X-RateLimit-Reset"] == "1700000000000"
    assert len(usage_log) == 1
    assert usage_log[0]["api_key_id"] == valid_key.id
    assert usage_log[0]["endpoint"] == "/api/v1/analytics/wip"
    assert usage_log[0]["status_code"] == 200


def test_performance_rejects_unparsable_dates(client: TestClient, valid_key) -> None:
    response = client.get("/api/v1/analytics/performance?fromDate=yesterday", headers=_headers())

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["validationErrors"][0]["loc"] == ["fromDate"]


def test_performance_passes_parsed_filters(client: TestClient, valid_key, monkeypatch) -> None:
    captured = {}
    department_id = uuid4()

    def _performance(**kwargs):
        captured.update(kwargs)
        return {"cycleTimeAnalysis": {}, "throughput": {}, "qualityMetrics": {}}

    monkeypatch.setattr(external, "performance_analytics_use_case", _performance)

    response = client.get(
        f"/api/v1/analytics/performance?fromDate=2026-01-01T00:00:00Z&departmentId={department_id}",
        headers=_headers(),
    )

    assert response.status_code == 200
    assert captured["team_id"] == TEAM_ID
    assert captured["from_date"].year == 2026
    assert captured["department_id"] == department_id
    assert captured["operator_id"] is None


def test_unknown_routing_maps_to_routing_not_found(client: TestClient, valid_key, monkeypatch) -> None:
    def _missing(**_kwargs):
        raise not_found("ROUTING_NOT_FOUND", "Routing not found")

    monkeypatch.setattr(external, "get_routing_use_case", _missing)

    response = client.get(f"/api/v1/routings/{uuid4()}", headers=_headers())

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "ROUTING_NOT_FOUND"


def test_activities_are_wrapped(client: TestClient, valid_key, monkeypatch) -> None:
    activity = SimpleNamespace(
        id=uuid4(),
        team_id=TEAM_ID,
        name="Dimensional check",
        description=None,
        fields=[{"id": "d", "name": "d", "label": "Diameter", "type": "number"}],
        is_active=True,
        created_at=None,
        updated_at=None,
    )
    monkeypatch.setattr(external, "list_activities_use_case", lambda **_kwargs: [activity])

    response = client.get("/api/v1/data-collection/activities", headers=_headers())

    assert response.status_code == 200
    activities = response.json()["activities"]
    assert activities[0]["name"] == "Dimensional check"
    assert activities[0]["isActive"] is True


def test_unexpected_guard_failure_is_internal_error(client: TestClient, monkeypatch) -> None:
    def _boom(*, db, raw_key):
        raise RuntimeError("db exploded")

    monkeypatch.setattr(external_auth, "validate_api_key", _boom)

    response = client.get("/api/v1/analytics/wip", headers=_headers())

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"
    assert "exploded" not in response.text


def test_orders_are_paginated(client: TestClient, valid_key, monkeypatch) -> None:
    captured = {}
    order = SimpleNamespace(
        id=uuid4(),
        order_number="WO-1001",
        quantity=5,
        status="pending",
        priority=0,
        scheduled_start_date=None,
        actual_start_date=None,
        created_at=None,
        work_order_operations=[],
    )

    def _page(**kwargs):
        captured.update(kwargs)
        return [order], 3

    monkeypatch.setattr(external, "list_orders_page_use_case", _page)

    response = client.get("/api/v1/orders?limit=1&offset=1&sort=priority&order=asc&status=pending", headers=_headers())

    assert response.status_code == 200
    body = response.json()
    assert body["orders"][0]["orderNumber"] == "WO-1001"
    assert body["orders"][0]["currentOperation"] is None
    assert body["pagination"] == {"total": 3, "limit": 1, "offset": 1, "hasMore": True}
    assert captured["sort"] == "priority"
    assert captured["descending"] is False
    assert captured["status"] == "pending"
    assert response.headers["X-RateLimit-Remaining"] == "999"


@pytest.mark.parametrize("query", ["limit=0", "limit=501", "offset=-1", "sort=name", "status=paused"])
def test_orders_reject_invalid_query(client: TestClient, valid_key, query: str) -> None:
    response = client.get(f"/api/v1/orders?{query}", headers=_headers())

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_unknown_order_is_not_found(client: TestClient, valid_key, monkeypatch) -> None:
    def _missing(**_kwargs):
        raise not_found("ORDER_NOT_FOUND", "Order not found")

    monkeypatch.setattr(external, "get_order_use_case", _missing)

    response = client.get(f"/api/v1/orders/{uuid4()}", headers=_headers())

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "ORDER_NOT_FOUND"
    assert error["message"] == "Order not found or access denied"


def test_work_order_operations_pass_filters(client: TestClient, valid_key, monkeypatch) -> None:
    captured = {}
    order_id = uuid4()

    def _page(**kwargs):
        captured.update(kwargs)
        return [], 0

    monkeypatch.setattr(external, "list_woos_page_use_case", _page)

    response = client.get(f"/api/v1/work-order-operations?orderId={order_id}&status=paused", headers=_headers())

    assert response.status_code == 200
    assert response.json() == {
        "workOrderOperations": [],
        "pagination": {"total": 0, "limit": 50, "offset": 0, "hasMore": False},
    }
    assert captured["order_id"] == order_id
    assert captured["status"] == "paused"


def test_woo_action_needs_write_permission(client: TestClient, valid_key) -> None:
    response = client.patch(
        f"/api/v1/work-order-operations/{uuid4()}",
        headers=_headers(),
        json={"action": "resume"},
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


def test_woo_start_requires_operator(client: TestClient, valid_key) -> None:
    valid_key.permissions = {"write": True}

    response = client.patch(
        f"/api/v1/work-order-operations/{uuid4()}",
        headers=_headers(),
        json={"action": "start"},
    )

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["message"] == "operatorId is required to start an operation"


def test_woo_pause_returns_new_state(client: TestClient, valid_key, monkeypatch) -> None:
    valid_key.permissions = {"write": True}
    captured = {}
    reason_id = uuid4()
    woo = SimpleNamespace(
        id=uuid4(),
        status="paused",
        actual_start_time=None,
        actual_end_time=None,
        pause_events=[],
        operator_id=None,
        quantity_completed=0,
        captured_data=None,
        updated_at=None,
    )

    def _act(**kwargs):
        captured.update(kwargs)
        return woo

    monkeypatch.setattr(external, "apply_woo_action_use_case", _act)

    response = client.patch(
        f"/api/v1/work-order-operations/{woo.id}",
        headers=_headers(),
        json={"action": "pause", "pauseReasonId": str(reason_id), "notes": "tool change"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "paused"
    assert response.json()["totalActiveTimeSeconds"] == 0
    assert captured["action"] == "pause"
    assert captured["pause_reason_id"] == reason_id
    assert captured["team_id"] == TEAM_ID


def test_woo_action_conflict_keeps_external_envelope(client: TestClient, valid_key, monkeypatch) -> None:
    valid_key.permissions = {"write": True}

    def _conflict(**_kwargs):
        raise InvalidTransition(
            code="WOO_INVALID_TRANSITION",
            http_status=409,
            message="Cannot resume work order operation in status pending",
        )

    monkeypatch.setattr(external, "apply_woo_action_use_case", _conflict)

    response = client.patch(f"/api/v1/work-order-operations/{uuid4()}", headers=_headers(), json={"action": "resume"})

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "WOO_INVALID_TRANSITION"
    assert response.json()["error"]["requestId"].startswith("req_")
