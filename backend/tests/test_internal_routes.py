from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from mes_api import main
from mes_api.auth import TeamContext, get_current_user, get_team_context
from mes_api.database import get_db
from mes_api.domain_errors import DomainError, InvalidTransition
from mes_api.models import TeamMembership
from mes_api.routers import analytics, api_keys, departments, orders, pause_reasons, work_order_operations

TEAM_ID = uuid4()
USER = SimpleNamespace(id=uuid4(), selected_team_id=TEAM_ID, is_active=True)


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _MembershipSession:
    def __init__(self, role: str | None):
        self._role = role

    def query(self, model):
        if model is TeamMembership:
            membership = SimpleNamespace(role=self._role) if self._role else None
            return _QueryStub(first_result=membership)
        raise AssertionError(f"Unexpected query model: {model}")


def _woo(status: str = "in_progress"):
    return SimpleNamespace(
        id=uuid4(),
        team_id=TEAM_ID,
        order_id=uuid4(),
        routing_operation_id=uuid4(),
        operator_id=USER.id,
        status=status,
        scheduled_start_time=None,
        scheduled_end_time=None,
        actual_start_time=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
        actual_end_time=None,
        quantity_completed=0,
        quantity_rejected=0,
        captured_data=None,
        notes=None,
        file_attachments=[],
        created_at=None,
        updated_at=None,
    )


@pytest.fixture
def anonymous_client():
    def _db():
        yield SimpleNamespace()

    main.app.dependency_overrides[get_db] = _db
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


@pytest.fixture
def client():
    def _db():
        yield SimpleNamespace()

    main.app.dependency_overrides[get_db] = _db
    main.app.dependency_overrides[get_team_context] = lambda: TeamContext(user=USER, team_id=TEAM_ID, role="member")
    yield TestClient(main.app, raise_server_exceptions=False)
    main.app.dependency_overrides.clear()


def test_missing_identity_is_unauthorized(anonymous_client: TestClient) -> None:
    response = anonymous_client.get("/api/orders")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_user_without_selected_team_gets_400(anonymous_client: TestClient) -> None:
    main.app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=uuid4(), selected_team_id=None)

    response = anonymous_client.get("/api/routings")

    assert response.status_code == 400
    assert response.json() == {"error": "No team selected"}


def test_pause_without_reason_is_rejected(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    called = []
    monkeypatch.setattr(work_order_operations, "pause_woo_use_case", lambda **kwargs: called.append(kwargs))

    response = client.post(f"/api/work-order-operations/{uuid4()}/pause", json={"notes": "no reason"})

    assert response.status_code == 400
    assert response.json() == {"error": "Pause reason is required"}
    assert called == []


def test_invalid_transition_maps_to_conflict(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _reject(**_kwargs):
        raise InvalidTransition(
            code="WOO_INVALID_TRANSITION",
            http_status=409,
            message="Cannot start work order operation in status completed",
        )

    monkeypatch.setattr(work_order_operations, "start_woo_use_case", _reject)

    response = client.post(f"/api/work-order-operations/{uuid4()}/start")

    assert response.status_code == 409
    assert response.json() == {"error": "Cannot start work order operation in status completed"}


def test_unknown_woo_maps_to_not_found(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(**_kwargs):
        raise DomainError(code="WOO_NOT_FOUND", http_status=404, message="Work order operation not found")

    monkeypatch.setattr(work_order_operations, "resume_woo_use_case", _missing)

    response = client.post(f"/api/work-order-operations/{uuid4()}/resume")

    assert response.status_code == 404
    assert response.json() == {"error": "Work order operation not found"}


def test_start_passes_caller_as_operator_and_returns_camel_case(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    woo = _woo()
    captured = {}

    def _start(**kwargs):
        captured.update(kwargs)
        return woo

    monkeypatch.setattr(work_order_operations, "start_woo_use_case", _start)

    response = client.post(f"/api/work-order-operations/{woo.id}/start")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "in_progress"
    assert body["operatorId"] == str(USER.id)
    assert captured["operator_id"] == USER.id
    assert captured["team_id"] == TEAM_ID


def test_complete_without_body_records_zero_quantities(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def _complete(**kwargs):
        captured.update(kwargs)
        return _woo(status="completed")

    monkeypatch.setattr(work_order_operations, "complete_woo_use_case", _complete)

    response = client.post(f"/api/work-order-operations/{uuid4()}/complete")

    assert response.status_code == 200
    assert captured["quantity_completed"] == 0
    assert captured["quantity_rejected"] == 0
    assert captured["captured_data"] is None


def test_request_body_validation_uses_error_shape(client: TestClient) -> None:
    response = client.post("/api/orders", json={"quantity": 0})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request data"
    assert isinstance(body["details"], list)


def test_usage_with_bad_date_is_rejected(client: TestClient) -> None:
    response = client.get("/api/pause-reasons/usage?startDate=03/02/2026")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid startDate format"}


def test_delete_pause_reason_reports_mode(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(pause_reasons, "delete_pause_reason_use_case", lambda **_kwargs: "soft")

    response = client.delete(f"/api/pause-reasons/{uuid4()}")

    assert response.status_code == 200
    assert response.json() == {"success": True, "deleted": "soft"}


def test_download_rejects_non_uuid_file_ids(client: TestClient) -> None:
    response = client.get("/api/files/download/not-a-file-id.txt")

    assert response.status_code == 404
    assert response.json() == {"error": "File not found"}


def test_upload_and_download_round_trip(client: TestClient, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(main.settings, "UPLOAD_DIR", str(tmp_path))

    uploaded = client.post("/api/files/upload", files={"file": ("notes.txt", b"hello", "text/plain")})

    assert uploaded.status_code == 200
    record = uploaded.json()
    assert record["name"] == "notes.txt"
    assert record["size"] == 5
    assert record["type"] == "file"
    assert record["url"] == f"/api/files/download/{record['id']}"
    assert (tmp_path / str(TEAM_ID) / f"{record['id']}.txt").read_bytes() == b"hello"

    downloaded = client.get(record["url"])
    assert downloaded.status_code == 200
    assert downloaded.content == b"hello"


def test_upload_rejects_disallowed_extension(client: TestClient, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(main.settings, "UPLOAD_DIR", str(tmp_path))

    response = client.post("/api/files/upload", files={"file": ("run.exe", b"MZ", "application/octet-stream")})

    assert response.status_code == 400
    assert response.json()["error"].startswith("File type not allowed")


def test_api_key_creation_requires_team_admin(anonymous_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _db():
        yield _MembershipSession(role="member")

    main.app.dependency_overrides[get_db] = _db
    main.app.dependency_overrides[get_current_user] = lambda: USER
    created = []
    monkeypatch.setattr(api_keys, "create_api_key_use_case", lambda **kwargs: created.append(kwargs))

    response = anonymous_client.post(
        f"/api/teams/{TEAM_ID}/api-keys",
        json={"name": "ERP sync", "permissions": {"read": True}},
    )

    assert response.status_code == 403
    assert response.json() == {"error": "Team admin access required"}
    assert created == []


def test_api_key_creation_returns_secret_once(anonymous_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _db():
        yield _MembershipSession(role="admin")

    main.app.dependency_overrides[get_db] = _db
    main.app.dependency_overrides[get_current_user] = lambda: USER
    stored = SimpleNamespace(
        id=uuid4(),
        team_id=TEAM_ID,
        name="ERP sync",
        description=None,
        key_prefix="mes_abcdefgh",
        permissions={"read": True, "write": False, "admin": False},
        is_active=True,
        expires_at=None,
        last_used_at=None,
        created_by=USER.id,
        created_at=None,
    )
    monkeypatch.setattr(api_keys, "create_api_key_use_case", lambda **_kwargs: (stored, "mes_abcdefghSECRET"))

    response = anonymous_client.post(
        f"/api/teams/{TEAM_ID}/api-keys",
        json={"name": "ERP sync", "permissions": {"read": True}},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["apiKey"]["secretKey"] == "mes_abcdefghSECRET"
    assert body["apiKey"]["keyPrefix"] == "mes_abcdefgh"


def test_api_key_permissions_must_not_be_empty(anonymous_client: TestClient) -> None:
    def _db():
        yield _MembershipSession(role="admin")

    main.app.dependency_overrides[get_db] = _db
    main.app.dependency_overrides[get_current_user] = lambda: USER

    response = anonymous_client.post(
        f"/api/teams/{TEAM_ID}/api-keys",
        json={"name": "ERP sync", "permissions": {}},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request data"


def test_health_endpoint() -> None:
    response = TestClient(main.app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_order_update_drops_status_from_body(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}
    order = SimpleNamespace(
        id=uuid4(),
        team_id=TEAM_ID,
        order_number="WO-1001",
        routing_id=uuid4(),
        quantity=5,
        priority=3,
        status="pending",
        scheduled_start_date=None,
        scheduled_end_date=None,
        actual_start_date=None,
        actual_end_date=None,
        notes=None,
        custom_fields=None,
        created_at=None,
        updated_at=None,
    )

    def _update(**kwargs):
        captured.update(kwargs)
        return order

    monkeypatch.setattr(orders, "update_order_use_case", _update)

    response = client.put(f"/api/orders/{order.id}", json={"status": "completed", "priority": 3})

    assert response.status_code == 200
    assert captured["changes"] == {"priority": 3}
    assert response.json()["status"] == "pending"


def test_department_bulk_action_reports_missing(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    found, missing = uuid4(), uuid4()
    captured = {}

    def _bulk(**kwargs):
        captured.update(kwargs)
        return [found], [missing]

    monkeypatch.setattr(departments, "set_departments_active_use_case", _bulk)

    response = client.put(
        "/api/departments",
        json={"action": "deactivate", "departmentIds": [str(found), str(missing)]},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "updated": [str(found)], "notFound": [str(missing)]}
    assert captured["is_active"] is False
    assert captured["team_id"] == TEAM_ID


def test_department_bulk_action_needs_ids(client: TestClient) -> None:
    response = client.put("/api/departments", json={"action": "activate", "departmentIds": []})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request data"


def test_department_delete_in_use_is_rejected(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    def _in_use(**_kwargs):
        raise DomainError(
            code="DEPARTMENT_IN_USE",
            http_status=400,
            message="Cannot delete department with existing operations",
        )

    monkeypatch.setattr(departments, "delete_department_use_case", _in_use)

    response = client.delete(f"/api/departments/{uuid4()}")

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot delete department with existing operations"}


def test_dashboard_and_recent_activity_routes(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}
    monkeypatch.setattr(analytics, "dashboard_metrics_use_case", lambda *, db, team_id: {"ordersPending": 2})

    def _recent(**kwargs):
        captured.update(kwargs)
        return [{"activity": "Started"}]

    monkeypatch.setattr(analytics, "recent_activity_use_case", _recent)

    dashboard = client.get("/api/analytics/dashboard")
    recent = client.get("/api/analytics/recent-activity?limit=5")

    assert dashboard.json() == {"ordersPending": 2}
    assert recent.json() == {"activities": [{"activity": "Started"}]}
    assert captured["limit"] == 5
    assert captured["team_id"] == TEAM_ID
