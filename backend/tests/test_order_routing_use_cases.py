from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from mes_api.domain_errors import DomainError, InvalidTransition
from mes_api.models import AuditEvent, Department, Order, Routing, RoutingOperation, WorkOrderOperation
from mes_api.schemas import OrderUpdate
from mes_api.use_cases.orders import (
    build_external_order,
    build_external_order_summary,
    cancel_order_use_case,
    compute_order_progress,
    create_order_use_case,
    start_order_use_case,
    update_order_use_case,
)
from mes_api.use_cases.routings import (
    active_operations,
    add_operation_attachment_use_case,
    add_operation_use_case,
    build_external_routing,
    create_routing_use_case,
    remove_operation_attachment_use_case,
    update_operation_use_case,
    update_routing_use_case,
)


class _QueryStub:
    def __init__(self, *, result=None):
        self._result = result

    def filter(self, *_args, **_kwargs):
        return self

    def order_by(self, *_args, **_kwargs):
        return self

    def with_for_update(self):
        return self

    def first(self):
        return self._result

    def all(self):
        return list(self._result or [])


class _SessionStub:
    """query(model) hands out queued results per model in call order."""

    def __init__(self, results=None):
        self._results = {model: list(values) for model, values in (results or {}).items()}
        self.added = []
        self.commit_calls = 0

    def query(self, model):
        queued = self._results.get(model)
        if queued is None:
            raise AssertionError(f"Unexpected query model: {model}")
        return _QueryStub(result=queued.pop(0) if queued else None)

    def add(self, obj):
        self.added.append(obj)

    def commit(self):
        self.commit_calls += 1


def _order_data(**overrides):
    data = {"order_number": "WO-1001", "routing_id": uuid4(), "quantity": 5}
    data.update(overrides)
    return data


def test_create_order_releases_only_first_operation() -> None:
    team_id = uuid4()
    routing = SimpleNamespace(id=uuid4())
    operations = [SimpleNamespace(id=uuid4(), operation_number=n) for n in (10, 20, 30)]
    db = _SessionStub({Routing: [routing], Order: [None], RoutingOperation: [operations]})

    order = create_order_use_case(db=db, team_id=team_id, data=_order_data(), user_id=uuid4())

    woos = [item for item in db.added if isinstance(item, WorkOrderOperation)]
    assert [woo.status for woo in woos] == ["pending", "waiting", "waiting"]
    assert [woo.routing_operation_id for woo in woos] == [op.id for op in operations]
    assert all(woo.order_id == order.id for woo in woos)
    assert order.status == "pending"
    assert order.quantity == 5
    assert [item.action for item in db.added if isinstance(item, AuditEvent)] == ["order_created"]
    assert db.commit_calls == 1


def test_create_order_rejects_duplicate_number() -> None:
    db = _SessionStub({Routing: [SimpleNamespace(id=uuid4())], Order: [SimpleNamespace(id=uuid4())]})

    with pytest.raises(DomainError, match="Order number already exists") as exc:
        create_order_use_case(db=db, team_id=uuid4(), data=_order_data(), user_id=None)

    assert exc.value.http_status == 409


def test_create_order_needs_active_routing_with_operations() -> None:
    with pytest.raises(DomainError, match="Routing not found"):
        create_order_use_case(db=_SessionStub({Routing: [None]}), team_id=uuid4(), data=_order_data(), user_id=None)

    db = _SessionStub({Routing: [SimpleNamespace(id=uuid4())], Order: [None], RoutingOperation: [[]]})
    with pytest.raises(DomainError, match="Routing has no active operations") as exc:
        create_order_use_case(db=db, team_id=uuid4(), data=_order_data(), user_id=None)
    assert exc.value.code == "ROUTING_HAS_NO_OPERATIONS"


def test_start_order_only_from_pending() -> None:
    order = SimpleNamespace(id=uuid4(), status="completed", actual_start_date=None)
    db = _SessionStub({Order: [order]})

    with pytest.raises(InvalidTransition, match="Cannot start order in status completed") as exc:
        start_order_use_case(db=db, order_id=order.id, team_id=uuid4(), user_id=None)

    assert exc.value.http_status == 409


def test_cancel_order_cancels_unfinished_operations_only() -> None:
    order = SimpleNamespace(id=uuid4(), status="in_progress")
    woos = [
        SimpleNamespace(status="completed"),
        SimpleNamespace(status="paused"),
        SimpleNamespace(status="waiting"),
    ]
    db = _SessionStub({Order: [order], WorkOrderOperation: [woos]})

    cancel_order_use_case(db=db, order_id=order.id, team_id=uuid4(), user_id=None)

    assert order.status == "cancelled"
    assert [woo.status for woo in woos] == ["completed", "cancelled", "cancelled"]
    assert db.commit_calls == 1


def test_cancel_is_idempotent_but_refuses_completed_orders() -> None:
    cancelled = SimpleNamespace(id=uuid4(), status="cancelled")
    db = _SessionStub({Order: [cancelled]})
    assert cancel_order_use_case(db=db, order_id=cancelled.id, team_id=uuid4(), user_id=None) is cancelled
    assert db.commit_calls == 0

    completed = SimpleNamespace(id=uuid4(), status="completed")
    with pytest.raises(InvalidTransition):
        cancel_order_use_case(db=_SessionStub({Order: [completed]}), order_id=completed.id, team_id=uuid4(), user_id=None)


def test_order_progress_is_completed_share() -> None:
    woos = [SimpleNamespace(status=s) for s in ("completed", "in_progress", "waiting")]

    assert compute_order_progress(woos) == 33.33
    assert compute_order_progress([]) == 0.0


def test_create_routing_rejects_repeated_operation_numbers() -> None:
    data = {
        "name": "Housing",
        "operations": [
            {"operation_number": 10, "operation_name": "Turn"},
            {"operation_number": 10, "operation_name": "Mill"},
        ],
    }

    with pytest.raises(DomainError, match="Operation numbers must be unique"):
        create_routing_use_case(db=_SessionStub(), team_id=uuid4(), data=data)


def test_create_routing_checks_department_scope() -> None:
    data = {
        "name": "Housing",
        "operations": [{"operation_number": 10, "operation_name": "Turn", "department_id": uuid4()}],
    }

    with pytest.raises(DomainError, match="Department not found"):
        create_routing_use_case(db=_SessionStub({Department: [None]}), team_id=uuid4(), data=data)


def test_add_operation_rejects_taken_number() -> None:
    routing = SimpleNamespace(id=uuid4())
    db = _SessionStub({Routing: [routing], RoutingOperation: [SimpleNamespace(id=uuid4())]})

    with pytest.raises(DomainError, match="Operation number 20 already exists") as exc:
        add_operation_use_case(
            db=db,
            routing_id=routing.id,
            team_id=uuid4(),
            data={"operation_number": 20, "operation_name": "Deburr"},
        )

    assert exc.value.http_status == 409


def test_operation_attachments_append_and_remove() -> None:
    operation = SimpleNamespace(file_attachments=[{"id": "a", "name": "drawing.pdf"}])
    db = _SessionStub({RoutingOperation: [operation, operation]})
    team_id = uuid4()

    added = add_operation_attachment_use_case(
        db=db,
        routing_id=uuid4(),
        operation_id=uuid4(),
        team_id=team_id,
        file_record={"id": "b", "name": "photo.png"},
    )
    remaining = remove_operation_attachment_use_case(
        db=db, routing_id=uuid4(), operation_id=uuid4(), team_id=team_id, file_id="a"
    )

    assert [item["id"] for item in added] == ["a", "b"]
    assert [item["id"] for item in remaining] == ["b"]
    assert operation.file_attachments == [{"id": "b", "name": "photo.png"}]
    assert db.commit_calls == 2


def test_external_routing_shape_uses_minutes_and_active_operations() -> None:
    department = SimpleNamespace(id=uuid4(), name="Machining")
    activity = SimpleNamespace(id=uuid4(), name="Dimensional check", is_active=True)
    retired = SimpleNamespace(id=uuid4(), name="Old check", is_active=False)
    operations = [
        SimpleNamespace(
            id=uuid4(),
            operation_number=20,
            operation_name="Inspect",
            department=None,
            setup_time=0,
            run_time=90,
            instructions=None,
            required_skills=None,
            is_active=True,
            activity_assignments=[],
        ),
        SimpleNamespace(
            id=uuid4(),
            operation_number=10,
            operation_name="Turn",
            department=department,
            setup_time=900,
            run_time=240,
            instructions="Use fixture A",
            required_skills=["cnc"],
            is_active=True,
            activity_assignments=[
                SimpleNamespace(activity=activity, is_required=True, sequence=1),
                SimpleNamespace(activity=retired, is_required=False, sequence=2),
            ],
        ),
        SimpleNamespace(id=uuid4(), operation_number=5, is_active=False),
    ]
    routing = SimpleNamespace(
        id=uuid4(),
        name="Housing",
        description=None,
        version=None,
        is_active=True,
        operations=operations,
        created_at=None,
        updated_at=None,
    )

    assert [op.operation_number for op in active_operations(routing)] == [10, 20]

    payload = build_external_routing(routing)

    assert payload["version"] == "1.0"
    first, second = payload["operations"]
    assert first["setupTimeMinutes"] == 15.0
    assert first["runTimeMinutes"] == 4.0
    assert first["department"] == {"id": str(department.id), "name": "Machining"}
    assert first["dataCollectionActivities"] == [
        {"id": str(activity.id), "name": "Dimensional check", "isRequired": True, "sequence": 1}
    ]
    assert second["department"] is None
    assert second["runTimeMinutes"] == 1.5
    assert second["requiredSkills"] == []


def test_update_order_keeps_required_columns_on_explicit_null() -> None:
    order = SimpleNamespace(id=uuid4(), order_number="WO-1001", quantity=5, priority=2, notes="rush", status="pending")
    db = _SessionStub({Order: [order]})

    update_order_use_case(
        db=db,
        order_id=order.id,
        team_id=uuid4(),
        changes={"order_number": None, "quantity": None, "priority": None, "notes": None},
    )

    assert (order.order_number, order.quantity, order.priority) == ("WO-1001", 5, 2)
    assert order.notes is None
    assert db.commit_calls == 1


def test_update_order_cannot_change_status() -> None:
    order = SimpleNamespace(id=uuid4(), order_number="WO-1001", quantity=5, priority=0, status="pending")
    db = _SessionStub({Order: [order]})

    update_order_use_case(
        db=db,
        order_id=order.id,
        team_id=uuid4(),
        changes={"status": "completed", "priority": 3},
    )

    assert order.status == "pending"
    assert order.priority == 3
    assert "status" not in OrderUpdate.model_validate({"status": "cancelled"}).model_dump(exclude_unset=True)


def test_update_routing_and_operation_ignore_null_for_required_columns() -> None:
    routing = SimpleNamespace(id=uuid4(), name="Housing", version="2.0", description="old", is_active=True)
    operation = SimpleNamespace(
        id=uuid4(),
        operation_number=10,
        operation_name="Turn",
        setup_time=600,
        run_time=120,
        instructions="Use fixture A",
    )
    db = _SessionStub({Routing: [routing], RoutingOperation: [operation]})
    team_id = uuid4()

    update_routing_use_case(
        db=db,
        routing_id=routing.id,
        team_id=team_id,
        changes={"name": None, "version": None, "description": None},
    )
    update_operation_use_case(
        db=db,
        routing_id=routing.id,
        operation_id=operation.id,
        team_id=team_id,
        changes={"operation_name": None, "setup_time": None, "instructions": None},
    )

    assert (routing.name, routing.version, routing.description) == ("Housing", "2.0", None)
    assert (operation.operation_name, operation.setup_time) == ("Turn", 600)
    assert operation.instructions is None
    assert db.commit_calls == 2


def _order_woo(number: int, status: str):
    return SimpleNamespace(
        id=uuid4(),
        status=status,
        routing_operation=SimpleNamespace(operation_number=number, operation_name=f"Op {number}"),
    )


def test_external_order_summary_reports_current_operation_and_progress() -> None:
    woos = [_order_woo(30, "waiting"), _order_woo(10, "completed"), _order_woo(20, "paused")]
    order = SimpleNamespace(
        id=uuid4(),
        order_number="WO-1001",
        quantity=5,
        status="in_progress",
        priority=1,
        scheduled_start_date=None,
        actual_start_date=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc),
        created_at=None,
        work_order_operations=woos,
    )

    payload = build_external_order_summary(order)

    assert payload["currentOperation"] == {
        "id": str(woos[2].id),
        "operationNumber": 20,
        "operationName": "Op 20",
        "status": "paused",
    }
    assert payload["progress"] == {"completedOperations": 1, "totalOperations": 3, "percentComplete": 33.33}
    assert payload["actualStartDate"] == "2026-03-02T08:00:00+00:00"


def test_external_order_detail_includes_routing() -> None:
    routing = SimpleNamespace(id=uuid4(), name="Housing", version=None)
    order = SimpleNamespace(
        id=uuid4(),
        order_number="WO-1001",
        quantity=5,
        status="pending",
        priority=0,
        scheduled_start_date=None,
        actual_start_date=None,
        routing=routing,
        created_at=None,
        updated_at=None,
    )

    payload = build_external_order(order)

    assert payload["routing"] == {"id": str(routing.id), "name": "Housing", "version": "1.0"}
    assert payload["actualStartDate"] is None
