from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest

from mes_api.domain_errors import DomainError
from mes_api.models import (
    DataCollection,
    DataCollectionActivity,
    RoutingOperation,
    RoutingOperationActivity,
    WorkOrderOperation,
)
from mes_api.use_cases.data_collection import (
    assign_activity_use_case,
    collect_data_use_case,
    create_activity_use_case,
    missing_required_fields,
    unassign_activity_use_case,
    update_activity_use_case,
    validate_fields,
)

_FIELDS = [
    {"id": "diameter", "name": "diameter", "label": "Diameter", "type": "number", "required": True},
    {"id": "operator_note", "name": "operator_note", "label": "Note", "type": "text"},
]


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def join(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _SessionStub:
    def __init__(self, results=None):
        self._results = results or {}
        self.added = []
        self.deleted = []
        self.commit_calls = 0

    def query(self, model):
        if model not in self._results:
            raise AssertionError(f"Unexpected query model: {model}")
        return _QueryStub(first_result=self._results[model])

    def add(self, obj):
        self.added.append(obj)

    def delete(self, obj):
        self.deleted.append(obj)

    def commit(self):
        self.commit_calls += 1


@pytest.mark.parametrize(
    ("fields", "message"),
    [
        ({"id": "x"}, "Fields must be an array"),
        ("diameter", "Fields must be an array"),
        ([{"id": "x", "name": "x", "type": "text"}], "Each field must have id, name, label, and type"),
        (["not-a-dict"], "Each field must have id, name, label, and type"),
        ([{"id": "x", "name": "x", "label": "X", "type": "colour"}], "Invalid field type: colour"),
        (
            [
                {"id": "x", "name": "a", "label": "A", "type": "text"},
                {"id": "x", "name": "b", "label": "B", "type": "text"},
            ],
            "Field ids must be unique",
        ),
    ],
)
def test_validate_fields_rejects_malformed_templates(fields, message: str) -> None:
    with pytest.raises(DomainError, match=message) as exc:
        validate_fields(fields)

    assert exc.value.http_status == 400


def test_validate_fields_accepts_empty_and_well_formed_lists() -> None:
    assert validate_fields([]) == []
    assert validate_fields(_FIELDS) == _FIELDS


def test_missing_required_fields_reports_labels() -> None:
    assert missing_required_fields(_FIELDS, {}) == ["Diameter"]
    assert missing_required_fields(_FIELDS, {"diameter": "  "}) == ["Diameter"]
    assert missing_required_fields(_FIELDS, {"diameter": 0}) == []


@pytest.mark.parametrize(("name", "fields"), [(None, []), ("", []), ("Check", None)])
def test_create_activity_requires_name_and_fields(name, fields) -> None:
    with pytest.raises(DomainError, match="Name and fields are required"):
        create_activity_use_case(db=_SessionStub(), team_id=uuid4(), name=name, fields=fields)


def test_create_activity_persists_validated_fields() -> None:
    db = _SessionStub()

    activity = create_activity_use_case(db=db, team_id=uuid4(), name=" Dimensional check ", fields=_FIELDS)

    assert activity.name == "Dimensional check"
    assert activity.fields == _FIELDS
    assert db.commit_calls == 1


def test_assign_creates_assignment_once_and_updates_flags() -> None:
    operation = SimpleNamespace(id=uuid4())
    activity = SimpleNamespace(id=uuid4())
    db = _SessionStub(
        {RoutingOperation: operation, DataCollectionActivity: activity, RoutingOperationActivity: None}
    )

    assignment = assign_activity_use_case(
        db=db,
        team_id=uuid4(),
        routing_operation_id=operation.id,
        activity_id=activity.id,
        is_required=True,
        sequence=2,
    )

    assert db.added == [assignment]
    assert assignment.routing_operation_id == operation.id
    assert assignment.is_required is True
    assert assignment.sequence == 2


def test_reassign_updates_existing_assignment() -> None:
    existing = SimpleNamespace(is_required=False, sequence=1)
    db = _SessionStub(
        {
            RoutingOperation: SimpleNamespace(id=uuid4()),
            DataCollectionActivity: SimpleNamespace(id=uuid4()),
            RoutingOperationActivity: existing,
        }
    )

    result = assign_activity_use_case(
        db=db, team_id=uuid4(), routing_operation_id=uuid4(), activity_id=uuid4(), is_required=True, sequence=3
    )

    assert result is existing
    assert existing.is_required is True
    assert existing.sequence == 3
    assert db.added == []


def test_assign_to_unknown_operation_is_not_found() -> None:
    db = _SessionStub({RoutingOperation: None})

    with pytest.raises(DomainError, match="Routing operation not found") as exc:
        assign_activity_use_case(db=db, team_id=uuid4(), routing_operation_id=uuid4(), activity_id=uuid4())

    assert exc.value.http_status == 404


def test_unassign_is_idempotent() -> None:
    db = _SessionStub({RoutingOperationActivity: None})

    assert unassign_activity_use_case(
        db=db, team_id=uuid4(), routing_operation_id=uuid4(), activity_id=uuid4()
    ) is False
    assert db.commit_calls == 0


def test_collect_rejects_missing_required_values() -> None:
    db = _SessionStub(
        {
            WorkOrderOperation: SimpleNamespace(id=uuid4()),
            DataCollectionActivity: SimpleNamespace(id=uuid4(), fields=_FIELDS),
        }
    )

    with pytest.raises(DomainError, match="Missing required fields: Diameter") as exc:
        collect_data_use_case(
            db=db,
            team_id=uuid4(),
            woo_id=uuid4(),
            activity_id=uuid4(),
            collected_data={"operator_note": "ok"},
            operator_id=None,
        )

    assert exc.value.details == {"missingFields": ["Diameter"]}
    assert db.commit_calls == 0


def test_collect_records_values_for_operator() -> None:
    woo = SimpleNamespace(id=uuid4())
    activity = SimpleNamespace(id=uuid4(), fields=_FIELDS)
    operator_id = uuid4()
    db = _SessionStub({WorkOrderOperation: woo, DataCollectionActivity: activity})

    record = collect_data_use_case(
        db=db,
        team_id=uuid4(),
        woo_id=woo.id,
        activity_id=activity.id,
        collected_data={"diameter": 41.98},
        operator_id=operator_id,
    )

    assert isinstance(record, DataCollection)
    assert record.work_order_operation_id == woo.id
    assert record.operator_id == operator_id
    assert record.collected_data == {"diameter": 41.98}
    assert db.commit_calls == 1


def test_update_activity_keeps_name_and_fields_on_explicit_null() -> None:
    activity = SimpleNamespace(id=uuid4(), name="Dimensional check", description="old", fields=_FIELDS, is_active=True)
    db = _SessionStub({DataCollectionActivity: activity})

    update_activity_use_case(
        db=db,
        activity_id=activity.id,
        team_id=uuid4(),
        changes={"name": None, "fields": None, "is_active": None, "description": None},
    )

    assert activity.name == "Dimensional check"
    assert activity.fields == _FIELDS
    assert activity.is_active is True
    assert activity.description is None
    assert db.commit_calls == 1
