"""Data-collection activity use-cases: templates, assignment and captured values."""
from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError, validation_error
from ..models import (
    DataCollection,
    DataCollectionActivity,
    RoutingOperation,
    RoutingOperationActivity,
    WorkOrderOperation,
)
from .common import apply_changes, commit_or_fail, drop_null_required

FIELD_TYPES: tuple[str, ...] = ("text", "number", "boolean", "textarea", "select", "file", "date", "time")
_REQUIRED_FIELD_KEYS = ("id", "name", "label", "type")


def validate_fields(fields: Any) -> list[dict[str, Any]]:
    """Check the field list of an activity template and return it as plain dicts."""
    if not isinstance(fields, list):
        raise validation_error("Fields must be an array")
    validated = []
    for field in fields:
        if not isinstance(field, dict) or not all(field.get(key) for key in _REQUIRED_FIELD_KEYS):
            raise validation_error("Each field must have id, name, label, and type")
        if field["type"] not in FIELD_TYPES:
            raise validation_error(f"Invalid field type: {field['type']}")
        validated.append(dict(field))
    ids = [str(field["id"]) for field in validated]
    if len(ids) != len(set(ids)):
        raise validation_error("Field ids must be unique")
    return validated


def missing_required_fields(fields: list[dict[str, Any]], collected: dict[str, Any]) -> list[str]:
    """Labels of required fields absent from the collected values (keyed by field name)."""
    missing = []
    for field in fields:
        if not field.get("required"):
            continue
        value = collected.get(field["name"])
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field["label"])
    return missing


def _get_activity_or_404(*, db: Session, activity_id: UUID, team_id: UUID) -> DataCollectionActivity:
    activity = db.query(DataCollectionActivity).filter(
        DataCollectionActivity.id == activity_id,
        DataCollectionActivity.team_id == team_id,
    ).first()
    if not activity:
        raise DomainError(
            code="DATA_COLLECTION_ACTIVITY_NOT_FOUND",
            http_status=404,
            message="Data collection activity not found",
        )
    return activity


def _get_woo_or_404(*, db: Session, woo_id: UUID, team_id: UUID) -> WorkOrderOperation:
    woo = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.id == woo_id,
        WorkOrderOperation.team_id == team_id,
    ).first()
    if not woo:
        raise DomainError(code="WOO_NOT_FOUND", http_status=404, message="Work order operation not found")
    return woo


def create_activity_use_case(
    *,
    db: Session,
    team_id: UUID,
    name: str | None,
    fields: Any,
    description: str | None = None,
) -> DataCollectionActivity:
    if not name or not name.strip() or fields is None:
        raise validation_error("Name and fields are required")
    activity = DataCollectionActivity(
        id=uuid.uuid4(),
        team_id=team_id,
        name=name.strip(),
        description=description,
        fields=validate_fields(fields),
        is_active=True,
    )
    db.add(activity)
    commit_or_fail(db, failure="Failed to create data collection activity")
    return activity


def list_activities_use_case(*, db: Session, team_id: UUID, active_only: bool = True) -> list[DataCollectionActivity]:
    query = db.query(DataCollectionActivity).filter(DataCollectionActivity.team_id == team_id)
    if active_only:
        query = query.filter(DataCollectionActivity.is_active == True)  # noqa: E712
    return query.order_by(DataCollectionActivity.name.asc()).all()


def get_activity_use_case(*, db: Session, activity_id: UUID, team_id: UUID) -> DataCollectionActivity:
    return _get_activity_or_404(db=db, activity_id=activity_id, team_id=team_id)


def update_activity_use_case(
    *,
    db: Session,
    activity_id: UUID,
    team_id: UUID,
    changes: dict[str, Any],
) -> DataCollectionActivity:
    activity = _get_activity_or_404(db=db, activity_id=activity_id, team_id=team_id)
    changes = drop_null_required(changes, required={"name", "fields", "is_active"})
    if "fields" in changes:
        changes = {**changes, "fields": validate_fields(changes["fields"])}
    apply_changes(activity, changes, allowed={"name", "description", "fields", "is_active"})
    commit_or_fail(db, failure="Failed to update data collection activity")
    return activity


def delete_activity_use_case(*, db: Session, activity_id: UUID, team_id: UUID) -> None:
    """Soft delete; collected values keep pointing at the template."""
    activity = _get_activity_or_404(db=db, activity_id=activity_id, team_id=team_id)
    activity.is_active = False
    commit_or_fail(db, failure="Failed to delete data collection activity")


def assign_activity_use_case(
    *,
    db: Session,
    team_id: UUID,
    routing_operation_id: UUID,
    activity_id: UUID,
    is_required: bool = False,
    sequence: int = 1,
) -> RoutingOperationActivity:
    """Attach an activity to a routing operation; re-assigning updates flags in place."""
    operation = db.query(RoutingOperation).filter(
        RoutingOperation.id == routing_operation_id,
        RoutingOperation.team_id == team_id,
    ).first()
    if not operation:
        raise DomainError(
            code="ROUTING_OPERATION_NOT_FOUND",
            http_status=404,
            message="Routing operation not found",
        )
    activity = _get_activity_or_404(db=db, activity_id=activity_id, team_id=team_id)

    assignment = db.query(RoutingOperationActivity).filter(
        RoutingOperationActivity.routing_operation_id == operation.id,
        RoutingOperationActivity.data_collection_activity_id == activity.id,
    ).first()
    if assignment is None:
        assignment = RoutingOperationActivity(
            id=uuid.uuid4(),
            routing_operation_id=operation.id,
            data_collection_activity_id=activity.id,
        )
        db.add(assignment)
    assignment.is_required = is_required
    assignment.sequence = sequence
    commit_or_fail(db, failure="Failed to assign data collection activity")
    return assignment


def unassign_activity_use_case(
    *,
    db: Session,
    team_id: UUID,
    routing_operation_id: UUID,
    activity_id: UUID,
) -> bool:
    """Remove an assignment. Returns False when there was nothing to remove."""
    assignment = db.query(RoutingOperationActivity).join(
        RoutingOperation,
        RoutingOperationActivity.routing_operation_id == RoutingOperation.id,
    ).filter(
        RoutingOperationActivity.routing_operation_id == routing_operation_id,
        RoutingOperationActivity.data_collection_activity_id == activity_id,
        RoutingOperation.team_id == team_id,
    ).first()
    if assignment is None:
        return False
    db.delete(assignment)
    commit_or_fail(db, failure="Failed to unassign data collection activity")
    return True


def list_operation_activities_use_case(
    *,
    db: Session,
    team_id: UUID,
    routing_operation_id: UUID,
) -> list[tuple[DataCollectionActivity, RoutingOperationActivity]]:
    rows = db.query(DataCollectionActivity, RoutingOperationActivity).join(
        RoutingOperationActivity,
        RoutingOperationActivity.data_collection_activity_id == DataCollectionActivity.id,
    ).filter(
        RoutingOperationActivity.routing_operation_id == routing_operation_id,
        DataCollectionActivity.team_id == team_id,
        DataCollectionActivity.is_active == True,  # noqa: E712
    ).order_by(RoutingOperationActivity.sequence.asc()).all()
    return [(activity, assignment) for activity, assignment in rows]


def list_woo_activities_use_case(
    *,
    db: Session,
    team_id: UUID,
    woo_id: UUID,
) -> list[tuple[DataCollectionActivity, RoutingOperationActivity]]:
    """Activities assigned to the routing operation behind a WOO."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    return list_operation_activities_use_case(
        db=db,
        team_id=team_id,
        routing_operation_id=woo.routing_operation_id,
    )


def collect_data_use_case(
    *,
    db: Session,
    team_id: UUID,
    woo_id: UUID,
    activity_id: UUID,
    collected_data: dict[str, Any],
    operator_id: UUID | None,
) -> DataCollection:
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    activity = _get_activity_or_404(db=db, activity_id=activity_id, team_id=team_id)

    missing = missing_required_fields(activity.fields or [], collected_data)
    if missing:
        raise validation_error(
            f"Missing required fields: {', '.join(missing)}",
            details={"missingFields": missing},
        )

    record = DataCollection(
        id=uuid.uuid4(),
        team_id=team_id,
        work_order_operation_id=woo.id,
        data_collection_activity_id=activity.id,
        operator_id=operator_id,
        collected_data=dict(collected_data),
    )
    db.add(record)
    commit_or_fail(db, failure="Failed to save collected data")
    return record


def list_collections_use_case(*, db: Session, team_id: UUID, woo_id: UUID) -> list[DataCollection]:
    _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    return db.query(DataCollection).filter(
        DataCollection.work_order_operation_id == woo_id,
        DataCollection.team_id == team_id,
    ).order_by(DataCollection.collected_at.asc()).all()


def save_woo_captured_data_use_case(
    *,
    db: Session,
    team_id: UUID,
    woo_id: UUID,
    collected_data: dict[str, Any],
) -> WorkOrderOperation:
    """Replace the captured data stored directly on the WOO."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    woo.captured_data = dict(collected_data)
    commit_or_fail(db, failure="Failed to save collected data")
    return woo
