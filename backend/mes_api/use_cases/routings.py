"""Routing and routing-operation use-cases."""
from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError
from ..models import Department, Routing, RoutingOperation
from ..services.attachments import append_attachment, list_attachments, remove_attachment
from .common import apply_changes, commit_or_fail, drop_null_required

_ROUTING_FIELDS = {"name", "description", "version", "is_active"}
_ROUTING_REQUIRED = {"name", "version", "is_active"}
_OPERATION_FIELDS = {
    "operation_number",
    "operation_name",
    "description",
    "department_id",
    "setup_time",
    "run_time",
    "instructions",
    "required_skills",
    "is_active",
}
_OPERATION_REQUIRED = {"operation_number", "operation_name", "setup_time", "run_time", "required_skills", "is_active"}


def _get_routing_or_404(*, db: Session, routing_id: UUID, team_id: UUID) -> Routing:
    routing = db.query(Routing).filter(Routing.id == routing_id, Routing.team_id == team_id).first()
    if not routing:
        raise DomainError(code="ROUTING_NOT_FOUND", http_status=404, message="Routing not found")
    return routing


def _get_operation_or_404(
    *,
    db: Session,
    routing_id: UUID,
    operation_id: UUID,
    team_id: UUID,
    for_update: bool = False,
) -> RoutingOperation:
    query = db.query(RoutingOperation).filter(
        RoutingOperation.id == operation_id,
        RoutingOperation.routing_id == routing_id,
        RoutingOperation.team_id == team_id,
    )
    if for_update:
        query = query.with_for_update()
    operation = query.first()
    if not operation:
        raise DomainError(
            code="ROUTING_OPERATION_NOT_FOUND",
            http_status=404,
            message="Routing operation not found",
        )
    return operation


def _ensure_department(db: Session, *, department_id: UUID | None, team_id: UUID) -> None:
    if department_id is None:
        return
    department = db.query(Department).filter(
        Department.id == department_id,
        Department.team_id == team_id,
    ).first()
    if not department:
        raise DomainError(code="DEPARTMENT_NOT_FOUND", http_status=404, message="Department not found")


def _ensure_unique_operation_number(
    db: Session,
    *,
    routing_id: UUID,
    operation_number: int,
    exclude_id: UUID | None = None,
) -> None:
    query = db.query(RoutingOperation).filter(
        RoutingOperation.routing_id == routing_id,
        RoutingOperation.operation_number == operation_number,
        RoutingOperation.is_active == True,  # noqa: E712
    )
    if exclude_id is not None:
        query = query.filter(RoutingOperation.id != exclude_id)
    if query.first():
        raise DomainError(
            code="OPERATION_NUMBER_EXISTS",
            http_status=409,
            message=f"Operation number {operation_number} already exists in this routing",
        )


def _new_operation(*, routing_id: UUID, team_id: UUID, data: dict[str, Any]) -> RoutingOperation:
    return RoutingOperation(
        id=uuid.uuid4(),
        team_id=team_id,
        routing_id=routing_id,
        operation_number=data["operation_number"],
        operation_name=data["operation_name"],
        description=data.get("description"),
        department_id=data.get("department_id"),
        setup_time=data.get("setup_time", 0),
        run_time=data.get("run_time", 0),
        instructions=data.get("instructions"),
        required_skills=list(data.get("required_skills") or []),
        file_attachments=[],
        is_active=True,
    )


def list_routings_use_case(*, db: Session, team_id: UUID, active_only: bool = True) -> list[Routing]:
    query = db.query(Routing).filter(Routing.team_id == team_id)
    if active_only:
        query = query.filter(Routing.is_active == True)  # noqa: E712
    return query.order_by(Routing.name.asc()).all()


def get_routing_use_case(*, db: Session, routing_id: UUID, team_id: UUID) -> Routing:
    return _get_routing_or_404(db=db, routing_id=routing_id, team_id=team_id)


def active_operations(routing: Routing) -> list[RoutingOperation]:
    return sorted(
        (operation for operation in routing.operations if operation.is_active),
        key=lambda operation: operation.operation_number,
    )


def create_routing_use_case(*, db: Session, team_id: UUID, data: dict[str, Any]) -> Routing:
    operations = data.get("operations") or []
    numbers = [operation["operation_number"] for operation in operations]
    if len(numbers) != len(set(numbers)):
        raise DomainError(
            code="OPERATION_NUMBER_EXISTS",
            http_status=400,
            message="Operation numbers must be unique within a routing",
        )

    routing = Routing(
        id=uuid.uuid4(),
        team_id=team_id,
        name=data["name"],
        description=data.get("description"),
        version=data.get("version") or "1.0",
        is_active=True,
    )
    db.add(routing)
    for operation in operations:
        _ensure_department(db, department_id=operation.get("department_id"), team_id=team_id)
        db.add(_new_operation(routing_id=routing.id, team_id=team_id, data=operation))

    commit_or_fail(db, failure="Failed to create routing")
    return routing


def update_routing_use_case(*, db: Session, routing_id: UUID, team_id: UUID, changes: dict[str, Any]) -> Routing:
    routing = _get_routing_or_404(db=db, routing_id=routing_id, team_id=team_id)
    changes = drop_null_required(changes, required=_ROUTING_REQUIRED)
    apply_changes(routing, changes, allowed=_ROUTING_FIELDS)
    commit_or_fail(db, failure="Failed to update routing")
    return routing


def delete_routing_use_case(*, db: Session, routing_id: UUID, team_id: UUID) -> None:
    """Soft delete: existing orders keep referencing the routing."""
    routing = _get_routing_or_404(db=db, routing_id=routing_id, team_id=team_id)
    routing.is_active = False
    commit_or_fail(db, failure="Failed to delete routing")


def add_operation_use_case(*, db: Session, routing_id: UUID, team_id: UUID, data: dict[str, Any]) -> RoutingOperation:
    routing = _get_routing_or_404(db=db, routing_id=routing_id, team_id=team_id)
    _ensure_department(db, department_id=data.get("department_id"), team_id=team_id)
    _ensure_unique_operation_number(db, routing_id=routing.id, operation_number=data["operation_number"])

    operation = _new_operation(routing_id=routing.id, team_id=team_id, data=data)
    db.add(operation)
    commit_or_fail(db, failure="Failed to add operation")
    return operation


def update_operation_use_case(
    *,
    db: Session,
    routing_id: UUID,
    operation_id: UUID,
    team_id: UUID,
    changes: dict[str, Any],
) -> RoutingOperation:
    operation = _get_operation_or_404(db=db, routing_id=routing_id, operation_id=operation_id, team_id=team_id)
    changes = drop_null_required(changes, required=_OPERATION_REQUIRED)
    if "department_id" in changes:
        _ensure_department(db, department_id=changes["department_id"], team_id=team_id)
    if "operation_number" in changes and changes["operation_number"] != operation.operation_number:
        _ensure_unique_operation_number(
            db,
            routing_id=routing_id,
            operation_number=changes["operation_number"],
            exclude_id=operation.id,
        )
    apply_changes(operation, changes, allowed=_OPERATION_FIELDS)
    commit_or_fail(db, failure="Failed to update operation")
    return operation


def delete_operation_use_case(*, db: Session, routing_id: UUID, operation_id: UUID, team_id: UUID) -> None:
    operation = _get_operation_or_404(db=db, routing_id=routing_id, operation_id=operation_id, team_id=team_id)
    operation.is_active = False
    commit_or_fail(db, failure="Failed to delete operation")


def list_operation_attachments_use_case(
    *, db: Session, routing_id: UUID, operation_id: UUID, team_id: UUID
) -> list[dict[str, Any]]:
    operation = _get_operation_or_404(db=db, routing_id=routing_id, operation_id=operation_id, team_id=team_id)
    return list_attachments(operation.file_attachments)


def add_operation_attachment_use_case(
    *, db: Session, routing_id: UUID, operation_id: UUID, team_id: UUID, file_record: dict[str, Any]
) -> list[dict[str, Any]]:
    operation = _get_operation_or_404(
        db=db, routing_id=routing_id, operation_id=operation_id, team_id=team_id, for_update=True
    )
    operation.file_attachments = append_attachment(operation.file_attachments, file_record)
    commit_or_fail(db, failure="Failed to add attachment")
    return list_attachments(operation.file_attachments)


def remove_operation_attachment_use_case(
    *, db: Session, routing_id: UUID, operation_id: UUID, team_id: UUID, file_id: str
) -> list[dict[str, Any]]:
    operation = _get_operation_or_404(
        db=db, routing_id=routing_id, operation_id=operation_id, team_id=team_id, for_update=True
    )
    operation.file_attachments = remove_attachment(operation.file_attachments, file_id)
    commit_or_fail(db, failure="Failed to remove attachment")
    return list_attachments(operation.file_attachments)


def _minutes(seconds: int | None) -> float:
    return round((seconds or 0) / 60.0, 2)


def build_external_routing(routing: Routing) -> dict[str, Any]:
    """Routing detail as exposed by the external API."""
    operations = []
    for operation in active_operations(routing):
        department = operation.department
        operations.append(
            {
                "id": str(operation.id),
                "operationNumber": operation.operation_number,
                "operationName": operation.operation_name,
                "department": {"id": str(department.id), "name": department.name} if department else None,
                "setupTimeMinutes": _minutes(operation.setup_time),
                "runTimeMinutes": _minutes(operation.run_time),
                "instructions": operation.instructions,
                "requiredSkills": list(operation.required_skills or []),
                "dataCollectionActivities": [
                    {
                        "id": str(assignment.activity.id),
                        "name": assignment.activity.name,
                        "isRequired": bool(assignment.is_required),
                        "sequence": assignment.sequence,
                    }
                    for assignment in (operation.activity_assignments or [])
                    if assignment.activity is not None and assignment.activity.is_active
                ],
            }
        )

    return {
        "id": str(routing.id),
        "name": routing.name,
        "description": routing.description,
        "version": routing.version or "1.0",
        "isActive": bool(routing.is_active),
        "operations": operations,
        "createdAt": routing.created_at.isoformat() if routing.created_at else None,
        "updatedAt": routing.updated_at.isoformat() if routing.updated_at else None,
    }
