"""Department use-cases."""
from __future__ import annotations

import uuid
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..domain_errors import DomainError
from ..models import Department, RoutingOperation
from .common import apply_changes, commit_or_fail, drop_null_required

_UPDATABLE_FIELDS = {"name", "description", "is_active"}
_REQUIRED_FIELDS = {"name", "is_active"}


def _get_department_or_404(*, db: Session, department_id: UUID, team_id: UUID) -> Department:
    department = db.query(Department).filter(
        Department.id == department_id,
        Department.team_id == team_id,
    ).first()
    if not department:
        raise DomainError(code="DEPARTMENT_NOT_FOUND", http_status=404, message="Department not found")
    return department


def operation_counts(db: Session, *, department_ids: list[UUID]) -> dict[UUID, int]:
    """Routing operations referencing each department."""
    if not department_ids:
        return {}
    rows = db.query(RoutingOperation.department_id, func.count(RoutingOperation.id)).filter(
        RoutingOperation.department_id.in_(department_ids)
    ).group_by(RoutingOperation.department_id).all()
    return {department_id: count for department_id, count in rows}


def list_departments_use_case(*, db: Session, team_id: UUID, active_only: bool = False) -> list[Department]:
    query = db.query(Department).filter(Department.team_id == team_id)
    if active_only:
        query = query.filter(Department.is_active == True)  # noqa: E712
    return query.order_by(Department.name.asc()).all()


def get_department_use_case(*, db: Session, department_id: UUID, team_id: UUID) -> Department:
    return _get_department_or_404(db=db, department_id=department_id, team_id=team_id)


def create_department_use_case(*, db: Session, team_id: UUID, name: str, description: str | None = None) -> Department:
    department = Department(
        id=uuid.uuid4(),
        team_id=team_id,
        name=name.strip(),
        description=description,
        is_active=True,
    )
    db.add(department)
    commit_or_fail(db, failure="Failed to create department")
    return department


def update_department_use_case(
    *,
    db: Session,
    department_id: UUID,
    team_id: UUID,
    changes: dict[str, Any],
) -> Department:
    department = _get_department_or_404(db=db, department_id=department_id, team_id=team_id)
    changes = drop_null_required(changes, required=_REQUIRED_FIELDS)
    apply_changes(department, changes, allowed=_UPDATABLE_FIELDS)
    commit_or_fail(db, failure="Failed to update department")
    return department


def set_departments_active_use_case(
    *,
    db: Session,
    team_id: UUID,
    department_ids: list[UUID],
    is_active: bool,
) -> tuple[list[UUID], list[UUID]]:
    """Bulk (de)activate; returns (updated ids, ids not found in the team)."""
    departments = db.query(Department).filter(
        Department.team_id == team_id,
        Department.id.in_(department_ids),
    ).all()
    found = {department.id for department in departments}
    for department in departments:
        department.is_active = is_active
    if departments:
        commit_or_fail(db, failure="Failed to bulk update departments")
    updated = [department_id for department_id in department_ids if department_id in found]
    missing = [department_id for department_id in department_ids if department_id not in found]
    return updated, missing


def delete_department_use_case(*, db: Session, department_id: UUID, team_id: UUID) -> None:
    """Hard delete; departments still used by routing operations are refused."""
    department = _get_department_or_404(db=db, department_id=department_id, team_id=team_id)
    in_use = db.query(RoutingOperation.id).filter(RoutingOperation.department_id == department.id).first()
    if in_use:
        raise DomainError(
            code="DEPARTMENT_IN_USE",
            http_status=400,
            message="Cannot delete department with existing operations",
        )
    db.delete(department)
    commit_or_fail(db, failure="Failed to delete department")
