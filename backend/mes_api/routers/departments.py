"""Department endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import (
    DepartmentBulkAction,
    DepartmentBulkResult,
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    SuccessResponse,
)
from ..use_cases.departments import (
    create_department_use_case,
    delete_department_use_case,
    get_department_use_case,
    list_departments_use_case,
    operation_counts,
    set_departments_active_use_case,
    update_department_use_case,
)

router = APIRouter(prefix="/departments", tags=["departments"])


def _with_counts(db: Session, departments) -> list[DepartmentResponse]:
    counts = operation_counts(db, department_ids=[department.id for department in departments])
    return [
        DepartmentResponse.model_validate(department).model_copy(
            update={"operations_count": counts.get(department.id, 0)}
        )
        for department in departments
    ]


@router.get("", response_model=list[DepartmentResponse])
def list_departments(
    active_only: bool = Query(False, alias="activeOnly"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Team departments with the number of routing operations using each."""
    departments = list_departments_use_case(db=db, team_id=ctx.team_id, active_only=active_only)
    return _with_counts(db, departments)


@router.post("", response_model=DepartmentResponse, status_code=201)
def create_department(
    data: DepartmentCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return create_department_use_case(db=db, team_id=ctx.team_id, name=data.name, description=data.description)


@router.put("", response_model=DepartmentBulkResult)
def bulk_update_departments(
    data: DepartmentBulkAction,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    updated, missing = set_departments_active_use_case(
        db=db,
        team_id=ctx.team_id,
        department_ids=data.department_ids,
        is_active=data.action == "activate",
    )
    return DepartmentBulkResult(updated=updated, not_found=missing)


@router.get("/{department_id}", response_model=DepartmentResponse)
def get_department(
    department_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    department = get_department_use_case(db=db, department_id=department_id, team_id=ctx.team_id)
    return _with_counts(db, [department])[0]


@router.put("/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: UUID,
    data: DepartmentUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return update_department_use_case(
        db=db,
        department_id=department_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )


@router.delete("/{department_id}", response_model=SuccessResponse)
def delete_department(
    department_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    delete_department_use_case(db=db, department_id=department_id, team_id=ctx.team_id)
    return SuccessResponse()
