"""Pause-reason endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import (
    PauseReasonCategorySummary,
    PauseReasonCreate,
    PauseReasonResponse,
    PauseReasonUpdate,
    PauseReasonUsage,
)
from ..use_cases.pause_reasons import (
    category_summary_use_case,
    create_default_pause_reasons_use_case,
    create_pause_reason_use_case,
    delete_pause_reason_use_case,
    get_pause_reason_use_case,
    list_pause_reasons_use_case,
    parse_usage_date,
    update_pause_reason_use_case,
    usage_use_case,
)

router = APIRouter(prefix="/pause-reasons", tags=["pause-reasons"])


@router.get("", response_model=list[PauseReasonResponse])
def list_pause_reasons(
    active_only: bool = Query(True, alias="activeOnly"),
    category: Optional[str] = Query(None),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return list_pause_reasons_use_case(db=db, team_id=ctx.team_id, active_only=active_only, category=category)


@router.post("", response_model=PauseReasonResponse, status_code=201)
def create_pause_reason(
    data: PauseReasonCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return create_pause_reason_use_case(
        db=db,
        team_id=ctx.team_id,
        name=data.name,
        category=data.category,
        description=data.description,
    )


@router.get("/categories", response_model=list[PauseReasonCategorySummary])
def get_categories(
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Reason counts per category."""
    return category_summary_use_case(db=db, team_id=ctx.team_id)


@router.get("/usage", response_model=list[PauseReasonUsage])
def get_usage(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Pause statistics per reason, most used first."""
    start = parse_usage_date(start_date, field="startDate")
    end = parse_usage_date(end_date, field="endDate")
    return usage_use_case(db=db, team_id=ctx.team_id, start_date=start, end_date=end)


@router.post("/defaults", response_model=list[PauseReasonResponse], status_code=201)
def create_default_pause_reasons(
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Add the standard reason set; returns only the reasons that were created."""
    return create_default_pause_reasons_use_case(db=db, team_id=ctx.team_id)


@router.get("/{reason_id}", response_model=PauseReasonResponse)
def get_pause_reason(
    reason_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return get_pause_reason_use_case(db=db, reason_id=reason_id, team_id=ctx.team_id)


@router.put("/{reason_id}", response_model=PauseReasonResponse)
def update_pause_reason(
    reason_id: UUID,
    data: PauseReasonUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return update_pause_reason_use_case(
        db=db,
        reason_id=reason_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )


@router.delete("/{reason_id}")
def delete_pause_reason(
    reason_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Delete a reason; reasons already used by pause events are only deactivated."""
    mode = delete_pause_reason_use_case(db=db, reason_id=reason_id, team_id=ctx.team_id)
    return {"success": True, "deleted": mode}
