"""Internal dashboard analytics."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..use_cases.analytics import RECENT_ACTIVITY_LIMIT, dashboard_metrics_use_case, recent_activity_use_case

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
def get_dashboard_metrics(
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return dashboard_metrics_use_case(db=db, team_id=ctx.team_id)


@router.get("/recent-activity")
def get_recent_activity(
    limit: int = Query(RECENT_ACTIVITY_LIMIT, ge=1, le=50),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Most recently touched work order operations, newest first."""
    return {"activities": recent_activity_use_case(db=db, team_id=ctx.team_id, limit=limit)}
