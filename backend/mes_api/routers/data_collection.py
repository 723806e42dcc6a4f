"""Data-collection activity endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import (
    ActivityAssignmentResponse,
    ActivityAssignRequest,
    DataCollectionActivityCreate,
    DataCollectionActivityResponse,
    DataCollectionActivityUpdate,
    DataCollectionCreate,
    DataCollectionResponse,
    SuccessResponse,
)
from ..use_cases.data_collection import (
    assign_activity_use_case,
    collect_data_use_case,
    create_activity_use_case,
    delete_activity_use_case,
    get_activity_use_case,
    list_activities_use_case,
    list_collections_use_case,
    unassign_activity_use_case,
    update_activity_use_case,
)

router = APIRouter(prefix="/data-collection", tags=["data-collection"])


@router.get("/activities", response_model=list[DataCollectionActivityResponse])
def list_activities(
    active_only: bool = Query(True, alias="activeOnly"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return list_activities_use_case(db=db, team_id=ctx.team_id, active_only=active_only)


@router.post("/activities", response_model=DataCollectionActivityResponse, status_code=201)
def create_activity(
    data: DataCollectionActivityCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return create_activity_use_case(
        db=db,
        team_id=ctx.team_id,
        name=data.name,
        fields=data.fields,
        description=data.description,
    )


@router.get("/activities/{activity_id}", response_model=DataCollectionActivityResponse)
def get_activity(
    activity_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return get_activity_use_case(db=db, activity_id=activity_id, team_id=ctx.team_id)


@router.put("/activities/{activity_id}", response_model=DataCollectionActivityResponse)
def update_activity(
    activity_id: UUID,
    data: DataCollectionActivityUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return update_activity_use_case(
        db=db,
        activity_id=activity_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )


@router.delete("/activities/{activity_id}", response_model=SuccessResponse)
def delete_activity(
    activity_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    delete_activity_use_case(db=db, activity_id=activity_id, team_id=ctx.team_id)
    return SuccessResponse()


@router.post("/assign", response_model=ActivityAssignmentResponse, status_code=201)
def assign_activity(
    data: ActivityAssignRequest,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Attach an activity to a routing operation."""
    if data.routing_operation_id is None or data.data_collection_activity_id is None:
        raise HTTPException(
            status_code=400,
            detail="Routing operation ID and data collection activity ID are required",
        )
    return assign_activity_use_case(
        db=db,
        team_id=ctx.team_id,
        routing_operation_id=data.routing_operation_id,
        activity_id=data.data_collection_activity_id,
        is_required=data.is_required,
        sequence=data.sequence,
    )


@router.delete("/assign", response_model=SuccessResponse)
def unassign_activity(
    routing_operation_id: Optional[UUID] = Query(None, alias="routingOperationId"),
    activity_id: Optional[UUID] = Query(None, alias="dataCollectionActivityId"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    if routing_operation_id is None or activity_id is None:
        raise HTTPException(
            status_code=400,
            detail="Routing operation ID and data collection activity ID are required",
        )
    unassign_activity_use_case(
        db=db,
        team_id=ctx.team_id,
        routing_operation_id=routing_operation_id,
        activity_id=activity_id,
    )
    return SuccessResponse()


@router.post("/collect", response_model=DataCollectionResponse, status_code=201)
def collect_data(
    data: DataCollectionCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Record values for one activity on a work-order operation."""
    if data.work_order_operation_id is None or data.data_collection_activity_id is None or data.collected_data is None:
        raise HTTPException(
            status_code=400,
            detail="Work order operation ID, data collection activity ID, and collected data are required",
        )
    return collect_data_use_case(
        db=db,
        team_id=ctx.team_id,
        woo_id=data.work_order_operation_id,
        activity_id=data.data_collection_activity_id,
        collected_data=data.collected_data,
        operator_id=ctx.user_id,
    )


@router.get("/collect", response_model=list[DataCollectionResponse])
def list_collected_data(
    woo_id: Optional[UUID] = Query(None, alias="workOrderOperationId"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    if woo_id is None:
        raise HTTPException(status_code=400, detail="Work order operation ID is required")
    return list_collections_use_case(db=db, team_id=ctx.team_id, woo_id=woo_id)
