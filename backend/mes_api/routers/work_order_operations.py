"""Work-order-operation endpoints."""
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import (
    AssignedActivityResponse,
    AttachmentCreate,
    SuccessResponse,
    WOOCompleteRequest,
    WOODataCollectionSave,
    WOOPauseRequest,
    WOOUpdate,
    WorkOrderOperationDetail,
    WorkOrderOperationResponse,
)
from ..use_cases.data_collection import list_woo_activities_use_case, save_woo_captured_data_use_case
from ..use_cases.work_order_operations import (
    add_woo_attachment_use_case,
    complete_woo_use_case,
    get_active_woo_for_operator_use_case,
    get_woo_use_case,
    list_operator_queue_use_case,
    list_woo_attachments_use_case,
    list_woos_use_case,
    pause_woo_use_case,
    remove_woo_attachment_use_case,
    resume_woo_use_case,
    start_woo_use_case,
    update_woo_use_case,
    woo_active_seconds,
)

router = APIRouter(prefix="/work-order-operations", tags=["work-order-operations"])


def _split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def woo_to_detail(woo) -> WorkOrderOperationDetail:
    detail = WorkOrderOperationDetail.model_validate(woo)
    return detail.model_copy(update={"active_time_seconds": woo_active_seconds(woo)})


@router.get("", response_model=list[WorkOrderOperationResponse])
def list_work_order_operations(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    operator_id: Optional[UUID] = Query(None, alias="operatorId"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """List team WOOs by schedule and operation number."""
    return list_woos_use_case(db=db, team_id=ctx.team_id, statuses=_split_csv(status), operator_id=operator_id)


@router.get("/operator", response_model=list[WorkOrderOperationResponse])
def list_operator_queue(
    department_id: Optional[UUID] = Query(None, alias="departmentId"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Pending and paused operations an operator can work on."""
    return list_operator_queue_use_case(db=db, team_id=ctx.team_id, department_id=department_id)


@router.get("/operator/active", response_model=Optional[WorkOrderOperationDetail])
def get_active_operation(
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """The caller's in-progress or paused operation, or null."""
    woo = get_active_woo_for_operator_use_case(db=db, team_id=ctx.team_id, operator_id=ctx.user_id)
    return woo_to_detail(woo) if woo else None


@router.get("/{woo_id}", response_model=WorkOrderOperationDetail)
def get_work_order_operation(
    woo_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    woo = get_woo_use_case(db=db, woo_id=woo_id, team_id=ctx.team_id)
    return woo_to_detail(woo)


@router.put("/{woo_id}", response_model=WorkOrderOperationDetail)
def update_work_order_operation(
    woo_id: UUID,
    data: WOOUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    woo = update_woo_use_case(
        db=db,
        woo_id=woo_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )
    return woo_to_detail(woo)


@router.post("/{woo_id}/start", response_model=WorkOrderOperationResponse)
def start_work_order_operation(
    woo_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Start a pending operation as the calling operator."""
    return start_woo_use_case(db=db, woo_id=woo_id, team_id=ctx.team_id, operator_id=ctx.user_id)


@router.post("/{woo_id}/pause", response_model=WorkOrderOperationResponse)
def pause_work_order_operation(
    woo_id: UUID,
    data: Optional[WOOPauseRequest] = None,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    if data is None or data.pause_reason_id is None:
        raise HTTPException(status_code=400, detail="Pause reason is required")
    return pause_woo_use_case(
        db=db,
        woo_id=woo_id,
        team_id=ctx.team_id,
        pause_reason_id=data.pause_reason_id,
        notes=data.notes,
        user_id=ctx.user_id,
    )


@router.post("/{woo_id}/resume", response_model=WorkOrderOperationResponse)
def resume_work_order_operation(
    woo_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return resume_woo_use_case(db=db, woo_id=woo_id, team_id=ctx.team_id, user_id=ctx.user_id)


@router.post("/{woo_id}/complete", response_model=WorkOrderOperationResponse)
def complete_work_order_operation(
    woo_id: UUID,
    data: Optional[WOOCompleteRequest] = None,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Complete an operation; an empty body records zero quantities."""
    data = data or WOOCompleteRequest()
    return complete_woo_use_case(
        db=db,
        woo_id=woo_id,
        team_id=ctx.team_id,
        captured_data=data.captured_data,
        quantity_completed=data.quantity_completed,
        quantity_rejected=data.quantity_rejected,
        notes=data.notes,
        user_id=ctx.user_id,
    )


@router.get("/{woo_id}/attachments")
def list_attachments(
    woo_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return list_woo_attachments_use_case(db=db, woo_id=woo_id, team_id=ctx.team_id)


@router.post("/{woo_id}/attachments")
def add_attachment(
    woo_id: UUID,
    data: AttachmentCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return add_woo_attachment_use_case(
        db=db,
        woo_id=woo_id,
        team_id=ctx.team_id,
        file_record=data.file_record.model_dump(by_alias=True, exclude_none=True),
    )


@router.delete("/{woo_id}/attachments/{file_id}", response_model=SuccessResponse)
def remove_attachment(
    woo_id: UUID,
    file_id: str,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    remove_woo_attachment_use_case(db=db, woo_id=woo_id, team_id=ctx.team_id, file_id=file_id)
    return SuccessResponse()


@router.get("/{woo_id}/data-collection", response_model=list[AssignedActivityResponse])
def list_data_collection_activities(
    woo_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Activities assigned to this operation's routing step."""
    rows = list_woo_activities_use_case(db=db, team_id=ctx.team_id, woo_id=woo_id)
    return [
        AssignedActivityResponse.model_validate(activity).model_copy(
            update={"is_required": assignment.is_required, "sequence": assignment.sequence}
        )
        for activity, assignment in rows
    ]


@router.post("/{woo_id}/data-collection", response_model=WorkOrderOperationResponse)
def save_data_collection(
    woo_id: UUID,
    data: WOODataCollectionSave,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    if data.collected_data is None:
        raise HTTPException(status_code=400, detail="Collected data is required")
    return save_woo_captured_data_use_case(
        db=db,
        woo_id=woo_id,
        team_id=ctx.team_id,
        collected_data=data.collected_data,
    )
