"""Routing and routing-operation endpoints."""
from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import (
    AttachmentCreate,
    RoutingCreate,
    RoutingOperationCreate,
    RoutingOperationResponse,
    RoutingOperationUpdate,
    RoutingResponse,
    RoutingUpdate,
    SuccessResponse,
)
from ..use_cases.routings import (
    active_operations,
    add_operation_attachment_use_case,
    add_operation_use_case,
    create_routing_use_case,
    delete_operation_use_case,
    delete_routing_use_case,
    get_routing_use_case,
    list_operation_attachments_use_case,
    list_routings_use_case,
    remove_operation_attachment_use_case,
    update_operation_use_case,
    update_routing_use_case,
)

router = APIRouter(prefix="/routings", tags=["routings"])


def routing_to_response(routing) -> RoutingResponse:
    response = RoutingResponse.model_validate(routing)
    return response.model_copy(
        update={"operations": [RoutingOperationResponse.model_validate(op) for op in active_operations(routing)]}
    )


@router.get("", response_model=list[RoutingResponse])
def list_routings(
    active_only: bool = Query(True, alias="activeOnly"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    routings = list_routings_use_case(db=db, team_id=ctx.team_id, active_only=active_only)
    return [routing_to_response(routing) for routing in routings]


@router.post("", response_model=RoutingResponse, status_code=201)
def create_routing(
    data: RoutingCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    routing = create_routing_use_case(db=db, team_id=ctx.team_id, data=data.model_dump())
    return routing_to_response(routing)


@router.get("/{routing_id}", response_model=RoutingResponse)
def get_routing(
    routing_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return routing_to_response(get_routing_use_case(db=db, routing_id=routing_id, team_id=ctx.team_id))


@router.put("/{routing_id}", response_model=RoutingResponse)
def update_routing(
    routing_id: UUID,
    data: RoutingUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    routing = update_routing_use_case(
        db=db,
        routing_id=routing_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )
    return routing_to_response(routing)


@router.delete("/{routing_id}", response_model=SuccessResponse)
def delete_routing(
    routing_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Deactivate a routing."""
    delete_routing_use_case(db=db, routing_id=routing_id, team_id=ctx.team_id)
    return SuccessResponse()


@router.post("/{routing_id}/operations", response_model=RoutingOperationResponse, status_code=201)
def add_operation(
    routing_id: UUID,
    data: RoutingOperationCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return add_operation_use_case(db=db, routing_id=routing_id, team_id=ctx.team_id, data=data.model_dump())


@router.put("/{routing_id}/operations/{operation_id}", response_model=RoutingOperationResponse)
def update_operation(
    routing_id: UUID,
    operation_id: UUID,
    data: RoutingOperationUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return update_operation_use_case(
        db=db,
        routing_id=routing_id,
        operation_id=operation_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )


@router.delete("/{routing_id}/operations/{operation_id}", response_model=SuccessResponse)
def delete_operation(
    routing_id: UUID,
    operation_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    delete_operation_use_case(db=db, routing_id=routing_id, operation_id=operation_id, team_id=ctx.team_id)
    return SuccessResponse()


@router.get("/{routing_id}/operations/{operation_id}/attachments")
def list_operation_attachments(
    routing_id: UUID,
    operation_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return list_operation_attachments_use_case(
        db=db, routing_id=routing_id, operation_id=operation_id, team_id=ctx.team_id
    )


@router.post("/{routing_id}/operations/{operation_id}/attachments")
def add_operation_attachment(
    routing_id: UUID,
    operation_id: UUID,
    data: AttachmentCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return add_operation_attachment_use_case(
        db=db,
        routing_id=routing_id,
        operation_id=operation_id,
        team_id=ctx.team_id,
        file_record=data.file_record.model_dump(by_alias=True, exclude_none=True),
    )


@router.delete("/{routing_id}/operations/{operation_id}/attachments", response_model=SuccessResponse)
def remove_operation_attachment_by_query(
    routing_id: UUID,
    operation_id: UUID,
    file_id: Optional[str] = Query(None, alias="fileId"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    if not file_id:
        raise HTTPException(status_code=400, detail="File ID is required")
    remove_operation_attachment_use_case(
        db=db, routing_id=routing_id, operation_id=operation_id, team_id=ctx.team_id, file_id=file_id
    )
    return SuccessResponse()


@router.delete("/{routing_id}/operations/{operation_id}/attachments/{file_id}", response_model=SuccessResponse)
def remove_operation_attachment(
    routing_id: UUID,
    operation_id: UUID,
    file_id: str,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    remove_operation_attachment_use_case(
        db=db, routing_id=routing_id, operation_id=operation_id, team_id=ctx.team_id, file_id=file_id
    )
    return SuccessResponse()
