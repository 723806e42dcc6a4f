"""Production order endpoints."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import OrderCreate, OrderDetailResponse, OrderResponse, OrderUpdate, WorkOrderOperationResponse
from ..use_cases.orders import (
    cancel_order_use_case,
    complete_order_use_case,
    compute_order_progress,
    create_order_use_case,
    get_order_use_case,
    list_order_woos,
    list_orders_use_case,
    start_order_use_case,
    update_order_use_case,
)

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_detail(db: Session, order, team_id: UUID) -> OrderDetailResponse:
    woos = list_order_woos(db=db, order_id=order.id, team_id=team_id)
    detail = OrderDetailResponse.model_validate(order)
    return detail.model_copy(
        update={
            "work_order_operations": [WorkOrderOperationResponse.model_validate(woo) for woo in woos],
            "progress": compute_order_progress(woos),
        }
    )


@router.get("", response_model=list[OrderResponse])
def list_orders(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    statuses = [item.strip() for item in status.split(",") if item.strip()] if status else None
    return list_orders_use_case(db=db, team_id=ctx.team_id, statuses=statuses)


@router.post("", response_model=OrderDetailResponse, status_code=201)
def create_order(
    data: OrderCreate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Create an order with one work-order operation per routing step."""
    order = create_order_use_case(db=db, team_id=ctx.team_id, data=data.model_dump(), user_id=ctx.user_id)
    return _order_detail(db, order, ctx.team_id)


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(
    order_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    order = get_order_use_case(db=db, order_id=order_id, team_id=ctx.team_id)
    return _order_detail(db, order, ctx.team_id)


@router.put("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: UUID,
    data: OrderUpdate,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return update_order_use_case(
        db=db,
        order_id=order_id,
        team_id=ctx.team_id,
        changes=data.model_dump(exclude_unset=True),
    )


@router.delete("/{order_id}", response_model=OrderResponse)
def delete_order(
    order_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    """Cancel the order (soft delete)."""
    return cancel_order_use_case(db=db, order_id=order_id, team_id=ctx.team_id, user_id=ctx.user_id)


@router.post("/{order_id}/start", response_model=OrderResponse)
def start_order(
    order_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return start_order_use_case(db=db, order_id=order_id, team_id=ctx.team_id, user_id=ctx.user_id)


@router.post("/{order_id}/complete", response_model=OrderResponse)
def complete_order(
    order_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db),
):
    return complete_order_use_case(db=db, order_id=order_id, team_id=ctx.team_id, user_id=ctx.user_id)
