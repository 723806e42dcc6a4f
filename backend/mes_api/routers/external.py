"""External API (`/api/v1`) authenticated with team API keys."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..database import get_db
from ..domain_errors import DomainError, ExternalAPIError
from ..external_auth import ExternalAPIContext, add_rate_limit_headers, require_external_api_key
from ..schemas import (
    DataCollectionActivityResponse,
    ExternalOrdersQuery,
    ExternalWOOAction,
    ExternalWOOsQuery,
    PerformanceQuery,
)
from ..use_cases.analytics import performance_analytics_use_case, wip_analytics_use_case
from ..use_cases.data_collection import list_activities_use_case
from ..use_cases.orders import (
    build_external_order,
    build_external_order_summary,
    get_order_use_case,
    list_orders_page_use_case,
)
from ..use_cases.routings import build_external_routing, get_routing_use_case
from ..use_cases.work_order_operations import (
    apply_woo_action_use_case,
    build_external_woo_state,
    build_external_woo_summary,
    list_woos_page_use_case,
)

router = APIRouter(prefix="/api/v1", tags=["external"])


def _with_rate_limit(response: Response, ctx: ExternalAPIContext) -> None:
    add_rate_limit_headers(response, ctx.rate_limit.remaining, ctx.rate_limit.reset_at_ms)


def _validation_details(exc: ValidationError) -> dict:
    return {
        "validationErrors": [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
    }


def _parse_query(model, request: Request):
    try:
        return model.model_validate(dict(request.query_params))
    except ValidationError as exc:
        raise ExternalAPIError(
            code="VALIDATION_ERROR",
            http_status=400,
            message="Invalid query parameters",
            details=_validation_details(exc),
        )


def _as_external(exc: DomainError) -> ExternalAPIError:
    if isinstance(exc, ExternalAPIError):
        return exc
    return ExternalAPIError(code=exc.code, http_status=exc.http_status, message=exc.message, details=exc.details)


def _pagination(*, total: int, limit: int, offset: int, returned: int) -> dict:
    return {"total": total, "limit": limit, "offset": offset, "hasMore": offset + returned < total}


@router.get("/analytics/performance")
def get_performance_analytics(
    request: Request,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    """Cycle time, throughput and quality metrics over a date window (default: last 30 days)."""
    query = _parse_query(PerformanceQuery, request)
    try:
        data = performance_analytics_use_case(
            db=db,
            team_id=ctx.team_id,
            from_date=query.from_date,
            to_date=query.to_date,
            department_id=query.department_id,
            operator_id=query.operator_id,
        )
    except DomainError as exc:
        raise _as_external(exc)

    _with_rate_limit(response, ctx)
    return data


@router.get("/analytics/wip")
def get_wip_analytics(
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    """Current work in progress by status and department, with bottlenecks."""
    data = wip_analytics_use_case(db=db, team_id=ctx.team_id)
    _with_rate_limit(response, ctx)
    return data


@router.get("/data-collection/activities")
def get_data_collection_activities(
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    activities = list_activities_use_case(db=db, team_id=ctx.team_id, active_only=True)
    _with_rate_limit(response, ctx)
    return {
        "activities": [
            DataCollectionActivityResponse.model_validate(activity).model_dump(mode="json", by_alias=True)
            for activity in activities
        ]
    }


@router.get("/orders")
def list_orders(
    request: Request,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    """Paginated orders with their current operation and progress."""
    query = _parse_query(ExternalOrdersQuery, request)
    orders, total = list_orders_page_use_case(
        db=db,
        team_id=ctx.team_id,
        status=query.status,
        from_date=query.from_date,
        to_date=query.to_date,
        limit=query.limit,
        offset=query.offset,
        sort=query.sort,
        descending=query.order == "desc",
    )
    _with_rate_limit(response, ctx)
    return {
        "orders": [build_external_order_summary(order) for order in orders],
        "pagination": _pagination(total=total, limit=query.limit, offset=query.offset, returned=len(orders)),
    }


@router.get("/orders/{order_id}")
def get_order(
    order_id: UUID,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    try:
        order = get_order_use_case(db=db, order_id=order_id, team_id=ctx.team_id)
    except DomainError as exc:
        if exc.code != "ORDER_NOT_FOUND":
            raise
        raise ExternalAPIError(code="ORDER_NOT_FOUND", http_status=404, message="Order not found or access denied")

    _with_rate_limit(response, ctx)
    return build_external_order(order)


@router.get("/work-order-operations")
def list_work_order_operations(
    request: Request,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    query = _parse_query(ExternalWOOsQuery, request)
    woos, total = list_woos_page_use_case(
        db=db,
        team_id=ctx.team_id,
        order_id=query.order_id,
        status=query.status,
        department_id=query.department_id,
        operator_id=query.operator_id,
        from_date=query.from_date,
        to_date=query.to_date,
        limit=query.limit,
        offset=query.offset,
    )
    _with_rate_limit(response, ctx)
    return {
        "workOrderOperations": [build_external_woo_summary(woo) for woo in woos],
        "pagination": _pagination(total=total, limit=query.limit, offset=query.offset, returned=len(woos)),
    }


@router.patch("/work-order-operations/{woo_id}")
def update_work_order_operation(
    woo_id: UUID,
    data: ExternalWOOAction,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    """Run one lifecycle action (start, pause, resume, complete). Requires write permission."""
    try:
        woo = apply_woo_action_use_case(
            db=db,
            woo_id=woo_id,
            team_id=ctx.team_id,
            action=data.action,
            operator_id=data.operator_id,
            pause_reason_id=data.pause_reason_id,
            notes=data.notes,
            captured_data=data.captured_data,
            quantity_completed=data.quantity_completed,
            quantity_rejected=data.quantity_rejected,
        )
    except DomainError as exc:
        raise _as_external(exc)

    _with_rate_limit(response, ctx)
    return build_external_woo_state(woo)


@router.get("/routings/{routing_id}")
def get_routing(
    routing_id: UUID,
    response: Response,
    ctx: ExternalAPIContext = Depends(require_external_api_key),
    db: Session = Depends(get_db),
):
    try:
        routing = get_routing_use_case(db=db, routing_id=routing_id, team_id=ctx.team_id)
    except DomainError as exc:
        if exc.code != "ROUTING_NOT_FOUND":
            raise
        raise ExternalAPIError(code="ROUTING_NOT_FOUND", http_status=404, message="Routing not found")

    _with_rate_limit(response, ctx)
    return build_external_routing(routing)
