"""Production order use-cases."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError, InvalidTransition
from ..models import Order, Routing, RoutingOperation, WorkOrderOperation
from ..services.woo_state import TERMINAL_STATUSES, now_utc
from .common import add_audit_event, apply_changes, commit_or_fail, drop_null_required

_UPDATABLE_FIELDS = {
    "order_number",
    "quantity",
    "priority",
    "scheduled_start_date",
    "scheduled_end_date",
    "notes",
    "custom_fields",
}
_REQUIRED_FIELDS = {"order_number", "quantity", "priority"}


def _get_order_or_404(*, db: Session, order_id: UUID, team_id: UUID, for_update: bool = False) -> Order:
    query = db.query(Order).filter(Order.id == order_id, Order.team_id == team_id)
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise DomainError(code="ORDER_NOT_FOUND", http_status=404, message="Order not found")
    return order


def compute_order_progress(woos: Iterable[WorkOrderOperation]) -> float:
    """Share of completed operations, as a percentage rounded to 2 decimals."""
    statuses = [woo.status for woo in woos]
    if not statuses:
        return 0.0
    completed = sum(1 for status in statuses if status == "completed")
    return round(completed * 100.0 / len(statuses), 2)


def create_order_use_case(*, db: Session, team_id: UUID, data: dict[str, Any], user_id: UUID | None) -> Order:
    """Create an order and one WOO per active routing operation.

    The first operation is released as ``pending``; the rest wait for their predecessor.
    """
    routing = db.query(Routing).filter(
        Routing.id == data["routing_id"],
        Routing.team_id == team_id,
        Routing.is_active == True,  # noqa: E712
    ).first()
    if not routing:
        raise DomainError(code="ROUTING_NOT_FOUND", http_status=404, message="Routing not found")

    duplicate = db.query(Order).filter(
        Order.team_id == team_id,
        Order.order_number == data["order_number"],
    ).first()
    if duplicate:
        raise DomainError(code="ORDER_NUMBER_EXISTS", http_status=409, message="Order number already exists")

    operations = db.query(RoutingOperation).filter(
        RoutingOperation.routing_id == routing.id,
        RoutingOperation.team_id == team_id,
        RoutingOperation.is_active == True,  # noqa: E712
    ).order_by(RoutingOperation.operation_number.asc()).all()
    if not operations:
        raise DomainError(
            code="ROUTING_HAS_NO_OPERATIONS",
            http_status=400,
            message="Routing has no active operations",
        )

    order = Order(
        id=uuid.uuid4(),
        team_id=team_id,
        order_number=data["order_number"],
        routing_id=routing.id,
        quantity=data.get("quantity", 1),
        priority=data.get("priority", 0),
        status="pending",
        scheduled_start_date=data.get("scheduled_start_date"),
        scheduled_end_date=data.get("scheduled_end_date"),
        notes=data.get("notes"),
        custom_fields=data.get("custom_fields"),
    )
    db.add(order)

    for index, operation in enumerate(operations):
        db.add(
            WorkOrderOperation(
                id=uuid.uuid4(),
                team_id=team_id,
                order_id=order.id,
                routing_operation_id=operation.id,
                status="pending" if index == 0 else "waiting",
                quantity_completed=0,
                quantity_rejected=0,
                file_attachments=[],
            )
        )

    add_audit_event(
        db,
        team_id=team_id,
        action="order_created",
        entity_type="order",
        entity_id=order.id,
        user_id=user_id,
        details={"orderNumber": order.order_number, "operations": len(operations)},
    )
    commit_or_fail(db, failure="Failed to create order")
    return order


def list_orders_use_case(*, db: Session, team_id: UUID, statuses: list[str] | None = None) -> list[Order]:
    query = db.query(Order).filter(Order.team_id == team_id)
    if statuses:
        query = query.filter(Order.status.in_(statuses))
    return query.order_by(Order.priority.desc(), Order.created_at.desc()).all()


def get_order_use_case(*, db: Session, order_id: UUID, team_id: UUID) -> Order:
    return _get_order_or_404(db=db, order_id=order_id, team_id=team_id)


def list_order_woos(*, db: Session, order_id: UUID, team_id: UUID) -> list[WorkOrderOperation]:
    return db.query(WorkOrderOperation).join(
        RoutingOperation, WorkOrderOperation.routing_operation_id == RoutingOperation.id
    ).filter(
        WorkOrderOperation.order_id == order_id,
        WorkOrderOperation.team_id == team_id,
    ).order_by(RoutingOperation.operation_number.asc()).all()


def update_order_use_case(*, db: Session, order_id: UUID, team_id: UUID, changes: dict[str, Any]) -> Order:
    """Update order details; status only moves through start, complete and cancel."""
    order = _get_order_or_404(db=db, order_id=order_id, team_id=team_id)
    changes = drop_null_required(changes, required=_REQUIRED_FIELDS)
    if "order_number" in changes and changes["order_number"] != order.order_number:
        duplicate = db.query(Order).filter(
            Order.team_id == team_id,
            Order.order_number == changes["order_number"],
            Order.id != order.id,
        ).first()
        if duplicate:
            raise DomainError(code="ORDER_NUMBER_EXISTS", http_status=409, message="Order number already exists")
    apply_changes(order, changes, allowed=_UPDATABLE_FIELDS)
    commit_or_fail(db, failure="Failed to update order")
    return order


def _order_transition(order: Order, *, allowed_from: str, target: str, action: str) -> str:
    if order.status != allowed_from:
        raise InvalidTransition(
            code="ORDER_INVALID_TRANSITION",
            http_status=409,
            message=f"Cannot {action} order in status {order.status}",
            details={"action": action, "status": order.status},
        )
    old_status = order.status
    order.status = target
    return old_status


def start_order_use_case(*, db: Session, order_id: UUID, team_id: UUID, user_id: UUID | None) -> Order:
    order = _get_order_or_404(db=db, order_id=order_id, team_id=team_id, for_update=True)
    old_status = _order_transition(order, allowed_from="pending", target="in_progress", action="start")
    order.actual_start_date = now_utc()
    add_audit_event(db, team_id=team_id, action="order_started", entity_type="order", entity_id=order.id,
                    user_id=user_id, details={"oldStatus": old_status, "newStatus": order.status})
    commit_or_fail(db, failure="Failed to start order")
    return order


def complete_order_use_case(*, db: Session, order_id: UUID, team_id: UUID, user_id: UUID | None) -> Order:
    order = _get_order_or_404(db=db, order_id=order_id, team_id=team_id, for_update=True)
    old_status = _order_transition(order, allowed_from="in_progress", target="completed", action="complete")
    order.actual_end_date = now_utc()
    add_audit_event(db, team_id=team_id, action="order_completed", entity_type="order", entity_id=order.id,
                    user_id=user_id, details={"oldStatus": old_status, "newStatus": order.status})
    commit_or_fail(db, failure="Failed to complete order")
    return order


def cancel_order_use_case(*, db: Session, order_id: UUID, team_id: UUID, user_id: UUID | None) -> Order:
    """Soft delete: the order and its unfinished operations become cancelled."""
    order = _get_order_or_404(db=db, order_id=order_id, team_id=team_id, for_update=True)
    if order.status == "cancelled":
        return order
    if order.status == "completed":
        raise InvalidTransition(
            code="ORDER_INVALID_TRANSITION",
            http_status=409,
            message="Cannot cancel order in status completed",
            details={"action": "cancel", "status": order.status},
        )

    old_status = order.status
    order.status = "cancelled"
    woos = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.order_id == order.id,
        WorkOrderOperation.team_id == team_id,
    ).all()
    for woo in woos:
        if woo.status not in TERMINAL_STATUSES:
            woo.status = "cancelled"

    add_audit_event(db, team_id=team_id, action="order_cancelled", entity_type="order", entity_id=order.id,
                    user_id=user_id, details={"oldStatus": old_status, "newStatus": "cancelled"})
    commit_or_fail(db, failure="Failed to delete order")
    return order


_EXTERNAL_SORTS = {
    "createdAt": Order.created_at,
    "scheduledStartDate": Order.scheduled_start_date,
    "priority": Order.priority,
}


def list_orders_page_use_case(
    *,
    db: Session,
    team_id: UUID,
    status: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
    sort: str = "createdAt",
    descending: bool = True,
) -> tuple[list[Order], int]:
    """One page of team orders filtered by status and creation window, plus the total match count."""
    query = db.query(Order).filter(Order.team_id == team_id)
    if status:
        query = query.filter(Order.status == status)
    if from_date:
        query = query.filter(Order.created_at >= from_date)
    if to_date:
        query = query.filter(Order.created_at <= to_date)

    total = query.count()
    column = _EXTERNAL_SORTS.get(sort, Order.created_at)
    ordering = column.desc().nullslast() if descending else column.asc().nullslast()
    orders = query.order_by(ordering, Order.id.asc()).offset(offset).limit(limit).all()
    return orders, total


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _ordered_woos(order: Order) -> list[WorkOrderOperation]:
    return sorted(
        order.work_order_operations or [],
        key=lambda woo: woo.routing_operation.operation_number if woo.routing_operation is not None else 0,
    )


def current_operation(woos: list[WorkOrderOperation]) -> WorkOrderOperation | None:
    """The operation being worked on, else the next one released for work."""
    for statuses in (("in_progress", "paused"), ("pending",)):
        for woo in woos:
            if woo.status in statuses:
                return woo
    return None


def build_external_order_summary(order: Order) -> dict[str, Any]:
    woos = _ordered_woos(order)
    completed = sum(1 for woo in woos if woo.status == "completed")
    current = current_operation(woos)
    current_payload = None
    if current is not None:
        operation = current.routing_operation
        current_payload = {
            "id": str(current.id),
            "operationNumber": operation.operation_number if operation is not None else None,
            "operationName": operation.operation_name if operation is not None else None,
            "status": current.status,
        }
    return {
        "id": str(order.id),
        "orderNumber": order.order_number,
        "quantity": order.quantity,
        "status": order.status,
        "priority": order.priority,
        "scheduledStartDate": _iso(order.scheduled_start_date),
        "actualStartDate": _iso(order.actual_start_date),
        "currentOperation": current_payload,
        "progress": {
            "completedOperations": completed,
            "totalOperations": len(woos),
            "percentComplete": compute_order_progress(woos),
        },
        "createdAt": _iso(order.created_at),
    }


def build_external_order(order: Order) -> dict[str, Any]:
    routing = order.routing
    return {
        "id": str(order.id),
        "orderNumber": order.order_number,
        "quantity": order.quantity,
        "status": order.status,
        "priority": order.priority,
        "scheduledStartDate": _iso(order.scheduled_start_date),
        "actualStartDate": _iso(order.actual_start_date),
        "routing": (
            {"id": str(routing.id), "name": routing.name, "version": routing.version or "1.0"}
            if routing is not None
            else None
        ),
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
    }
