"""Work-order-operation lifecycle use-cases: start, pause, resume, complete."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError, InvalidTransition, validation_error
from ..models import Order, PauseEvent, PauseReason, RoutingOperation, WorkOrderOperation
from ..services.attachments import append_attachment, list_attachments, remove_attachment
from ..services.woo_state import (
    OPERATOR_QUEUE_STATUSES,
    TERMINAL_STATUSES,
    active_seconds,
    find_open_pause,
    next_status,
    now_utc,
)
from .analytics import target_seconds
from .common import add_audit_event, apply_changes, commit_or_fail, drop_null_required

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    "operator_id",
    "scheduled_start_time",
    "scheduled_end_time",
    "quantity_completed",
    "quantity_rejected",
    "captured_data",
    "notes",
}
_REQUIRED_FIELDS = {"quantity_completed", "quantity_rejected"}


def _get_woo_or_404(*, db: Session, woo_id: UUID, team_id: UUID, for_update: bool = False) -> WorkOrderOperation:
    query = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.id == woo_id,
        WorkOrderOperation.team_id == team_id,
    )
    if for_update:
        # Serializes concurrent transitions on the same row.
        query = query.with_for_update()
    woo = query.first()
    if not woo:
        raise DomainError(
            code="WOO_NOT_FOUND",
            http_status=404,
            message="Work order operation not found",
        )
    return woo


def _transition(woo: WorkOrderOperation, action: str) -> tuple[str, str]:
    old_status = woo.status
    try:
        new_status = next_status(action=action, current_status=old_status)
    except ValueError as exc:
        raise InvalidTransition(
            code="WOO_INVALID_TRANSITION",
            http_status=409,
            message=str(exc),
            details={"action": action, "status": old_status},
        )
    woo.status = new_status
    return old_status, new_status


def _audit_transition(db: Session, *, woo: WorkOrderOperation, action: str, user_id: UUID | None,
                      old_status: str, new_status: str, **extra: Any) -> None:
    details = {"oldStatus": old_status, "newStatus": new_status}
    details.update(extra)
    add_audit_event(
        db,
        team_id=woo.team_id,
        action=action,
        entity_type="work_order_operation",
        entity_id=woo.id,
        user_id=user_id,
        details=details,
    )


def start_woo_use_case(*, db: Session, woo_id: UUID, team_id: UUID, operator_id: UUID) -> WorkOrderOperation:
    """Start a pending WOO and assign it to the operator."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)
    old_status, new_status = _transition(woo, "start")

    now = now_utc()
    woo.operator_id = operator_id
    woo.actual_start_time = now

    # The first started operation moves a pending order into production.
    order = db.query(Order).filter(Order.id == woo.order_id, Order.team_id == team_id).first()
    if order and order.status == "pending":
        order.status = "in_progress"
        order.actual_start_date = now

    _audit_transition(db, woo=woo, action="woo_started", user_id=operator_id,
                      old_status=old_status, new_status=new_status)
    commit_or_fail(db, failure="Failed to start work order operation")
    return woo


def pause_woo_use_case(
    *,
    db: Session,
    woo_id: UUID,
    team_id: UUID,
    pause_reason_id: UUID,
    notes: str | None = None,
    user_id: UUID | None = None,
) -> WorkOrderOperation:
    """Pause an in-progress WOO and open a pause event."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)
    old_status, new_status = _transition(woo, "pause")

    reason = db.query(PauseReason).filter(
        PauseReason.id == pause_reason_id,
        PauseReason.team_id == team_id,
    ).first()
    if not reason:
        raise DomainError(
            code="PAUSE_REASON_NOT_FOUND",
            http_status=404,
            message="Pause reason not found",
        )

    db.add(
        PauseEvent(
            team_id=team_id,
            work_order_operation_id=woo.id,
            pause_reason_id=reason.id,
            start_time=now_utc(),
            notes=notes,
        )
    )
    _audit_transition(db, woo=woo, action="woo_paused", user_id=user_id,
                      old_status=old_status, new_status=new_status, pauseReasonId=str(reason.id))
    commit_or_fail(db, failure="Failed to pause work order operation")
    return woo


def resume_woo_use_case(*, db: Session, woo_id: UUID, team_id: UUID, user_id: UUID | None = None) -> WorkOrderOperation:
    """Resume a paused WOO and close its open pause event."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)

    old_status, new_status = _transition(woo, "resume")

    open_pause = find_open_pause(woo.pause_events or [])
    if open_pause is None:
        raise InvalidTransition(
            code="WOO_INVALID_TRANSITION",
            http_status=409,
            message="Work order operation has no open pause event",
            details={"action": "resume", "status": old_status},
        )
    open_pause.end_time = now_utc()

    _audit_transition(db, woo=woo, action="woo_resumed", user_id=user_id,
                      old_status=old_status, new_status=new_status, pauseEventId=str(open_pause.id))
    commit_or_fail(db, failure="Failed to resume work order operation")
    return woo


def _release_next_operation(*, db: Session, woo: WorkOrderOperation, team_id: UUID) -> WorkOrderOperation | None:
    current_number = woo.routing_operation.operation_number
    return db.query(WorkOrderOperation).join(
        RoutingOperation,
        WorkOrderOperation.routing_operation_id == RoutingOperation.id,
    ).filter(
        WorkOrderOperation.order_id == woo.order_id,
        WorkOrderOperation.team_id == team_id,
        RoutingOperation.operation_number > current_number,
    ).order_by(RoutingOperation.operation_number.asc()).first()


def complete_woo_use_case(
    *,
    db: Session,
    woo_id: UUID,
    team_id: UUID,
    captured_data: dict[str, Any] | None = None,
    quantity_completed: int = 0,
    quantity_rejected: int = 0,
    notes: str | None = None,
    user_id: UUID | None = None,
) -> WorkOrderOperation:
    """Complete an in-progress WOO, then release the next operation or complete the order."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)
    old_status, new_status = _transition(woo, "complete")

    now = now_utc()
    woo.actual_end_time = now
    woo.captured_data = captured_data
    woo.quantity_completed = quantity_completed
    woo.quantity_rejected = quantity_rejected
    woo.notes = notes

    next_woo = _release_next_operation(db=db, woo=woo, team_id=team_id)
    if next_woo is not None:
        if next_woo.status == "waiting":
            next_woo.status = "pending"
    else:
        order = db.query(Order).filter(Order.id == woo.order_id, Order.team_id == team_id).first()
        if order and order.status not in {"completed", "cancelled"}:
            order.status = "completed"
            order.actual_end_date = now

    _audit_transition(
        db,
        woo=woo,
        action="woo_completed",
        user_id=user_id,
        old_status=old_status,
        new_status=new_status,
        quantityCompleted=quantity_completed,
        quantityRejected=quantity_rejected,
    )
    commit_or_fail(db, failure="Failed to complete work order operation")
    return woo


def update_woo_use_case(*, db: Session, woo_id: UUID, team_id: UUID, changes: dict[str, Any]) -> WorkOrderOperation:
    """Update non-lifecycle fields; status only moves through the transition use-cases."""
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    changes = drop_null_required(changes, required=_REQUIRED_FIELDS)
    apply_changes(woo, changes, allowed=_UPDATABLE_FIELDS)
    commit_or_fail(db, failure="Failed to update work order operation")
    return woo


def get_woo_use_case(*, db: Session, woo_id: UUID, team_id: UUID) -> WorkOrderOperation:
    return _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)


def woo_active_seconds(woo: WorkOrderOperation) -> int:
    return active_seconds(
        actual_start_time=woo.actual_start_time,
        actual_end_time=woo.actual_end_time,
        pause_events=woo.pause_events or [],
    )


def list_woos_use_case(
    *,
    db: Session,
    team_id: UUID,
    statuses: list[str] | None = None,
    operator_id: UUID | None = None,
) -> list[WorkOrderOperation]:
    query = db.query(WorkOrderOperation).join(
        Order, WorkOrderOperation.order_id == Order.id
    ).join(
        RoutingOperation, WorkOrderOperation.routing_operation_id == RoutingOperation.id
    ).filter(WorkOrderOperation.team_id == team_id)
    if statuses:
        query = query.filter(WorkOrderOperation.status.in_(statuses))
    if operator_id:
        query = query.filter(WorkOrderOperation.operator_id == operator_id)
    return query.order_by(
        Order.scheduled_start_date.asc().nullslast(),
        Order.created_at.asc(),
        RoutingOperation.operation_number.asc(),
    ).all()


def list_operator_queue_use_case(
    *,
    db: Session,
    team_id: UUID,
    department_id: UUID | None = None,
) -> list[WorkOrderOperation]:
    """Operations an operator can pick up or continue (pending or paused)."""
    query = db.query(WorkOrderOperation).join(
        Order, WorkOrderOperation.order_id == Order.id
    ).join(
        RoutingOperation, WorkOrderOperation.routing_operation_id == RoutingOperation.id
    ).filter(
        WorkOrderOperation.team_id == team_id,
        WorkOrderOperation.status.in_(OPERATOR_QUEUE_STATUSES),
        Order.status.notin_(TERMINAL_STATUSES),
    )
    if department_id:
        query = query.filter(RoutingOperation.department_id == department_id)
    return query.order_by(
        Order.priority.desc(),
        Order.scheduled_start_date.asc().nullslast(),
        RoutingOperation.operation_number.asc(),
    ).all()


def get_active_woo_for_operator_use_case(*, db: Session, team_id: UUID, operator_id: UUID) -> WorkOrderOperation | None:
    """The operation the operator is currently working on or has paused, if any."""
    return db.query(WorkOrderOperation).filter(
        WorkOrderOperation.team_id == team_id,
        WorkOrderOperation.operator_id == operator_id,
        WorkOrderOperation.status.in_(("in_progress", "paused")),
    ).order_by(WorkOrderOperation.actual_start_time.desc()).first()


def list_woo_attachments_use_case(*, db: Session, woo_id: UUID, team_id: UUID) -> list[dict[str, Any]]:
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id)
    return list_attachments(woo.file_attachments)


def add_woo_attachment_use_case(*, db: Session, woo_id: UUID, team_id: UUID, file_record: dict[str, Any]) -> list[dict[str, Any]]:
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)
    woo.file_attachments = append_attachment(woo.file_attachments, file_record)
    commit_or_fail(db, failure="Failed to add attachment")
    return list_attachments(woo.file_attachments)


def remove_woo_attachment_use_case(*, db: Session, woo_id: UUID, team_id: UUID, file_id: str) -> list[dict[str, Any]]:
    woo = _get_woo_or_404(db=db, woo_id=woo_id, team_id=team_id, for_update=True)
    woo.file_attachments = remove_attachment(woo.file_attachments, file_id)
    commit_or_fail(db, failure="Failed to remove attachment")
    return list_attachments(woo.file_attachments)


def list_woos_page_use_case(
    *,
    db: Session,
    team_id: UUID,
    order_id: UUID | None = None,
    status: str | None = None,
    department_id: UUID | None = None,
    operator_id: UUID | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[WorkOrderOperation], int]:
    """One page of team WOOs in routing order, plus the total match count."""
    query = db.query(WorkOrderOperation).join(
        Order, WorkOrderOperation.order_id == Order.id
    ).join(
        RoutingOperation, WorkOrderOperation.routing_operation_id == RoutingOperation.id
    ).filter(WorkOrderOperation.team_id == team_id)
    if order_id:
        query = query.filter(WorkOrderOperation.order_id == order_id)
    if status:
        query = query.filter(WorkOrderOperation.status == status)
    if department_id:
        query = query.filter(RoutingOperation.department_id == department_id)
    if operator_id:
        query = query.filter(WorkOrderOperation.operator_id == operator_id)
    if from_date:
        query = query.filter(WorkOrderOperation.created_at >= from_date)
    if to_date:
        query = query.filter(WorkOrderOperation.created_at <= to_date)

    total = query.count()
    woos = query.order_by(
        Order.created_at.desc(),
        RoutingOperation.operation_number.asc(),
    ).offset(offset).limit(limit).all()
    return woos, total


def apply_woo_action_use_case(
    *,
    db: Session,
    woo_id: UUID,
    team_id: UUID,
    action: str,
    operator_id: UUID | None = None,
    pause_reason_id: UUID | None = None,
    notes: str | None = None,
    captured_data: dict[str, Any] | None = None,
    quantity_completed: int = 0,
    quantity_rejected: int = 0,
) -> WorkOrderOperation:
    """Dispatch a single lifecycle action by name (external PATCH)."""
    if action == "start":
        if operator_id is None:
            raise validation_error("operatorId is required to start an operation")
        return start_woo_use_case(db=db, woo_id=woo_id, team_id=team_id, operator_id=operator_id)
    if action == "pause":
        if pause_reason_id is None:
            raise validation_error("pauseReasonId is required to pause an operation")
        return pause_woo_use_case(
            db=db, woo_id=woo_id, team_id=team_id, pause_reason_id=pause_reason_id, notes=notes, user_id=operator_id
        )
    if action == "resume":
        return resume_woo_use_case(db=db, woo_id=woo_id, team_id=team_id, user_id=operator_id)
    if action == "complete":
        return complete_woo_use_case(
            db=db,
            woo_id=woo_id,
            team_id=team_id,
            captured_data=captured_data,
            quantity_completed=quantity_completed,
            quantity_rejected=quantity_rejected,
            notes=notes,
            user_id=operator_id,
        )
    raise validation_error(f"Unknown action: {action}")


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_external_woo_summary(woo: WorkOrderOperation) -> dict[str, Any]:
    operation = woo.routing_operation
    department = operation.department if operation is not None else None
    order = woo.order
    return {
        "id": str(woo.id),
        "orderId": str(woo.order_id),
        "orderNumber": order.order_number if order is not None else None,
        "operationNumber": operation.operation_number if operation is not None else None,
        "operationName": operation.operation_name if operation is not None else None,
        "department": {"id": str(department.id), "name": department.name} if department else None,
        "status": woo.status,
        "operatorId": str(woo.operator_id) if woo.operator_id else None,
        "scheduledStartTime": _iso(woo.scheduled_start_time),
        "actualStartTime": _iso(woo.actual_start_time),
        "targetTimeSeconds": target_seconds(woo),
        "elapsedTimeSeconds": woo_active_seconds(woo),
        "quantityCompleted": woo.quantity_completed or 0,
        "quantityTarget": order.quantity if order is not None else None,
    }


def build_external_woo_state(woo: WorkOrderOperation) -> dict[str, Any]:
    """WOO state returned after an external lifecycle action."""
    return {
        "id": str(woo.id),
        "status": woo.status,
        "actualStartTime": _iso(woo.actual_start_time),
        "actualEndTime": _iso(woo.actual_end_time),
        "totalActiveTimeSeconds": woo_active_seconds(woo),
        "operatorId": str(woo.operator_id) if woo.operator_id else None,
        "quantityCompleted": woo.quantity_completed or 0,
        "capturedData": woo.captured_data,
        "updatedAt": _iso(woo.updated_at),
    }
