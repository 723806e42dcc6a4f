"""Shop-floor analytics: WIP, performance, dashboard counters and recent activity."""
from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..domain_errors import validation_error
from ..models import Order, RoutingOperation, WorkOrderOperation
from ..services.woo_state import WIP_STATUSES, active_seconds, now_utc

PERFORMANCE_DEFAULT_WINDOW_DAYS = 30
BOTTLENECK_MIN_QUEUE = 3
BOTTLENECK_LIMIT = 5
_UNASSIGNED = "Unassigned"


def _department_key(woo: WorkOrderOperation) -> tuple[str | None, str]:
    operation = woo.routing_operation
    department = operation.department if operation is not None else None
    if department is None:
        return None, _UNASSIGNED
    return str(department.id), department.name


def _severity(wip_count: int) -> str:
    if wip_count >= 10:
        return "high"
    if wip_count >= 5:
        return "medium"
    return "low"


def summarize_wip(woos: Iterable[WorkOrderOperation]) -> dict[str, Any]:
    by_status = {status: 0 for status in WIP_STATUSES}
    departments: dict[str | None, dict[str, Any]] = {}
    queued_operations: dict[str | None, Counter] = defaultdict(Counter)

    for woo in woos:
        if woo.status not in by_status:
            continue
        by_status[woo.status] += 1

        department_id, department_name = _department_key(woo)
        row = departments.setdefault(
            department_id,
            {
                "departmentId": department_id,
                "departmentName": department_name,
                "wipCount": 0,
                "inProgress": 0,
                "paused": 0,
                "pending": 0,
                "waiting": 0,
            },
        )
        row["wipCount"] += 1
        row["inProgress" if woo.status == "in_progress" else woo.status] += 1
        if woo.status != "in_progress" and woo.routing_operation is not None:
            queued_operations[department_id][woo.routing_operation.operation_name] += 1

    wip_by_department = sorted(departments.values(), key=lambda row: (-row["wipCount"], row["departmentName"]))

    bottlenecks = []
    for row in wip_by_department:
        queued = row["pending"] + row["waiting"] + row["paused"]
        if queued < BOTTLENECK_MIN_QUEUE:
            continue
        operation_name, _count = queued_operations[row["departmentId"]].most_common(1)[0]
        bottlenecks.append(
            {
                "departmentId": row["departmentId"],
                "departmentName": row["departmentName"],
                "operationName": operation_name,
                "wipCount": queued,
                "severity": _severity(queued),
            }
        )
    bottlenecks.sort(key=lambda item: -item["wipCount"])

    return {
        "summary": {
            "totalWipOperations": sum(by_status.values()),
            "wipByStatus": by_status,
        },
        "wipByDepartment": wip_by_department,
        "bottlenecks": bottlenecks[:BOTTLENECK_LIMIT],
    }


def target_seconds(woo: WorkOrderOperation) -> int:
    """Planned seconds: setup once plus run time per unit of the order quantity."""
    operation = woo.routing_operation
    if operation is None:
        return 0
    quantity = woo.order.quantity if woo.order is not None else 1
    return int((operation.setup_time or 0) + (operation.run_time or 0) * (quantity or 1))


def _ratio(numerator: float, denominator: float, *, default: float) -> float:
    if denominator <= 0:
        return default
    return round(numerator / denominator, 4)


def summarize_performance(
    woos: Iterable[WorkOrderOperation],
    *,
    window_start: datetime,
    window_end: datetime,
) -> dict[str, Any]:
    completed = [woo for woo in woos if woo.status == "completed" and woo.actual_end_time is not None]

    cycle_times = []
    target_times = []
    departments: dict[str | None, dict[str, Any]] = {}
    per_day: Counter = Counter()
    good_units = 0
    rejected_units = 0
    reworked_operations = 0

    for woo in completed:
        cycle = active_seconds(
            actual_start_time=woo.actual_start_time,
            actual_end_time=woo.actual_end_time,
            pause_events=woo.pause_events or [],
        )
        cycle_times.append(cycle)
        target_times.append(target_seconds(woo))

        department_id, department_name = _department_key(woo)
        row = departments.setdefault(
            department_id,
            {"departmentId": department_id, "departmentName": department_name, "totalSeconds": 0, "operationsCount": 0},
        )
        row["totalSeconds"] += cycle
        row["operationsCount"] += 1

        per_day[woo.actual_end_time.date().isoformat()] += 1
        good_units += woo.quantity_completed or 0
        rejected_units += woo.quantity_rejected or 0
        if woo.quantity_rejected:
            reworked_operations += 1

    count = len(completed)
    total_cycle = sum(cycle_times)
    total_target = sum(target_times)
    window_hours = (window_end - window_start).total_seconds() / 3600.0
    produced = good_units + rejected_units

    return {
        "cycleTimeAnalysis": {
            "averageCycleTimeSeconds": round(total_cycle / count) if count else 0,
            "targetCycleTimeSeconds": round(total_target / count) if count else 0,
            "efficiency": _ratio(total_target, total_cycle, default=1.0),
            "cycleTimeByDepartment": [
                {
                    "departmentId": row["departmentId"],
                    "departmentName": row["departmentName"],
                    "averageCycleTimeSeconds": round(row["totalSeconds"] / row["operationsCount"]),
                    "operationsCount": row["operationsCount"],
                }
                for row in sorted(departments.values(), key=lambda row: row["departmentName"])
            ],
        },
        "throughput": {
            "operationsPerHour": _ratio(count, window_hours, default=0.0),
            "throughputTrend": [
                {"date": day, "operationsCount": day_count, "operationsPerHour": round(day_count / 24.0, 4)}
                for day, day_count in sorted(per_day.items())
            ],
        },
        "qualityMetrics": {
            "completionRate": _ratio(good_units, produced, default=1.0),
            "reworkRate": _ratio(reworked_operations, count, default=0.0),
            "defectRate": _ratio(rejected_units, produced, default=0.0),
        },
    }


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def wip_analytics_use_case(*, db: Session, team_id: UUID) -> dict[str, Any]:
    woos = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.team_id == team_id,
        WorkOrderOperation.status.in_(WIP_STATUSES),
    ).all()
    return summarize_wip(woos)


def performance_analytics_use_case(
    *,
    db: Session,
    team_id: UUID,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    department_id: UUID | None = None,
    operator_id: UUID | None = None,
) -> dict[str, Any]:
    window_end = _as_aware(to_date) if to_date else now_utc()
    window_start = _as_aware(from_date) if from_date else window_end - timedelta(days=PERFORMANCE_DEFAULT_WINDOW_DAYS)
    if window_start > window_end:
        raise validation_error("fromDate must be before toDate")

    query = db.query(WorkOrderOperation).join(
        RoutingOperation, WorkOrderOperation.routing_operation_id == RoutingOperation.id
    ).filter(
        WorkOrderOperation.team_id == team_id,
        WorkOrderOperation.status == "completed",
        WorkOrderOperation.actual_end_time >= window_start,
        WorkOrderOperation.actual_end_time <= window_end,
    )
    if department_id:
        query = query.filter(RoutingOperation.department_id == department_id)
    if operator_id:
        query = query.filter(WorkOrderOperation.operator_id == operator_id)

    return summarize_performance(query.all(), window_start=window_start, window_end=window_end)


DASHBOARD_CYCLE_WINDOW_DAYS = 30
RECENT_ACTIVITY_LIMIT = 10


def _percent(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return round(numerator * 100.0 / denominator, 2)


def _same_day(value: datetime | None, today) -> bool:
    return value is not None and _as_aware(value).date() == today


def summarize_dashboard(orders: Iterable[Any], woos: Iterable[WorkOrderOperation], *, now: datetime) -> dict[str, Any]:
    """Shop-floor counters for the internal dashboard.

    Cycle time and on-time delivery only look at work finished in the last
    ``DASHBOARD_CYCLE_WINDOW_DAYS`` days. Operator utilization is the share of
    operators seen on these WOOs that currently have one in progress.
    """
    orders = list(orders)
    woos = list(woos)
    today = now.date()
    window_start = now - timedelta(days=DASHBOARD_CYCLE_WINDOW_DAYS)

    order_status = Counter(order.status for order in orders)
    woo_status = Counter(woo.status for woo in woos)

    recent_completed = [
        woo for woo in woos
        if woo.status == "completed" and woo.actual_end_time is not None
        and _as_aware(woo.actual_end_time) >= window_start
    ]
    cycle_seconds = [
        active_seconds(
            actual_start_time=woo.actual_start_time,
            actual_end_time=woo.actual_end_time,
            pause_events=woo.pause_events or [],
        )
        for woo in recent_completed
    ]

    delivered = [
        order for order in orders
        if order.status == "completed" and order.actual_end_date is not None and order.scheduled_end_date is not None
        and _as_aware(order.actual_end_date) >= window_start
    ]
    on_time = sum(
        1 for order in delivered if _as_aware(order.actual_end_date) <= _as_aware(order.scheduled_end_date)
    )

    operators = {woo.operator_id for woo in woos if woo.operator_id is not None}
    active_operators = {woo.operator_id for woo in woos if woo.operator_id is not None and woo.status == "in_progress"}

    return {
        "ordersPending": order_status["pending"],
        "ordersInProgress": order_status["in_progress"],
        "ordersCompletedToday": sum(
            1 for order in orders if order.status == "completed" and _same_day(order.actual_end_date, today)
        ),
        "operationsInProgress": woo_status["in_progress"],
        "operationsPaused": woo_status["paused"],
        "operationsWaiting": woo_status["waiting"],
        "completedOperationsToday": sum(
            1 for woo in woos if woo.status == "completed" and _same_day(woo.actual_end_time, today)
        ),
        # minutes
        "averageCycleTime": round(sum(cycle_seconds) / len(cycle_seconds) / 60.0, 1) if cycle_seconds else 0,
        "onTimeDeliveryRate": _percent(on_time, len(delivered)),
        "operatorUtilization": _percent(len(active_operators), len(operators)),
        "totalOperators": len(operators),
        "activeOperators": len(active_operators),
    }


_ACTIVITY_LABELS = {
    "in_progress": ("Started", "actual_start_time"),
    "completed": ("Completed", "actual_end_time"),
    "paused": ("Paused", "updated_at"),
    "waiting": ("Waiting", "created_at"),
    "cancelled": ("Cancelled", "updated_at"),
}


def describe_recent_activity(woo: WorkOrderOperation) -> dict[str, Any]:
    label, time_field = _ACTIVITY_LABELS.get(woo.status, ("Pending", "created_at"))
    timestamp = getattr(woo, time_field) or woo.updated_at
    operation = woo.routing_operation
    order = woo.order
    _department_id, department_name = _department_key(woo)
    operator = woo.operator
    return {
        "id": str(woo.id),
        "orderNumber": order.order_number if order is not None else None,
        "routingName": order.routing.name if order is not None and order.routing is not None else None,
        "operationName": operation.operation_name if operation is not None else None,
        "operationNumber": operation.operation_number if operation is not None else None,
        "department": department_name,
        "operatorName": (operator.display_name or operator.primary_email) if operator is not None else None,
        "status": woo.status,
        "activity": label,
        "timestamp": timestamp.isoformat() if timestamp else None,
        "quantityCompleted": woo.quantity_completed or 0,
    }


def dashboard_metrics_use_case(*, db: Session, team_id: UUID, now: datetime | None = None) -> dict[str, Any]:
    now = now or now_utc()
    window_start = now - timedelta(days=DASHBOARD_CYCLE_WINDOW_DAYS)
    orders = db.query(Order).filter(
        Order.team_id == team_id,
        or_(Order.status.in_(("pending", "in_progress")), Order.actual_end_date >= window_start),
    ).all()
    woos = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.team_id == team_id,
        or_(WorkOrderOperation.status.in_(WIP_STATUSES), WorkOrderOperation.actual_end_time >= window_start),
    ).all()
    return summarize_dashboard(orders, woos, now=now)


def recent_activity_use_case(*, db: Session, team_id: UUID, limit: int = RECENT_ACTIVITY_LIMIT) -> list[dict[str, Any]]:
    woos = db.query(WorkOrderOperation).filter(
        WorkOrderOperation.team_id == team_id,
    ).order_by(WorkOrderOperation.updated_at.desc()).limit(limit).all()
    return [describe_recent_activity(woo) for woo in woos]
