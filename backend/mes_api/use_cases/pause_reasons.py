"""Pause-reason taxonomy use-cases."""
from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError, validation_error
from ..models import PAUSE_REASON_CATEGORIES, PauseEvent, PauseReason
from ..services.woo_state import now_utc
from .common import apply_changes, commit_or_fail, drop_null_required

DEFAULT_PAUSE_REASONS: tuple[tuple[str, str, str], ...] = (
    ("Machine Breakdown", "unplanned", "Equipment failure requiring repair"),
    ("Material Shortage", "material", "Required material is not available"),
    ("Quality Issue", "quality", "Quality problem detected, investigation required"),
    ("Preventive Maintenance", "maintenance", "Scheduled maintenance activity"),
    ("Setup/Changeover", "planned", "Machine setup or product changeover"),
    ("Break Time", "planned", "Scheduled operator break"),
    ("Training", "other", "Operator training session"),
    ("Tool Change", "planned", "Tool replacement or adjustment"),
    ("Power Outage", "unplanned", "Loss of electrical power"),
    ("Safety Issue", "unplanned", "Work stopped for a safety concern"),
)

USAGE_DEFAULT_WINDOW_DAYS = 30

_UPDATABLE_FIELDS = {"name", "description", "category", "is_active"}
_REQUIRED_FIELDS = {"name", "category", "is_active"}


def _validate_category(category: str) -> None:
    if category not in PAUSE_REASON_CATEGORIES:
        raise validation_error(
            f"Invalid category. Must be one of: {', '.join(PAUSE_REASON_CATEGORIES)}",
            code="INVALID_CATEGORY",
        )


def _get_reason_or_404(*, db: Session, reason_id: UUID, team_id: UUID) -> PauseReason:
    reason = db.query(PauseReason).filter(PauseReason.id == reason_id, PauseReason.team_id == team_id).first()
    if not reason:
        raise DomainError(code="PAUSE_REASON_NOT_FOUND", http_status=404, message="Pause reason not found")
    return reason


def parse_usage_date(value: str | None, *, field: str) -> datetime | None:
    """Parse an ISO date or datetime query value; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise validation_error(f"Invalid {field} format", code="INVALID_DATE")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_pause_reason_use_case(
    *,
    db: Session,
    team_id: UUID,
    name: str | None,
    category: str | None,
    description: str | None = None,
) -> PauseReason:
    if not name or not name.strip() or not category:
        raise validation_error("Name and category are required")
    _validate_category(category)

    reason = PauseReason(
        id=uuid.uuid4(),
        team_id=team_id,
        name=name.strip(),
        category=category,
        description=description,
        is_active=True,
    )
    db.add(reason)
    commit_or_fail(db, failure="Failed to create pause reason")
    return reason


def list_pause_reasons_use_case(
    *,
    db: Session,
    team_id: UUID,
    active_only: bool = True,
    category: str | None = None,
) -> list[PauseReason]:
    query = db.query(PauseReason).filter(PauseReason.team_id == team_id)
    if active_only:
        query = query.filter(PauseReason.is_active == True)  # noqa: E712
    if category:
        _validate_category(category)
        query = query.filter(PauseReason.category == category)
    return query.order_by(PauseReason.category.asc(), PauseReason.name.asc()).all()


def get_pause_reason_use_case(*, db: Session, reason_id: UUID, team_id: UUID) -> PauseReason:
    return _get_reason_or_404(db=db, reason_id=reason_id, team_id=team_id)


def update_pause_reason_use_case(*, db: Session, reason_id: UUID, team_id: UUID, changes: dict[str, Any]) -> PauseReason:
    reason = _get_reason_or_404(db=db, reason_id=reason_id, team_id=team_id)
    changes = drop_null_required(changes, required=_REQUIRED_FIELDS)
    if "category" in changes:
        _validate_category(changes["category"])
    apply_changes(reason, changes, allowed=_UPDATABLE_FIELDS)
    commit_or_fail(db, failure="Failed to update pause reason")
    return reason


def delete_pause_reason_use_case(*, db: Session, reason_id: UUID, team_id: UUID) -> str:
    """Deactivate reasons referenced by pause events, delete the rest. Returns "soft" or "hard"."""
    reason = _get_reason_or_404(db=db, reason_id=reason_id, team_id=team_id)
    in_use = db.query(PauseEvent.id).filter(PauseEvent.pause_reason_id == reason.id).first()
    if in_use:
        reason.is_active = False
        mode = "soft"
    else:
        db.delete(reason)
        mode = "hard"
    commit_or_fail(db, failure="Failed to delete pause reason")
    return mode


def create_default_pause_reasons_use_case(*, db: Session, team_id: UUID) -> list[PauseReason]:
    """Create the standard reason set, skipping names the team already has."""
    existing = {
        name.lower()
        for (name,) in db.query(PauseReason.name).filter(PauseReason.team_id == team_id).all()
    }
    created = []
    for name, category, description in DEFAULT_PAUSE_REASONS:
        if name.lower() in existing:
            continue
        reason = PauseReason(
            id=uuid.uuid4(),
            team_id=team_id,
            name=name,
            category=category,
            description=description,
            is_active=True,
        )
        db.add(reason)
        created.append(reason)
    if created:
        commit_or_fail(db, failure="Failed to create default pause reasons")
    return created


def category_summary_use_case(*, db: Session, team_id: UUID) -> list[dict[str, Any]]:
    """Per-category reason counts, sorted by category."""
    counts: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "active_count": 0})
    for reason in db.query(PauseReason).filter(PauseReason.team_id == team_id).all():
        bucket = counts[reason.category]
        bucket["count"] += 1
        if reason.is_active:
            bucket["active_count"] += 1
    return [
        {"category": category, "count": bucket["count"], "active_count": bucket["active_count"]}
        for category, bucket in sorted(counts.items())
    ]


def usage_use_case(
    *,
    db: Session,
    team_id: UUID,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[dict[str, Any]]:
    """Pause statistics per reason in a window (default: last 30 days), most used first.

    Open pauses count up to now.
    """
    now = now_utc()
    end = end_date or now
    start = start_date or (end - timedelta(days=USAGE_DEFAULT_WINDOW_DAYS))
    if start > end:
        raise validation_error("startDate must be before endDate", code="INVALID_DATE_RANGE")

    events = db.query(PauseEvent).filter(
        PauseEvent.team_id == team_id,
        PauseEvent.start_time >= start,
        PauseEvent.start_time <= end,
    ).all()

    stats: dict[Any, dict[str, float]] = defaultdict(lambda: {"count": 0, "seconds": 0.0})
    for event in events:
        finished = event.end_time or now
        bucket = stats[event.pause_reason_id]
        bucket["count"] += 1
        bucket["seconds"] += max(0.0, (finished - event.start_time).total_seconds())

    reasons = db.query(PauseReason).filter(PauseReason.team_id == team_id).all()
    usage = []
    for reason in reasons:
        bucket = stats.get(reason.id, {"count": 0, "seconds": 0.0})
        count = int(bucket["count"])
        total = int(bucket["seconds"])
        usage.append(
            {
                "pause_reason": reason,
                "usage": {
                    "event_count": count,
                    "total_duration_seconds": total,
                    "avg_duration_seconds": total // count if count else 0,
                },
            }
        )
    usage.sort(key=lambda item: (-item["usage"]["event_count"], item["pause_reason"].name))
    return usage
