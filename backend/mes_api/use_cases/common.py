"""Shared persistence helpers for use-case modules."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain_errors import DomainError
from ..models import AuditEvent

logger = logging.getLogger(__name__)


def commit_or_fail(db: Session, *, failure: str) -> None:
    """Commit the unit of work; database failures roll back and surface as a 500 with `failure` as message."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(failure)
        raise DomainError(code="PERSISTENCE_ERROR", http_status=500, message=failure)


def add_audit_event(
    db: Session,
    *,
    team_id: UUID,
    action: str,
    entity_type: str,
    entity_id: UUID | None,
    user_id: UUID | None,
    details: dict[str, Any] | None = None,
) -> None:
    db.add(
        AuditEvent(
            team_id=team_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            details=details,
        )
    )


def drop_null_required(changes: dict[str, Any], *, required: set[str]) -> dict[str, Any]:
    """Explicit nulls for NOT NULL columns mean "leave unchanged"."""
    return {name: value for name, value in changes.items() if value is not None or name not in required}


def apply_changes(entity: Any, changes: dict[str, Any], *, allowed: set[str]) -> list[str]:
    """Assign whitelisted attributes; returns the names that were set."""
    applied = []
    for name, value in changes.items():
        if name not in allowed:
            continue
        setattr(entity, name, value)
        applied.append(name)
    return applied
