"""Security helpers (team scoping and team-role checks)."""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from .auth import TeamContext, get_team_membership
from .config import settings
from .models import User


def require_team_access(db: Session, user: User, team_id: UUID) -> TeamContext:
    """Build a TeamContext for an explicit team id (path-scoped routes)."""
    membership = get_team_membership(db, user_id=user.id, team_id=team_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this team")
    return TeamContext(user=user, team_id=team_id, role=membership.role)


def require_team_admin(context: TeamContext) -> None:
    """Enforce team admin role when configured."""
    if not settings.ENFORCE_TEAM_ADMIN_FOR_API_KEYS:
        return
    if not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Team admin access required")
