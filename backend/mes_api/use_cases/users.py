"""Team user directory."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import DomainError
from ..models import Department, TeamMembership, User


def _accessible_departments(db: Session, *, user: User, team_id: UUID) -> list[Department]:
    access = user.department_access or {}
    query = db.query(Department).filter(
        Department.team_id == team_id,
        Department.is_active == True,  # noqa: E712
    )
    if not access.get("allDepartments"):
        department_ids = [UUID(str(value)) for value in access.get("specificDepartments") or []]
        if not department_ids:
            return []
        query = query.filter(Department.id.in_(department_ids))
    return query.order_by(Department.name.asc()).all()


def list_team_users_use_case(*, db: Session, team_id: UUID) -> list[tuple[User, list[Department]]]:
    users = db.query(User).join(
        TeamMembership, TeamMembership.user_id == User.id
    ).filter(
        TeamMembership.team_id == team_id,
        User.is_active == True,  # noqa: E712
    ).order_by(User.display_name.asc()).all()
    return [(user, _accessible_departments(db, user=user, team_id=team_id)) for user in users]


def get_team_user_use_case(*, db: Session, team_id: UUID, user_id: UUID) -> tuple[User, list[Department]]:
    user = db.query(User).join(
        TeamMembership, TeamMembership.user_id == User.id
    ).filter(
        TeamMembership.team_id == team_id,
        User.id == user_id,
    ).first()
    if not user:
        raise DomainError(code="USER_NOT_FOUND", http_status=404, message="User not found")
    return user, _accessible_departments(db, user=user, team_id=team_id)
