"""Team user directory endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import TeamContext, get_team_context
from ..database import get_db
from ..schemas import DepartmentBrief, UserResponse
from ..use_cases.users import get_team_user_use_case, list_team_users_use_case

router = APIRouter(prefix="/users", tags=["users"])


def _user_response(user, departments) -> UserResponse:
    response = UserResponse.model_validate(user)
    return response.model_copy(
        update={"departments": [DepartmentBrief.model_validate(department) for department in departments]}
    )


@router.get("", response_model=list[UserResponse])
def get_users(
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db)
):
    """Get users of the selected team with the departments they can access."""
    return [_user_response(user, departments) for user, departments in list_team_users_use_case(db=db, team_id=ctx.team_id)]


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    ctx: TeamContext = Depends(get_team_context),
    db: Session = Depends(get_db)
):
    """Get user by ID."""
    user, departments = get_team_user_use_case(db=db, team_id=ctx.team_id, user_id=user_id)
    return _user_response(user, departments)
