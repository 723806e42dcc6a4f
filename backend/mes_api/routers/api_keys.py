"""Team API key management endpoints."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    APIKeyCreate,
    APIKeyCreated,
    APIKeyCreatedEnvelope,
    APIKeyEnvelope,
    APIKeyListEnvelope,
    APIKeyResponse,
)
from ..security import require_team_access, require_team_admin
from ..use_cases.api_keys import (
    create_api_key_use_case,
    get_api_key_use_case,
    list_api_keys_use_case,
    revoke_api_key_use_case,
)

router = APIRouter(prefix="/teams/{team_id}/api-keys", tags=["api-keys"])


@router.get("", response_model=APIKeyListEnvelope)
def list_api_keys(
    team_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_team_access(db, current_user, team_id)
    api_keys = list_api_keys_use_case(db=db, team_id=team_id)
    return APIKeyListEnvelope(api_keys=[APIKeyResponse.model_validate(key) for key in api_keys])


@router.post("", response_model=APIKeyCreatedEnvelope, status_code=201)
def create_api_key(
    team_id: UUID,
    data: APIKeyCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Issue a key. The secret is only returned in this response."""
    context = require_team_access(db, current_user, team_id)
    require_team_admin(context)
    api_key, secret_key = create_api_key_use_case(
        db=db,
        team_id=team_id,
        name=data.name,
        description=data.description,
        permissions=data.permissions.model_dump(),
        expires_at=data.expires_at,
        created_by=current_user.id,
    )
    created = APIKeyCreated.model_validate(
        {**APIKeyResponse.model_validate(api_key).model_dump(), "secret_key": secret_key}
    )
    return APIKeyCreatedEnvelope(api_key=created)


@router.get("/{key_id}", response_model=APIKeyEnvelope)
def get_api_key(
    team_id: UUID,
    key_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_team_access(db, current_user, team_id)
    api_key = get_api_key_use_case(db=db, key_id=key_id, team_id=team_id)
    return APIKeyEnvelope(api_key=APIKeyResponse.model_validate(api_key))


@router.delete("/{key_id}", response_model=APIKeyEnvelope)
def revoke_api_key(
    team_id: UUID,
    key_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Disable a key; it stops authenticating immediately."""
    context = require_team_access(db, current_user, team_id)
    require_team_admin(context)
    api_key = revoke_api_key_use_case(db=db, key_id=key_id, team_id=team_id, user_id=current_user.id)
    return APIKeyEnvelope(api_key=APIKeyResponse.model_validate(api_key))
