"""Session authentication and team scoping."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .models import TeamMembership, User

logger = logging.getLogger(__name__)

# Missing credentials are reported as 401 by get_current_user, not by the scheme.
security = HTTPBearer(auto_error=False)

SESSION_TOKEN_TYPE = "session"


class InvalidSessionToken(Exception):
    """Session token could not be decoded or is not acceptable."""


@dataclass(frozen=True)
class TeamContext:
    """Authenticated user plus the team every query is scoped to."""

    user: User
    team_id: UUID
    role: str

    @property
    def user_id(self) -> UUID:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def create_session_token(user_id: UUID, expires_in_seconds: Optional[int] = None) -> str:
    """Issue a session token (used by seed scripts and tests in place of the identity provider)."""
    now = int(time.time())
    ttl = expires_in_seconds if expires_in_seconds is not None else settings.SESSION_JWT_EXPIRE_MINUTES * 60
    payload = {"sub": str(user_id), "iat": now, "exp": now + int(ttl), "type": SESSION_TOKEN_TYPE}
    return jwt.encode(payload, settings.SESSION_JWT_SECRET_KEY, algorithm=settings.SESSION_JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Decode and validate a session token, raising InvalidSessionToken on any problem."""
    try:
        payload = jwt.decode(
            token,
            settings.SESSION_JWT_SECRET_KEY,
            algorithms=[settings.SESSION_JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError as exc:
        raise InvalidSessionToken("Malformed token") from exc

    now = int(time.time())
    leeway = int(settings.JWT_LEEWAY_SECONDS)
    try:
        exp = int(payload["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidSessionToken("Missing expiry") from exc
    if now > exp + leeway:
        raise InvalidSessionToken("Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError) as exc:
            raise InvalidSessionToken("Invalid iat") from exc
        # Tokens issued in the future are rejected.
        if iat_int > now + leeway:
            raise InvalidSessionToken("Token issued in the future")

    if payload.get("type") != SESSION_TOKEN_TYPE:
        raise InvalidSessionToken("Invalid token type")
    return payload


def _parse_token_subject(payload: dict) -> UUID | None:
    sub = payload.get("sub")
    if not sub:
        return None
    try:
        return UUID(str(sub))
    except ValueError:
        return None


def resolve_identity(db: Session, token: str | None) -> User | None:
    """Resolve the calling user. Every failure maps to None."""
    if not token:
        return None
    try:
        payload = decode_session_token(token)
    except InvalidSessionToken as exc:
        logger.debug("Rejected session token: %s", exc)
        return None

    user_id = _parse_token_subject(payload)
    if user_id is None:
        return None
    try:
        return db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    except SQLAlchemyError:
        logger.exception("User lookup failed while resolving session")
        return None


def get_team_membership(db: Session, *, user_id: UUID, team_id: UUID) -> TeamMembership | None:
    return db.query(TeamMembership).filter(
        TeamMembership.user_id == user_id,
        TeamMembership.team_id == team_id,
    ).first()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user."""
    user = resolve_identity(db, credentials.credentials if credentials else None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_team_context(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TeamContext:
    """Resolve the user's selected team; a team the user does not belong to counts as none."""
    team_id = current_user.selected_team_id
    if not team_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No team selected")

    membership = get_team_membership(db, user_id=current_user.id, team_id=team_id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No team selected")

    return TeamContext(user=current_user, team_id=team_id, role=membership.role)
