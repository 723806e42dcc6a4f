"""Team API key use-cases: issue, list, revoke, validate and usage logging."""
from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..domain_errors import DomainError, ExternalAPIError
from ..models import APIKey, APIKeyUsage
from ..services.woo_state import now_utc
from .common import add_audit_event, commit_or_fail

logger = logging.getLogger(__name__)

_KEY_PREFIX_LEN = 8  # chars after the "mes_" prefix kept for identification


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """Return (secret_key, key_prefix, key_hash). The secret is shown only once."""
    body = secrets.token_urlsafe(32)
    secret_key = f"{settings.API_KEY_PREFIX}{body}"
    key_prefix = f"{settings.API_KEY_PREFIX}{body[:_KEY_PREFIX_LEN]}"
    return secret_key, key_prefix, hash_api_key(secret_key)


def _get_key_or_404(*, db: Session, key_id: UUID, team_id: UUID) -> APIKey:
    api_key = db.query(APIKey).filter(APIKey.id == key_id, APIKey.team_id == team_id).first()
    if not api_key:
        raise DomainError(code="API_KEY_NOT_FOUND", http_status=404, message="API key not found")
    return api_key


def create_api_key_use_case(
    *,
    db: Session,
    team_id: UUID,
    name: str,
    permissions: dict[str, bool],
    created_by: UUID,
    description: str | None = None,
    expires_at: datetime | None = None,
) -> tuple[APIKey, str]:
    secret_key, key_prefix, key_hash = generate_api_key()
    api_key = APIKey(
        id=uuid.uuid4(),
        team_id=team_id,
        name=name,
        description=description,
        key_prefix=key_prefix,
        key_hash=key_hash,
        permissions={
            "read": bool(permissions.get("read")),
            "write": bool(permissions.get("write")),
            "admin": bool(permissions.get("admin")),
        },
        is_active=True,
        expires_at=expires_at,
        created_by=created_by,
    )
    db.add(api_key)
    add_audit_event(
        db,
        team_id=team_id,
        action="api_key_created",
        entity_type="api_key",
        entity_id=api_key.id,
        user_id=created_by,
        details={"name": name, "keyPrefix": key_prefix},
    )
    commit_or_fail(db, failure="Failed to create API key")
    return api_key, secret_key


def list_api_keys_use_case(*, db: Session, team_id: UUID) -> list[APIKey]:
    return db.query(APIKey).filter(APIKey.team_id == team_id).order_by(APIKey.created_at.desc()).all()


def get_api_key_use_case(*, db: Session, key_id: UUID, team_id: UUID) -> APIKey:
    return _get_key_or_404(db=db, key_id=key_id, team_id=team_id)


def revoke_api_key_use_case(*, db: Session, key_id: UUID, team_id: UUID, user_id: UUID | None) -> APIKey:
    """Disable a key; usage history stays attached to it."""
    api_key = _get_key_or_404(db=db, key_id=key_id, team_id=team_id)
    if not api_key.is_active:
        return api_key
    api_key.is_active = False
    add_audit_event(
        db,
        team_id=team_id,
        action="api_key_revoked",
        entity_type="api_key",
        entity_id=api_key.id,
        user_id=user_id,
        details={"name": api_key.name, "keyPrefix": api_key.key_prefix},
    )
    commit_or_fail(db, failure="Failed to delete API key")
    return api_key


def _invalid_key(message: str) -> ExternalAPIError:
    return ExternalAPIError(code="INVALID_API_KEY", http_status=401, message=message)


def validate_api_key(*, db: Session, raw_key: str) -> APIKey:
    """Resolve a presented key and stamp last_used_at, or raise INVALID_API_KEY."""
    if not raw_key or not raw_key.startswith(settings.API_KEY_PREFIX):
        raise _invalid_key("Invalid API key format")

    api_key = db.query(APIKey).filter(APIKey.key_hash == hash_api_key(raw_key)).first()
    if api_key is None:
        raise _invalid_key("Invalid API key")
    if not api_key.is_active:
        raise _invalid_key("API key is disabled")

    now = now_utc()
    expires_at = api_key.expires_at
    if expires_at is not None:
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            raise _invalid_key("API key has expired")

    api_key.last_used_at = now
    commit_or_fail(db, failure="Failed to validate API key")
    return api_key


def record_api_key_usage(
    *,
    db: Session,
    api_key_id: UUID,
    team_id: UUID,
    endpoint: str,
    method: str,
    status_code: int,
    response_time_ms: int | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Best-effort usage log; a failure here must not change the API response."""
    try:
        db.add(
            APIKeyUsage(
                api_key_id=api_key_id,
                team_id=team_id,
                endpoint=endpoint[:500],
                method=method,
                status_code=status_code,
                response_time_ms=response_time_ms,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record API key usage")


def purge_api_key_usage(*, db: Session, older_than: datetime) -> int:
    deleted = db.query(APIKeyUsage).filter(APIKeyUsage.timestamp < older_than).delete(synchronize_session=False)
    commit_or_fail(db, failure="Failed to purge API key usage")
    return int(deleted or 0)


def api_key_permissions(api_key: APIKey) -> dict[str, Any]:
    permissions = api_key.permissions or {}
    return {name: bool(permissions.get(name)) for name in ("read", "write", "admin")}
