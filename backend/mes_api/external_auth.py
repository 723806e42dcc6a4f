"""API-key authentication, permissions and rate limiting for /api/v1 routes."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .domain_errors import ExternalAPIError
from .models import APIKey
from .services.rate_limit import RateLimitResult, check_api_key_rate_limit
from .use_cases.api_keys import api_key_permissions, validate_api_key

logger = logging.getLogger(__name__)

TEAM_HEADER = "X-MES-Team-ID"
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


@dataclass(frozen=True)
class ExternalAPIContext:
    api_key: APIKey
    team_id: UUID
    permissions: dict[str, bool]
    rate_limit: RateLimitResult


def rate_limit_headers(*, remaining: int, reset_at_ms: int, limit: int | None = None) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit if limit is not None else settings.EXTERNAL_API_REQUESTS_PER_HOUR),
        "X-RateLimit-Remaining": str(max(0, remaining)),
        "X-RateLimit-Reset": str(reset_at_ms),
    }


def add_rate_limit_headers(response: Response, remaining: int, reset_at_ms: int) -> Response:
    response.headers.update(rate_limit_headers(remaining=remaining, reset_at_ms=reset_at_ms))
    return response


def has_method_permission(method: str, permissions: dict[str, bool]) -> bool:
    """DELETE needs admin, other writes need write or admin, reads need any permission."""
    method = method.upper()
    if method == "DELETE":
        return bool(permissions.get("admin"))
    if method in _WRITE_METHODS:
        return bool(permissions.get("write") or permissions.get("admin"))
    return any(permissions.get(name) for name in ("read", "write", "admin"))


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _authenticate(request: Request, db: Session) -> ExternalAPIContext:
    raw_key = _bearer_token(request)
    if raw_key is None:
        raise ExternalAPIError(
            code="MISSING_API_KEY",
            http_status=401,
            message="API key is required. Provide it as 'Authorization: Bearer <key>'",
        )

    team_header = request.headers.get(TEAM_HEADER)
    if not team_header:
        raise ExternalAPIError(
            code="MISSING_TEAM_ID",
            http_status=400,
            message=f"{TEAM_HEADER} header is required",
        )

    api_key = validate_api_key(db=db, raw_key=raw_key)

    try:
        team_id = UUID(team_header)
    except ValueError:
        team_id = None
    if team_id is None or api_key.team_id != team_id:
        raise ExternalAPIError(
            code="TEAM_ACCESS_DENIED",
            http_status=403,
            message="API key does not have access to this team",
        )

    # Usage logging (main.py middleware) keys off these once the key is known.
    request.state.api_key_id = api_key.id
    request.state.api_team_id = api_key.team_id

    rate_limit = check_api_key_rate_limit(str(api_key.id))
    if not rate_limit.allowed:
        raise ExternalAPIError(
            code="RATE_LIMIT_EXCEEDED",
            http_status=429,
            message="Rate limit exceeded. Please slow down.",
            details={"limit": rate_limit.limit, "resetTime": rate_limit.reset_at_ms},
            headers=rate_limit_headers(remaining=rate_limit.remaining, reset_at_ms=rate_limit.reset_at_ms,
                                       limit=rate_limit.limit),
        )

    permissions = api_key_permissions(api_key)
    if not has_method_permission(request.method, permissions):
        raise ExternalAPIError(
            code="INSUFFICIENT_PERMISSIONS",
            http_status=403,
            message=f"API key does not have permission for {request.method} requests",
        )

    return ExternalAPIContext(api_key=api_key, team_id=api_key.team_id, permissions=permissions,
                              rate_limit=rate_limit)


def require_external_api_key(request: Request, db: Session = Depends(get_db)) -> ExternalAPIContext:
    """FastAPI dependency guarding every /api/v1 route."""
    try:
        return _authenticate(request, db)
    except ExternalAPIError:
        raise
    except Exception:
        logger.exception("External API authentication failed")
        raise ExternalAPIError(code="INTERNAL_ERROR", http_status=500, message="Internal server error")
