"""JSON error payload helpers for the internal and external APIs."""
from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse

from .domain_errors import DomainError


def error_payload(message: str, details: Any = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": message}
    if details is not None:
        payload["details"] = details
    return payload


def build_error_response(exc: DomainError) -> JSONResponse:
    """Render DomainError for internal routes as {"error": message}."""
    return JSONResponse(
        status_code=exc.http_status,
        content=error_payload(exc.message, exc.details),
    )


def new_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def build_external_error_response(
    *,
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render the /api/v1 error envelope."""
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "status": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "requestId": new_request_id(),
    }
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error}, headers=headers)
