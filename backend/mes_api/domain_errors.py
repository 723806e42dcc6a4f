"""Domain-level exception primitives with stable machine-readable codes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class DomainError(Exception):
    """Use-case level error with stable code and HTTP mapping."""

    code: str
    http_status: int
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class InvalidTransition(DomainError):
    """Lifecycle action requested from a status that does not allow it."""


@dataclass(eq=False)
class ExternalAPIError(DomainError):
    """Error raised on /api/v1 routes; rendered with the external error envelope."""

    headers: dict[str, str] | None = None


def not_found(code: str, message: str) -> DomainError:
    return DomainError(code=code, http_status=404, message=message)


def validation_error(message: str, *, code: str = "VALIDATION_ERROR", details: dict[str, Any] | None = None) -> DomainError:
    return DomainError(code=code, http_status=400, message=message, details=details)
