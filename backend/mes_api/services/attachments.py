"""Helpers for file-record lists embedded on routing operations and WOOs.

Lists are never mutated in place: callers assign the returned list back to
the JSONB column so SQLAlchemy sees the change.
"""

from __future__ import annotations

from typing import Any


def list_attachments(attachments: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    return list(attachments or [])


def append_attachment(attachments: list[dict[str, Any]] | None, record: dict[str, Any]) -> list[dict[str, Any]]:
    return [*list_attachments(attachments), dict(record)]


def remove_attachment(attachments: list[dict[str, Any]] | None, file_id: str) -> list[dict[str, Any]]:
    """Drop records with the given id; unknown ids leave the list unchanged."""
    target = str(file_id)
    return [item for item in list_attachments(attachments) if str(item.get("id")) != target]
