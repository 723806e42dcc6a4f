"""Work-order-operation lifecycle rules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol


WIP_STATUSES: tuple[str, ...] = ("pending", "in_progress", "paused", "waiting")
OPERATOR_QUEUE_STATUSES: tuple[str, ...] = ("pending", "paused")
TERMINAL_STATUSES: set[str] = {"completed", "cancelled"}

# action -> (allowed source statuses, target status)
_ALLOWED_TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "start": (frozenset({"pending"}), "in_progress"),
    "pause": (frozenset({"in_progress"}), "paused"),
    "resume": (frozenset({"paused"}), "in_progress"),
    "complete": (frozenset({"in_progress"}), "completed"),
}


class _PauseInterval(Protocol):
    start_time: datetime
    end_time: datetime | None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(*, action: str, current_status: str | None) -> bool:
    rule = _ALLOWED_TRANSITIONS.get(action)
    if rule is None:
        return False
    sources, _target = rule
    return (current_status or "") in sources


def next_status(*, action: str, current_status: str | None) -> str:
    """Return the status an action leads to, or raise ValueError if the action is not allowed."""
    if action not in _ALLOWED_TRANSITIONS:
        raise ValueError(f"Unknown work order operation action: {action}")
    if not can_transition(action=action, current_status=current_status):
        raise ValueError(f"Cannot {action} work order operation in status {current_status}")
    return _ALLOWED_TRANSITIONS[action][1]


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def active_seconds(
    *,
    actual_start_time: datetime | None,
    actual_end_time: datetime | None,
    pause_events: Iterable[_PauseInterval],
    now: datetime | None = None,
) -> int:
    """Elapsed working time minus paused intervals; an open pause runs until the end point."""
    if actual_start_time is None:
        return 0

    start = _as_aware(actual_start_time)
    end = _as_aware(actual_end_time or now or now_utc())
    if end <= start:
        return 0

    paused = 0.0
    for event in pause_events:
        pause_start = max(_as_aware(event.start_time), start)
        pause_end = min(_as_aware(event.end_time) if event.end_time else end, end)
        if pause_end > pause_start:
            paused += (pause_end - pause_start).total_seconds()

    return max(0, int((end - start).total_seconds() - paused))


def find_open_pause(pause_events: Iterable[_PauseInterval]):
    """Most recent pause event that has not been closed."""
    open_events = [event for event in pause_events if event.end_time is None]
    if not open_events:
        return None
    return max(open_events, key=lambda event: _as_aware(event.start_time))
