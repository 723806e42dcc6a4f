from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from mes_api.services.woo_state import active_seconds, can_transition, find_open_pause, next_status


T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _pause(start_minutes: int, end_minutes: int | None):
    return SimpleNamespace(
        start_time=T0 + timedelta(minutes=start_minutes),
        end_time=T0 + timedelta(minutes=end_minutes) if end_minutes is not None else None,
    )


@pytest.mark.parametrize(
    ("action", "current_status", "expected"),
    [
        ("start", "pending", "in_progress"),
        ("pause", "in_progress", "paused"),
        ("resume", "paused", "in_progress"),
        ("complete", "in_progress", "completed"),
    ],
)
def test_next_status_follows_lifecycle(action: str, current_status: str, expected: str) -> None:
    assert can_transition(action=action, current_status=current_status) is True
    assert next_status(action=action, current_status=current_status) == expected


@pytest.mark.parametrize(
    ("action", "current_status"),
    [
        ("start", "waiting"),
        ("start", "paused"),
        ("pause", "pending"),
        ("resume", "in_progress"),
        ("complete", "paused"),
        ("complete", "completed"),
        ("start", None),
    ],
)
def test_disallowed_transitions_raise(action: str, current_status: str | None) -> None:
    assert can_transition(action=action, current_status=current_status) is False
    with pytest.raises(ValueError, match=f"Cannot {action} work order operation"):
        next_status(action=action, current_status=current_status)


def test_unknown_action_is_rejected() -> None:
    assert can_transition(action="rewind", current_status="pending") is False
    with pytest.raises(ValueError, match="Unknown work order operation action"):
        next_status(action="rewind", current_status="pending")


def test_active_seconds_subtracts_closed_pauses() -> None:
    seconds = active_seconds(
        actual_start_time=T0,
        actual_end_time=T0 + timedelta(minutes=60),
        pause_events=[_pause(10, 20), _pause(30, 35)],
    )

    assert seconds == 45 * 60


def test_active_seconds_runs_open_pause_until_now() -> None:
    seconds = active_seconds(
        actual_start_time=T0,
        actual_end_time=None,
        pause_events=[_pause(40, None)],
        now=T0 + timedelta(minutes=60),
    )

    assert seconds == 40 * 60


def test_active_seconds_clips_pauses_outside_the_run_window() -> None:
    seconds = active_seconds(
        actual_start_time=T0 + timedelta(minutes=10),
        actual_end_time=T0 + timedelta(minutes=30),
        pause_events=[_pause(0, 15), _pause(25, 90)],
    )

    assert seconds == 10 * 60


def test_active_seconds_is_zero_before_start() -> None:
    assert active_seconds(actual_start_time=None, actual_end_time=None, pause_events=[]) == 0


def test_active_seconds_accepts_naive_timestamps_as_utc() -> None:
    naive_start = datetime(2026, 3, 2, 8, 0)

    seconds = active_seconds(
        actual_start_time=naive_start,
        actual_end_time=T0 + timedelta(minutes=5),
        pause_events=[],
    )

    assert seconds == 300


def test_find_open_pause_returns_latest_unclosed_event() -> None:
    older_open = _pause(5, None)
    latest_open = _pause(50, None)

    assert find_open_pause([_pause(0, 2), older_open, latest_open]) is latest_open
    assert find_open_pause([_pause(0, 2)]) is None
