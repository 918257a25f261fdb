"""Work-time accumulation over attendance events."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .models import Action, AttendanceEvent

ZERO = timedelta(0)


def calc_work_time(events: Iterable[AttendanceEvent], now: datetime) -> timedelta:
    """Return the time spent "in" across ``events``, counting an open session up to ``now``.

    A second "in" while a session is already open does not restart it, and a
    "break" or "out" without an open session is ignored.
    """

    total = ZERO
    session_start: Optional[datetime] = None

    for event in sorted(events, key=lambda e: e.timestamp):
        if event.action is Action.IN:
            if session_start is None:
                session_start = event.timestamp
        elif session_start is not None:
            total += max(event.timestamp - session_start, ZERO)
            session_start = None

    if session_start is not None:
        total += max(now - session_start, ZERO)

    return total


def format_duration(duration: timedelta) -> str:
    minutes = int(duration.total_seconds() // 60)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(slots=True)
class UserDaySummary:
    user_id: int
    display_name: str
    latest_action: Action
    last_activity: datetime
    work_time: timedelta
    first_in: Optional[datetime] = None
    last_out: Optional[datetime] = None


@dataclass(slots=True)
class UserPeriodSummary:
    user_id: int
    display_name: str
    days_worked: int
    work_time: timedelta


def _group_by_user(events: Iterable[AttendanceEvent]) -> Dict[int, List[AttendanceEvent]]:
    groups: Dict[int, List[AttendanceEvent]] = {}
    for event in sorted(events, key=lambda e: e.timestamp):
        groups.setdefault(event.user_id, []).append(event)
    return groups


def summarize_day(events: Iterable[AttendanceEvent], now: datetime) -> List[UserDaySummary]:
    """Per-user rows for one chat's day, ordered by display name."""

    rows: List[UserDaySummary] = []
    for user_id, user_events in _group_by_user(events).items():
        latest = user_events[-1]
        first_in = next((e.timestamp for e in user_events if e.action is Action.IN), None)
        last_out = next((e.timestamp for e in reversed(user_events) if e.action is Action.OUT), None)
        rows.append(
            UserDaySummary(
                user_id=user_id,
                display_name=latest.display_name,
                latest_action=latest.action,
                last_activity=latest.timestamp,
                work_time=calc_work_time(user_events, now),
                first_in=first_in,
                last_out=last_out,
            )
        )
    return sorted(rows, key=lambda row: row.display_name.lower())


def summarize_period(
    events: Iterable[AttendanceEvent], now: datetime, tz=None
) -> List[UserPeriodSummary]:
    """Per-user totals over a multi-day range; ``tz`` decides which local day an event belongs to."""

    rows: List[UserPeriodSummary] = []
    for user_id, user_events in _group_by_user(events).items():
        days = {(e.timestamp.astimezone(tz) if tz else e.timestamp).date() for e in user_events}
        rows.append(
            UserPeriodSummary(
                user_id=user_id,
                display_name=user_events[-1].display_name,
                days_worked=len(days),
                work_time=calc_work_time(user_events, now),
            )
        )
    return sorted(rows, key=lambda row: row.display_name.lower())


__all__ = [
    "calc_work_time",
    "format_duration",
    "UserDaySummary",
    "UserPeriodSummary",
    "summarize_day",
    "summarize_period",
]
