"""Local-day arithmetic for the configured timezone."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

CLOSING_OFFSET = timedelta(seconds=1)


class Clock:
    """Source of "now" and of the local day boundaries."""

    def __init__(self, tz_name: str = "UTC") -> None:
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def localize(self, moment: datetime) -> datetime:
        return moment.astimezone(self.tz)

    def today(self, now: Optional[datetime] = None) -> date:
        return self.localize(now or self.now()).date()

    def start_of_day(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Return ``[start, end)`` of the local day."""

        return self.start_of_day(day), self.start_of_day(day + timedelta(days=1))

    def closing_instant(self, day: date) -> datetime:
        """Last recordable instant of ``day``: next local midnight minus one second."""

        return self.start_of_day(day + timedelta(days=1)) - CLOSING_OFFSET

    def seconds_until_next_midnight(self, now: Optional[datetime] = None) -> float:
        current = self.localize(now or self.now())
        next_midnight = self.start_of_day(current.date() + timedelta(days=1))
        return max((next_midnight - current).total_seconds(), 0.0)


__all__ = ["Clock", "CLOSING_OFFSET"]
