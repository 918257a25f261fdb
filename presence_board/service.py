"""Core orchestration logic for Presence Board."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from .board import BoardManager, RefreshOutcome
from .clock import Clock
from .config import Settings
from .confirmation import ConfirmationManager, ConfirmationOutcome
from .db import Database
from .errors import DuplicateActionRejection, PresenceBoardError
from .gateway import MessagingGateway
from .models import Action, AttendanceEvent
from .rendering import FEEDBACK_ALREADY_OUT, feedback_already_in_state, render_report
from .rollover import DayRollover
from .scheduler import DailyScheduler, IntervalScheduler
from .worktime import format_duration, summarize_day, summarize_period

logger = logging.getLogger(__name__)


class ActionOutcome(str, Enum):
    RECORDED = "recorded"
    CONFIRMATION_PENDING = "confirmation_pending"


class PresenceService:
    """High-level entry points used by the bot, the timers and the admin API."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        gateway: MessagingGateway,
        clock: Optional[Clock] = None,
        confirm_tick_seconds: float = 1.0,
    ) -> None:
        self.settings = settings
        self.database = database
        self.gateway = gateway
        self.clock = clock or Clock(settings.timezone)

        self.boards = BoardManager(database, database, gateway, self.clock)
        self.confirmations = ConfirmationManager(
            database,
            self.boards,
            gateway,
            self.clock,
            window_seconds=settings.confirm_window_seconds,
            tick_seconds=confirm_tick_seconds,
        )
        self.refresh_scheduler = IntervalScheduler(
            "refresh", self.on_scheduled_refresh_tick, settings.refresh_interval_seconds
        )
        self.rollover = DayRollover(database, self.boards, self.clock, refresh=self.refresh_scheduler)
        if settings.rollover_period_seconds:
            self.rollover_scheduler: IntervalScheduler = IntervalScheduler(
                "rollover",
                self.on_scheduled_rollover_tick,
                settings.rollover_period_seconds,
                first_delay=settings.rollover_period_seconds,
            )
        else:
            self.rollover_scheduler = DailyScheduler("rollover", self.on_scheduled_rollover_tick, self.clock)

    # region Lifecycle
    def start(self) -> None:
        self.refresh_scheduler.start()
        self.rollover_scheduler.start()

    async def stop(self) -> None:
        await self.rollover_scheduler.stop()
        await self.refresh_scheduler.stop()
        await self.confirmations.shutdown()

    # endregion

    # region User interactions
    async def on_user_action(
        self,
        chat_id: int,
        user_id: int,
        display_name: str,
        action: Action | str,
        now: Optional[datetime] = None,
    ) -> ActionOutcome:
        """Record a button press, or open a confirmation dialog for "out"."""

        action = Action(action)
        now = now or self.clock.now()
        latest = self._latest_today(chat_id, user_id, now)

        if latest is not None and latest.action is Action.OUT:
            raise DuplicateActionRejection(FEEDBACK_ALREADY_OUT)
        if latest is not None and latest.action is action:
            raise DuplicateActionRejection(feedback_already_in_state(action))

        if action is Action.OUT:
            pending = await self.confirmations.open(chat_id, user_id, display_name)
            if pending is None:
                raise PresenceBoardError("could not open the sign-out confirmation")
            await self.boards.refresh_board(chat_id, now)
            return ActionOutcome.CONFIRMATION_PENDING

        self.database.append_event(
            AttendanceEvent(
                user_id=user_id,
                chat_id=chat_id,
                display_name=display_name,
                timestamp=now,
                action=action,
            )
        )
        await self.boards.refresh_board(chat_id, now)
        return ActionOutcome.RECORDED

    async def on_confirmation_response(
        self, message_id: int, user_id: int, accept: bool, now: Optional[datetime] = None
    ) -> ConfirmationOutcome:
        return await self.confirmations.respond(message_id, user_id, accept, now)

    def _latest_today(self, chat_id: int, user_id: int, now: datetime) -> Optional[AttendanceEvent]:
        start, _ = self.clock.day_bounds(self.clock.today(now))
        mine = [e for e in self.database.query_events(chat_id, start, now) if e.user_id == user_id]
        return mine[-1] if mine else None

    # endregion

    # region Timers
    async def on_scheduled_refresh_tick(self) -> Dict[int, RefreshOutcome]:
        return await self.boards.refresh_all()

    async def on_scheduled_rollover_tick(self, now: Optional[datetime] = None):
        return await self.rollover.run(now)

    async def on_startup_reconcile(self, now: Optional[datetime] = None) -> Dict[int, RefreshOutcome]:
        outcomes = await self.boards.reconcile(now)
        logger.info("Startup reconcile finished for %d chat(s)", len(outcomes))
        return outcomes

    # endregion

    # region Query helpers
    def list_chats(self) -> List[int]:
        return self.database.distinct_chat_ids()

    def get_entries(self, chat_id: int, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        return [
            {
                "id": event.id,
                "user_id": event.user_id,
                "display_name": event.display_name,
                "timestamp": self.clock.localize(event.timestamp).isoformat(),
                "action": event.action.value,
                "is_active": event.is_active,
            }
            for event in self.database.query_events(chat_id, start, end)
        ]

    def get_day_summary(self, chat_id: int, day: date, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or self.clock.now()
        start, end = self.clock.day_bounds(day)
        cutoff = min(now, end - timedelta(microseconds=1))
        rows = summarize_day(self.database.query_events(chat_id, start, cutoff), cutoff)
        return {
            "chat_id": chat_id,
            "date": day.isoformat(),
            "users": [
                {
                    "user_id": row.user_id,
                    "display_name": row.display_name,
                    "status": row.latest_action.value,
                    "work_time": format_duration(row.work_time),
                    "work_seconds": int(row.work_time.total_seconds()),
                    "first_in": self.clock.localize(row.first_in).isoformat() if row.first_in else None,
                    "last_out": self.clock.localize(row.last_out).isoformat() if row.last_out else None,
                }
                for row in rows
            ],
        }

    def _month_rows(self, chat_id: int, year: int, month: int, now: datetime):
        first_day = date(year, month, 1)
        last_day = first_day.replace(day=calendar.monthrange(year, month)[1])
        start = self.clock.start_of_day(first_day)
        cutoff = min(now, datetime.combine(last_day, time.max, tzinfo=self.clock.tz))
        rows = summarize_period(self.database.query_events(chat_id, start, cutoff), cutoff, self.clock.tz)
        return first_day, last_day, rows

    def get_month_report(
        self, chat_id: int, year: int, month: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        first_day, last_day, rows = self._month_rows(chat_id, year, month, now or self.clock.now())
        return {
            "chat_id": chat_id,
            "start": first_day.isoformat(),
            "end": last_day.isoformat(),
            "users": [
                {
                    "user_id": row.user_id,
                    "display_name": row.display_name,
                    "days_worked": row.days_worked,
                    "work_time": format_duration(row.work_time),
                    "work_seconds": int(row.work_time.total_seconds()),
                }
                for row in rows
            ],
        }

    def render_month_report(self, chat_id: int, year: int, month: int, now: Optional[datetime] = None) -> str:
        first_day, last_day, rows = self._month_rows(chat_id, year, month, now or self.clock.now())
        return render_report(rows, first_day, last_day)

    def report_years(self, now: Optional[datetime] = None) -> List[int]:
        """Local years from the oldest recorded event up to the current one."""

        oldest = self.database.oldest_event_timestamp()
        if oldest is None:
            return []
        this_year = self.clock.today(now or self.clock.now()).year
        return list(range(self.clock.localize(oldest).year, this_year + 1))

    def report_months(self, chat_id: int, year: int) -> List[int]:
        """Local months of ``year`` in which ``chat_id`` recorded anything."""

        start = self.clock.start_of_day(date(year, 1, 1))
        end = datetime.combine(date(year, 12, 31), time.max, tzinfo=self.clock.tz)
        events = self.database.query_events(chat_id, start, end)
        return sorted({self.clock.localize(event.timestamp).month for event in events})

    # endregion


__all__ = ["PresenceService", "ActionOutcome"]
