"""Daily rollover: close yesterday's sessions and rotate every board."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Protocol

from .board import BoardManager
from .clock import Clock
from .models import Action, AttendanceEvent
from .store import EventLog

logger = logging.getLogger(__name__)


class RolloverState(str, Enum):
    IDLE = "idle"
    FIRING = "firing"


class Pausable(Protocol):
    async def pause(self) -> None: ...

    def resume(self) -> None: ...


class DayRollover:
    def __init__(
        self,
        events: EventLog,
        boards: BoardManager,
        clock: Clock,
        refresh: Optional[Pausable] = None,
    ) -> None:
        self.events = events
        self.boards = boards
        self.clock = clock
        self.refresh = refresh
        self.state = RolloverState.IDLE

    async def run(self, now: Optional[datetime] = None) -> Dict[int, List[AttendanceEvent]]:
        """Roll every tracked chat over to the day containing ``now``.

        Returns the synthetic "out" events appended per chat. Chats that fail
        are logged and left out of the result.
        """

        if self.state is RolloverState.FIRING:
            logger.warning("Rollover already in progress; skipping this tick")
            return {}
        self.state = RolloverState.FIRING
        now = now or self.clock.now()
        yesterday = self.clock.today(now) - timedelta(days=1)
        closed: Dict[int, List[AttendanceEvent]] = {}

        try:
            if self.refresh is not None:
                await self.refresh.pause()
            chats = self.boards.tracked_chats()
            logger.info("Rolling over %d chat(s) from %s", len(chats), yesterday)
            for chat_id in chats:
                try:
                    async with self.boards.gate(chat_id):
                        closed[chat_id] = self.close_open_sessions(chat_id, yesterday)
                        await self.boards.refresh_board_locked(chat_id, now)
                except Exception:  # noqa: BLE001
                    logger.exception("Rollover failed for chat %s", chat_id)
        finally:
            if self.refresh is not None:
                self.refresh.resume()
            self.state = RolloverState.IDLE

        return closed

    def close_open_sessions(self, chat_id: int, day: date) -> List[AttendanceEvent]:
        """Append an "out" at the end of ``day`` for everyone whose last action that day was not "out"."""

        start, _ = self.clock.day_bounds(day)
        closing = self.clock.closing_instant(day)
        appended: List[AttendanceEvent] = []
        for latest in self.events.latest_per_user(chat_id, start, closing):
            if latest.action is Action.OUT:
                continue
            appended.append(
                self.events.append_event(
                    AttendanceEvent(
                        user_id=latest.user_id,
                        chat_id=chat_id,
                        display_name=latest.display_name,
                        timestamp=closing,
                        action=Action.OUT,
                    )
                )
            )
        if appended:
            logger.info("Closed %d open session(s) in chat %s for %s", len(appended), chat_id, day)
        return appended


__all__ = ["DayRollover", "RolloverState", "Pausable"]
