"""Lifecycle of the pinned per-chat status board."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from .clock import Clock
from .gateway import MessagingGateway
from .models import BoardRecord, MessageType
from .rendering import render_board, render_welcome, status_keyboard
from .store import BoardStore, EventLog
from .worktime import summarize_day

logger = logging.getLogger(__name__)


class RefreshOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class BoardManager:
    """Creates, updates and finalizes each chat's board.

    Every mutation of a chat's board record or board message happens while
    holding that chat's gate. Gates are created on first use and kept for the
    lifetime of the manager.
    """

    def __init__(
        self,
        events: EventLog,
        boards: BoardStore,
        gateway: MessagingGateway,
        clock: Clock,
    ) -> None:
        self.events = events
        self.boards = boards
        self.gateway = gateway
        self.clock = clock
        self._gates: Dict[int, asyncio.Lock] = {}

    def gate(self, chat_id: int) -> asyncio.Lock:
        lock = self._gates.get(chat_id)
        if lock is None:
            lock = self._gates[chat_id] = asyncio.Lock()
        return lock

    def tracked_chats(self) -> list[int]:
        return self.boards.distinct_chat_ids()

    def render_text(self, chat_id: int, now: datetime) -> str:
        start, _ = self.clock.day_bounds(self.clock.today(now))
        rows = summarize_day(self.events.query_events(chat_id, start, now), now)
        return render_board(rows, now, self.clock.tz)

    # region Refresh
    async def refresh_board(self, chat_id: int, now: Optional[datetime] = None) -> RefreshOutcome:
        """Bring the chat's board in line with today's events.

        Gateway failures are logged and reported through the outcome; they
        never raise. The next refresh converges on a correct board.
        """

        async with self.gate(chat_id):
            return await self.refresh_board_locked(chat_id, now)

    async def refresh_board_locked(self, chat_id: int, now: Optional[datetime] = None) -> RefreshOutcome:
        """``refresh_board`` for a caller that already holds the chat's gate."""

        now = now or self.clock.now()
        today = self.clock.today(now)
        record = self.boards.get_board(chat_id, MessageType.STATUS)

        if record is not None and record.last_updated < today:
            await self._finalize(record)
            record = None

        text = self.render_text(chat_id, now)
        keyboard = status_keyboard()

        if record is not None:
            result = await self.gateway.edit(chat_id, record.message_id, text, keyboard)
            if result.ok or result.not_modified:
                record.last_updated = today
                self.boards.upsert_board(record)
                await self.gateway.pin(chat_id, record.message_id)
                return RefreshOutcome.UPDATED if result.ok else RefreshOutcome.UNCHANGED
            if not result.transient:
                return RefreshOutcome.FAILED
            logger.info(
                "Board message %s in chat %s cannot be edited (%s); posting a new one",
                record.message_id,
                chat_id,
                result.error,
            )
            await self._finalize(record)

        result = await self.gateway.send(chat_id, text, keyboard)
        if not result.ok:
            logger.warning("Could not post a board in chat %s: %s", chat_id, result.error)
            return RefreshOutcome.FAILED

        record = BoardRecord(
            chat_id=chat_id,
            message_type=MessageType.STATUS,
            message_id=result.value,
            last_updated=today,
        )
        self.boards.upsert_board(record)
        await self.gateway.pin(chat_id, record.message_id)
        logger.info("Posted board %s in chat %s for %s", record.message_id, chat_id, today)
        return RefreshOutcome.CREATED

    async def _finalize(self, record: BoardRecord) -> None:
        """Leave an old board in the chat without buttons or pin, and forget it."""

        await self.gateway.edit_controls(record.chat_id, record.message_id, None)
        await self.gateway.unpin(record.chat_id, record.message_id)
        self.boards.delete_board(record.chat_id, record.message_type)
        logger.info(
            "Finalized board %s in chat %s from %s", record.message_id, record.chat_id, record.last_updated
        )

    async def refresh_all(self, now: Optional[datetime] = None) -> Dict[int, RefreshOutcome]:
        outcomes: Dict[int, RefreshOutcome] = {}
        for chat_id in self.tracked_chats():
            try:
                outcomes[chat_id] = await self.refresh_board(chat_id, now)
            except Exception:  # noqa: BLE001
                logger.exception("Board refresh failed for chat %s", chat_id)
                outcomes[chat_id] = RefreshOutcome.FAILED
        return outcomes

    async def reconcile(self, now: Optional[datetime] = None) -> Dict[int, RefreshOutcome]:
        """Replace every missing or stale board; boards already current are left alone."""

        now = now or self.clock.now()
        today = self.clock.today(now)
        outcomes: Dict[int, RefreshOutcome] = {}
        for chat_id in self.tracked_chats():
            try:
                async with self.gate(chat_id):
                    record = self.boards.get_board(chat_id, MessageType.STATUS)
                    if record is not None and record.last_updated >= today:
                        outcomes[chat_id] = RefreshOutcome.UNCHANGED
                        continue
                    outcomes[chat_id] = await self.refresh_board_locked(chat_id, now)
            except Exception:  # noqa: BLE001
                logger.exception("Startup reconcile failed for chat %s", chat_id)
                outcomes[chat_id] = RefreshOutcome.FAILED
        return outcomes

    # endregion

    # region Re-posting
    async def recreate_board(self, chat_id: int, now: Optional[datetime] = None) -> RefreshOutcome:
        """Delete the current board and post a fresh one at the bottom of the chat."""

        async with self.gate(chat_id):
            record = self.boards.get_board(chat_id, MessageType.STATUS)
            if record is not None:
                await self.gateway.unpin(chat_id, record.message_id)
                await self.gateway.delete(chat_id, record.message_id)
                self.boards.delete_board(chat_id, MessageType.STATUS)
            return await self.refresh_board_locked(chat_id, now)

    async def post_welcome(self, chat_id: int, now: Optional[datetime] = None) -> Optional[int]:
        """Replace the chat's welcome message; returns the new message id."""

        now = now or self.clock.now()
        async with self.gate(chat_id):
            previous = self.boards.get_board(chat_id, MessageType.WELCOME)
            if previous is not None:
                await self.gateway.delete(chat_id, previous.message_id)
                self.boards.delete_board(chat_id, MessageType.WELCOME)

            result = await self.gateway.send(chat_id, render_welcome(), status_keyboard())
            if not result.ok:
                logger.warning("Could not post a welcome message in chat %s: %s", chat_id, result.error)
                return None
            self.boards.upsert_board(
                BoardRecord(
                    chat_id=chat_id,
                    message_type=MessageType.WELCOME,
                    message_id=result.value,
                    last_updated=self.clock.today(now),
                )
            )
            return result.value

    # endregion


__all__ = ["BoardManager", "RefreshOutcome"]
