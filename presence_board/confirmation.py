"""Time-boxed, single-owner confirmation dialogs for signing out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from .board import BoardManager
from .clock import Clock
from .errors import ConfirmationExpired, DuplicateActionRejection, OwnershipRejection
from .gateway import MessagingGateway
from .models import Action, AttendanceEvent
from .rendering import (
    FEEDBACK_CONFIRMATION_EXPIRED,
    FEEDBACK_NOT_YOUR_CONFIRMATION,
    FEEDBACK_OUT_ALREADY_RECORDED,
    confirmation_keyboard,
    render_countdown,
)
from .store import EventLog

logger = logging.getLogger(__name__)


class ConfirmationOutcome(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class PendingConfirmation:
    message_id: int
    chat_id: int
    owner_user_id: int
    owner_name: str
    expires_at: datetime
    task: Optional[asyncio.Task] = None


class ConfirmationManager:
    """Tracks open sign-out dialogs, keyed by the dialog message id.

    Each dialog ends exactly once: confirmed, cancelled, or expired. The
    winning path removes the entry before its first ``await``, so the others
    find nothing left to act on.
    """

    def __init__(
        self,
        events: EventLog,
        boards: BoardManager,
        gateway: MessagingGateway,
        clock: Clock,
        window_seconds: int = 10,
        tick_seconds: float = 1.0,
    ) -> None:
        self.events = events
        self.boards = boards
        self.gateway = gateway
        self.clock = clock
        self.window_seconds = window_seconds
        self.tick_seconds = tick_seconds
        self._pending: Dict[int, PendingConfirmation] = {}

    def get(self, message_id: int) -> Optional[PendingConfirmation]:
        return self._pending.get(message_id)

    def __len__(self) -> int:
        return len(self._pending)

    async def open(self, chat_id: int, user_id: int, display_name: str) -> Optional[PendingConfirmation]:
        """Post a countdown dialog owned by ``user_id``; ``None`` if it could not be sent."""

        result = await self.gateway.send(
            chat_id, render_countdown(display_name, self.window_seconds), confirmation_keyboard()
        )
        if not result.ok:
            logger.warning("Could not open a sign-out confirmation in chat %s: %s", chat_id, result.error)
            return None

        pending = PendingConfirmation(
            message_id=result.value,
            chat_id=chat_id,
            owner_user_id=user_id,
            owner_name=display_name,
            expires_at=self.clock.now() + timedelta(seconds=self.window_seconds * self.tick_seconds),
        )
        self._pending[pending.message_id] = pending
        pending.task = asyncio.create_task(
            self._countdown(pending), name=f"confirm-out-{chat_id}-{pending.message_id}"
        )
        pending.task.add_done_callback(lambda task: self._on_countdown_done(pending, task))
        return pending

    async def respond(
        self, message_id: int, user_id: int, accept: bool, now: Optional[datetime] = None
    ) -> ConfirmationOutcome:
        pending = self._pending.get(message_id)
        if pending is None:
            raise ConfirmationExpired(FEEDBACK_CONFIRMATION_EXPIRED)
        if pending.owner_user_id != user_id:
            raise OwnershipRejection(FEEDBACK_NOT_YOUR_CONFIRMATION)

        now = now or self.clock.now()
        if accept:
            if self._already_out(pending, now):
                raise DuplicateActionRejection(FEEDBACK_OUT_ALREADY_RECORDED)
            self.events.append_event(
                AttendanceEvent(
                    user_id=pending.owner_user_id,
                    chat_id=pending.chat_id,
                    display_name=pending.owner_name,
                    timestamp=now,
                    action=Action.OUT,
                )
            )
        self._release(pending)

        await self.gateway.delete(pending.chat_id, pending.message_id)
        await self.boards.refresh_board(pending.chat_id, now)
        outcome = ConfirmationOutcome.CONFIRMED if accept else ConfirmationOutcome.CANCELLED
        logger.info("Sign-out dialog %s in chat %s %s", message_id, pending.chat_id, outcome.value)
        return outcome

    async def shutdown(self) -> None:
        pending = list(self._pending.values())
        for item in pending:
            self._release(item)
        tasks = [item.task for item in pending if item.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _already_out(self, pending: PendingConfirmation, now: datetime) -> bool:
        start, _ = self.clock.day_bounds(self.clock.today(now))
        return any(
            event.user_id == pending.owner_user_id and event.action is Action.OUT
            for event in self.events.query_events(pending.chat_id, start, now)
        )

    def _claim(self, message_id: int) -> Optional[PendingConfirmation]:
        return self._pending.pop(message_id, None)

    def _release(self, pending: PendingConfirmation) -> None:
        self._claim(pending.message_id)
        if pending.task is not None and not pending.task.done():
            pending.task.cancel()

    async def _countdown(self, pending: PendingConfirmation) -> None:
        keyboard = confirmation_keyboard()
        for remaining in range(self.window_seconds - 1, -1, -1):
            await asyncio.sleep(self.tick_seconds)
            await self.gateway.edit(
                pending.chat_id, pending.message_id, render_countdown(pending.owner_name, remaining), keyboard
            )

        if self._claim(pending.message_id) is None:
            return
        await self.gateway.delete(pending.chat_id, pending.message_id)
        logger.info("Sign-out dialog %s in chat %s expired", pending.message_id, pending.chat_id)

    def _on_countdown_done(self, pending: PendingConfirmation, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Countdown for dialog %s failed: %s", pending.message_id, exc)
            self._claim(pending.message_id)


__all__ = ["ConfirmationManager", "ConfirmationOutcome", "PendingConfirmation"]
