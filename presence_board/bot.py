"""Long-polling bot that routes chat updates into the presence service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Dict, Optional, Set

import httpx

from .confirmation import ConfirmationOutcome
from .errors import PresenceBoardError, RejectedAction
from .models import Action
from .rendering import (
    CANCEL_OUT,
    CONFIRM_OUT,
    FEEDBACK_ADMINS_ONLY,
    FEEDBACK_GENERATING_REPORT,
    FEEDBACK_NO_DATA,
    FEEDBACK_NO_DATA_FOR_YEAR,
    FEEDBACK_OUT_CANCELLED,
    FEEDBACK_OUT_CONFIRMED,
    FEEDBACK_PROCESSING_ERROR,
    FEEDBACK_UNKNOWN_COMMAND,
    PICK_YEAR,
    REPORT_MONTH,
    REPORT_YEAR,
    feedback_recorded,
    month_keyboard,
    render_month_picker,
    year_keyboard,
)
from .service import ActionOutcome, PresenceService
from .telegram_client import TelegramApiError, TelegramClient

logger = logging.getLogger(__name__)

GROUP_CHAT_TYPES = {"group", "supergroup"}
ADMIN_STATUSES = {"administrator", "creator"}
ACTION_DATA = {action.value for action in Action}
POLL_RETRY_SECONDS = 5.0


def display_name(user: Dict[str, Any]) -> str:
    if user.get("username"):
        return user["username"]
    full_name = f"{user.get('first_name', '')} {user.get('last_name', '')}".strip()
    return full_name or str(user["id"])


class TelegramBot:
    """Pulls updates with ``getUpdates`` and handles each one in its own task."""

    def __init__(self, client: TelegramClient, service: PresenceService) -> None:
        self.client = client
        self.service = service
        self._offset: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._handlers: Set[asyncio.Task] = set()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll(), name="telegram-polling")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)

    async def _poll(self) -> None:
        try:
            me = await self.client.get_me()
            logger.info("Bot @%s started", me.get("username"))
        except (TelegramApiError, httpx.HTTPError) as exc:
            logger.error("Could not identify the bot: %s", exc)
        while True:
            try:
                updates = await self.client.get_updates(self._offset)
            except (TelegramApiError, httpx.HTTPError) as exc:
                logger.error("Polling failed: %s", exc)
                await asyncio.sleep(POLL_RETRY_SECONDS)
                continue
            for update in updates:
                self._offset = update["update_id"] + 1
                task = asyncio.create_task(self.handle_update(update))
                self._handlers.add(task)
                task.add_done_callback(self._handlers.discard)

    async def handle_update(self, update: Dict[str, Any]) -> None:
        try:
            if "callback_query" in update:
                await self.handle_callback(update["callback_query"])
            elif "message" in update:
                await self.handle_message(update["message"])
        except Exception:  # noqa: BLE001
            logger.exception("Update-handling error")

    # region Buttons
    async def handle_callback(self, query: Dict[str, Any]) -> None:
        message = query.get("message") or {}
        chat = message.get("chat") or {}
        data = query.get("data")
        if chat.get("type") not in GROUP_CHAT_TYPES or not data:
            return

        user = query["from"]
        feedback = ""
        try:
            if data.startswith((REPORT_YEAR, REPORT_MONTH)):
                feedback = await self.handle_report_pick(chat["id"], message["message_id"], user["id"], data)
            elif data in (CONFIRM_OUT, CANCEL_OUT):
                outcome = await self.service.on_confirmation_response(
                    message["message_id"], user["id"], accept=data == CONFIRM_OUT
                )
                feedback = (
                    FEEDBACK_OUT_CONFIRMED if outcome is ConfirmationOutcome.CONFIRMED else FEEDBACK_OUT_CANCELLED
                )
            elif data in ACTION_DATA:
                result = await self.service.on_user_action(chat["id"], user["id"], display_name(user), data)
                if result is ActionOutcome.RECORDED:
                    feedback = feedback_recorded(Action(data))
        except RejectedAction as exc:
            feedback = exc.feedback
        except PresenceBoardError as exc:
            logger.error("Could not handle %r from user %s in chat %s: %s", data, user["id"], chat["id"], exc)
            feedback = FEEDBACK_PROCESSING_ERROR

        await self.service.gateway.answer_interaction(query["id"], feedback)

    # endregion

    # region Report picker
    async def send_report_picker(self, chat_id: int) -> None:
        """Offer the years with data, or the months straight away when there is only one year."""

        gateway = self.service.gateway
        years = self.service.report_years()
        if not years:
            await gateway.send(chat_id, FEEDBACK_NO_DATA, None)
        elif len(years) > 1:
            await gateway.send(chat_id, PICK_YEAR, year_keyboard(years))
        else:
            months = self.service.report_months(chat_id, years[0])
            if not months:
                await gateway.send(chat_id, FEEDBACK_NO_DATA_FOR_YEAR, None)
                return
            await gateway.send(chat_id, render_month_picker(years[0]), month_keyboard(years[0], months))

    async def handle_report_pick(self, chat_id: int, message_id: int, user_id: int, data: str) -> str:
        """Replace the picker with the next step and return the button feedback."""

        if not await self.is_admin(chat_id, user_id):
            return FEEDBACK_ADMINS_ONLY
        month: Optional[int] = None
        try:
            if data.startswith(REPORT_YEAR):
                year = int(data[len(REPORT_YEAR) :])
            else:
                year_text, month_text = data[len(REPORT_MONTH) :].split(":")
                year, month = int(year_text), int(month_text)
        except ValueError:
            logger.warning("Ignoring malformed report button %r in chat %s", data, chat_id)
            return ""
        if year not in self.service.report_years() or (month is not None and not 1 <= month <= 12):
            return FEEDBACK_NO_DATA_FOR_YEAR

        gateway = self.service.gateway
        if month is None:
            months = self.service.report_months(chat_id, year)
            if not months:
                return FEEDBACK_NO_DATA_FOR_YEAR
            await gateway.delete(chat_id, message_id)
            await gateway.send(chat_id, render_month_picker(year), month_keyboard(year, months))
            return ""

        await gateway.delete(chat_id, message_id)
        await gateway.send(chat_id, self.service.render_month_report(chat_id, year, month), None)
        return FEEDBACK_GENERATING_REPORT

    # endregion

    # region Messages
    async def handle_message(self, message: Dict[str, Any]) -> None:
        chat = message.get("chat") or {}
        if chat.get("type") not in GROUP_CHAT_TYPES:
            return
        chat_id = chat["id"]
        text = (message.get("text") or "").strip()

        if not text.startswith("/"):
            await self.service.boards.refresh_board(chat_id)
            return

        command = text.split()[0].split("@")[0].lower()
        if command == "/start":
            await self.service.boards.post_welcome(chat_id)
            await self.service.boards.recreate_board(chat_id)
        elif command == "/report":
            sender = message.get("from") or {}
            if not await self.is_admin(chat_id, sender.get("id")):
                await self.service.gateway.send(chat_id, FEEDBACK_ADMINS_ONLY, None)
                return
            await self.send_report_picker(chat_id)
        else:
            await self.service.gateway.send(chat_id, FEEDBACK_UNKNOWN_COMMAND, None)

    async def is_admin(self, chat_id: int, user_id: Optional[int]) -> bool:
        if user_id is None:
            return False
        try:
            member = await self.client.get_chat_member(chat_id, user_id)
        except (TelegramApiError, httpx.HTTPError) as exc:
            logger.warning("Could not look up member %s of chat %s: %s", user_id, chat_id, exc)
            return False
        return member.get("status") in ADMIN_STATUSES

    # endregion


__all__ = ["TelegramBot", "display_name"]
