"""Messaging gateway: the core's view of the chat transport."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from .telegram_client import TelegramApiError, TelegramClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Button:
    label: str
    data: str


Keyboard = Sequence[Sequence[Button]]


@dataclass(slots=True)
class GatewayResult:
    """Outcome of one gateway call.

    ``transient`` failures (the target message is gone, cannot be edited, or
    the pin state is already what was asked) heal on the next refresh; any
    other failure is reported to whoever triggered the call.
    """

    ok: bool
    value: Any = None
    error: Optional[Exception] = None
    transient: bool = False

    @property
    def not_modified(self) -> bool:
        return isinstance(self.error, TelegramApiError) and "not modified" in self.error.description.lower()


class MessagingGateway(Protocol):
    async def send(self, chat_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult: ...

    async def edit(self, chat_id: int, message_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult: ...

    async def edit_controls(self, chat_id: int, message_id: int, controls: Optional[Keyboard]) -> GatewayResult: ...

    async def delete(self, chat_id: int, message_id: int) -> GatewayResult: ...

    async def pin(self, chat_id: int, message_id: int) -> GatewayResult: ...

    async def unpin(self, chat_id: int, message_id: int) -> GatewayResult: ...

    async def answer_interaction(self, interaction_id: str, text: str) -> GatewayResult: ...


def to_reply_markup(controls: Optional[Keyboard]) -> Optional[Dict[str, Any]]:
    if controls is None:
        return None
    rows: List[List[Dict[str, str]]] = [
        [{"text": button.label, "callback_data": button.data} for button in row] for row in controls
    ]
    return {"inline_keyboard": rows}


# Bad Request descriptions meaning the target message is gone or already in the asked state
TRANSIENT_MARKERS = (
    "not found",
    "can't be edited",
    "can't be deleted",
    "not modified",
)


def is_transient(exc: TelegramApiError) -> bool:
    description = exc.description.lower()
    return exc.error_code == 400 and any(marker in description for marker in TRANSIENT_MARKERS)


async def attempt(call: Awaitable[Any], description: str) -> GatewayResult:
    try:
        return GatewayResult(ok=True, value=await call)
    except TelegramApiError as exc:
        transient = is_transient(exc)
        if not transient:
            logger.warning("%s failed: %s", description, exc)
        return GatewayResult(ok=False, error=exc, transient=transient)
    except httpx.HTTPError as exc:
        logger.warning("%s failed: %s", description, exc)
        return GatewayResult(ok=False, error=exc)


class TelegramGateway:
    """``MessagingGateway`` backed by the Telegram Bot API."""

    def __init__(self, client: TelegramClient) -> None:
        self.client = client

    async def send(self, chat_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult:
        result = await attempt(
            self.client.send_message(chat_id, text, to_reply_markup(controls)), f"sendMessage to {chat_id}"
        )
        if result.ok:
            result.value = int(result.value["message_id"])
        return result

    async def edit(self, chat_id: int, message_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult:
        return await attempt(
            self.client.edit_message_text(chat_id, message_id, text, to_reply_markup(controls)),
            f"editMessageText {chat_id}/{message_id}",
        )

    async def edit_controls(self, chat_id: int, message_id: int, controls: Optional[Keyboard]) -> GatewayResult:
        return await attempt(
            self.client.edit_message_reply_markup(chat_id, message_id, to_reply_markup(controls)),
            f"editMessageReplyMarkup {chat_id}/{message_id}",
        )

    async def delete(self, chat_id: int, message_id: int) -> GatewayResult:
        return await attempt(
            self.client.delete_message(chat_id, message_id), f"deleteMessage {chat_id}/{message_id}"
        )

    async def pin(self, chat_id: int, message_id: int) -> GatewayResult:
        return await attempt(
            self.client.pin_chat_message(chat_id, message_id), f"pinChatMessage {chat_id}/{message_id}"
        )

    async def unpin(self, chat_id: int, message_id: int) -> GatewayResult:
        return await attempt(
            self.client.unpin_chat_message(chat_id, message_id), f"unpinChatMessage {chat_id}/{message_id}"
        )

    async def answer_interaction(self, interaction_id: str, text: str) -> GatewayResult:
        return await attempt(
            self.client.answer_callback_query(interaction_id, text), f"answerCallbackQuery {interaction_id}"
        )


__all__ = [
    "Button",
    "Keyboard",
    "GatewayResult",
    "MessagingGateway",
    "TelegramGateway",
    "attempt",
    "is_transient",
    "to_reply_markup",
]
