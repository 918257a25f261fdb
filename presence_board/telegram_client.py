"""HTTP client for interacting with the Telegram Bot API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramApiError(RuntimeError):
    """Raised when Telegram returns an error response."""

    def __init__(self, method: str, error_code: int, description: str) -> None:
        super().__init__(f"Telegram API error for {method}: [{error_code}] {description}")
        self.method = method
        self.error_code = error_code
        self.description = description


class TelegramClient:
    """Simple async wrapper around the Bot API methods used by Presence Board."""

    def __init__(self, token: str, timeout: float = 10.0, poll_timeout: int = 30) -> None:
        self._poll_timeout = poll_timeout
        self._client = httpx.AsyncClient(
            base_url=f"{TELEGRAM_API_BASE}/bot{token}",
            # long polling holds the read side open for poll_timeout seconds
            timeout=httpx.Timeout(timeout, read=timeout + poll_timeout),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.post(method, json=payload or {})
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise TelegramApiError(method, response.status_code, "invalid_response")
        if not data.get("ok"):
            raise TelegramApiError(
                method,
                int(data.get("error_code", response.status_code)),
                data.get("description", "unknown_error"),
            )
        return data.get("result")

    async def get_me(self) -> Dict[str, Any]:
        return await self._call("getMe")

    async def get_updates(self, offset: Optional[int] = None) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {
            "timeout": self._poll_timeout,
            "allowed_updates": ["message", "callback_query"],
        }
        if offset is not None:
            payload["offset"] = offset
        return await self._call("getUpdates", payload)

    async def send_message(
        self, chat_id: int, text: str, reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Any:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return await self._call("editMessageText", payload)

    async def edit_message_reply_markup(
        self, chat_id: int, message_id: int, reply_markup: Optional[Dict[str, Any]] = None
    ) -> Any:
        payload: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id}
        # an empty keyboard removes the buttons
        payload["reply_markup"] = reply_markup or {"inline_keyboard": []}
        return await self._call("editMessageReplyMarkup", payload)

    async def delete_message(self, chat_id: int, message_id: int) -> Any:
        return await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def pin_chat_message(self, chat_id: int, message_id: int) -> Any:
        return await self._call(
            "pinChatMessage",
            {"chat_id": chat_id, "message_id": message_id, "disable_notification": True},
        )

    async def unpin_chat_message(self, chat_id: int, message_id: int) -> Any:
        return await self._call("unpinChatMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(self, callback_query_id: str, text: str) -> Any:
        return await self._call(
            "answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text}
        )

    async def get_chat_member(self, chat_id: int, user_id: int) -> Dict[str, Any]:
        return await self._call("getChatMember", {"chat_id": chat_id, "user_id": user_id})


__all__ = ["TelegramClient", "TelegramApiError", "TELEGRAM_API_BASE"]
