from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from presence_board.clock import Clock
from presence_board.config import Settings
from presence_board.db import Database
from presence_board.gateway import GatewayResult, Keyboard
from presence_board.models import MessageType
from presence_board.service import PresenceService
from presence_board.telegram_client import TelegramApiError

CHAT_ID = -1001
ALICE = 1
BOB = 2


def active_ids(database: Database, user_id: int) -> List[int]:
    with database.connect() as conn:
        rows = conn.execute(
            "SELECT id FROM time_entries WHERE user_id = ? AND is_active = 1 ORDER BY ts", (user_id,)
        ).fetchall()
    return [row["id"] for row in rows]


def event_count(database: Database, chat_id: Optional[int] = None) -> int:
    with database.connect() as conn:
        if chat_id is None:
            row = conn.execute("SELECT COUNT(*) AS total FROM time_entries").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM time_entries WHERE chat_id = ?", (chat_id,)
            ).fetchone()
    return row["total"]


def board_count(database: Database, chat_id: int, message_type: MessageType = MessageType.STATUS) -> int:
    with database.connect() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS total FROM chat_messages WHERE chat_id = ? AND message_type = ?",
            (chat_id, message_type.value),
        ).fetchone()
    return row["total"]


class FrozenClock(Clock):
    def __init__(self, now: datetime, tz_name: str = "UTC") -> None:
        super().__init__(tz_name)
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def _missing(method: str) -> GatewayResult:
    error = TelegramApiError(method, 400, "Bad Request: message to edit not found")
    return GatewayResult(ok=False, error=error, transient=True)


class FakeGateway:
    """In-memory chat that records every call made through the gateway."""

    def __init__(self) -> None:
        self.next_message_id = 100
        self.messages: Dict[int, Dict[str, Any]] = {}
        self.pinned: set[Tuple[int, int]] = set()
        self.calls: List[Tuple[Any, ...]] = []
        self.answers: List[Tuple[str, str]] = []
        self.send_error: Optional[Exception] = None
        self.edit_failure: Optional[GatewayResult] = None

    async def send(self, chat_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult:
        self.calls.append(("send", chat_id))
        await asyncio.sleep(0)
        if self.send_error is not None:
            return GatewayResult(ok=False, error=self.send_error)
        message_id = self.next_message_id
        self.next_message_id += 1
        self.messages[message_id] = {"chat_id": chat_id, "text": text, "controls": controls}
        return GatewayResult(ok=True, value=message_id)

    async def edit(self, chat_id: int, message_id: int, text: str, controls: Optional[Keyboard]) -> GatewayResult:
        self.calls.append(("edit", chat_id, message_id))
        await asyncio.sleep(0)
        if message_id not in self.messages:
            return _missing("editMessageText")
        if self.edit_failure is not None:
            return self.edit_failure
        self.messages[message_id].update(text=text, controls=controls)
        return GatewayResult(ok=True)

    async def edit_controls(self, chat_id: int, message_id: int, controls: Optional[Keyboard]) -> GatewayResult:
        self.calls.append(("edit_controls", chat_id, message_id))
        if message_id not in self.messages:
            return _missing("editMessageReplyMarkup")
        self.messages[message_id]["controls"] = controls
        return GatewayResult(ok=True)

    async def delete(self, chat_id: int, message_id: int) -> GatewayResult:
        self.calls.append(("delete", chat_id, message_id))
        self.pinned.discard((chat_id, message_id))
        if self.messages.pop(message_id, None) is None:
            return _missing("deleteMessage")
        return GatewayResult(ok=True)

    async def pin(self, chat_id: int, message_id: int) -> GatewayResult:
        self.calls.append(("pin", chat_id, message_id))
        if message_id not in self.messages:
            return _missing("pinChatMessage")
        self.pinned.add((chat_id, message_id))
        return GatewayResult(ok=True)

    async def unpin(self, chat_id: int, message_id: int) -> GatewayResult:
        self.calls.append(("unpin", chat_id, message_id))
        self.pinned.discard((chat_id, message_id))
        return GatewayResult(ok=True)

    async def answer_interaction(self, interaction_id: str, text: str) -> GatewayResult:
        self.answers.append((interaction_id, text))
        return GatewayResult(ok=True)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 5, 20, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def database(tmp_path) -> Database:
    return Database(tmp_path / "presence.db")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        api_key="secret",
        database_path=tmp_path / "presence.db",
        confirm_window_seconds=3,
    )


@pytest.fixture
def service(settings, database, gateway, clock) -> PresenceService:
    return PresenceService(settings, database, gateway, clock=clock)
