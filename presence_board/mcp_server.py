"""MCP server exposing Presence Board attendance tools."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .gateway import TelegramGateway
from .service import PresenceService
from .telegram_client import TelegramClient

mcp = FastMCP("presence-board")

_settings = load_settings()
_database = Database(_settings.database_path)
_client = TelegramClient(_settings.telegram_bot_token)
_service = PresenceService(_settings, _database, TelegramGateway(_client))


def _ensure_date(day_str: Optional[str] = None):
    if not day_str:
        return _service.clock.today()
    return datetime.strptime(day_str, "%Y-%m-%d").date()


@mcp.tool()
async def list_tracked_chats() -> dict:
    """Return the ids of every chat with a board or recorded attendance."""

    return {"chats": _service.list_chats()}


@mcp.tool()
async def get_day_summary(chat_id: int, date: Optional[str] = None) -> dict:
    """Return each member's status and work time in a chat for a day (default today)."""

    return _service.get_day_summary(chat_id, _ensure_date(date))


@mcp.tool()
async def get_month_report(chat_id: int, year: Optional[int] = None, month: Optional[int] = None) -> dict:
    """Return per-member work time and worked days for a calendar month (default current)."""

    today = _service.clock.today()
    year = today.year if year is None else year
    month = today.month if month is None else month
    if not 1 <= year <= 9999:
        raise ValueError("year must be between 1 and 9999")
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    return _service.get_month_report(chat_id, year, month)


__all__ = ["mcp", "list_tracked_chats", "get_day_summary", "get_month_report"]
