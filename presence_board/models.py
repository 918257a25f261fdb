"""Dataclasses representing Presence Board domain models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional


class Action(str, Enum):
    IN = "in"
    BREAK = "break"
    OUT = "out"


class MessageType(str, Enum):
    STATUS = "status"
    WELCOME = "welcome"


@dataclass(frozen=True, slots=True)
class AttendanceEvent:
    """One immutable attendance fact recorded for a user in a chat."""

    user_id: int
    chat_id: int
    display_name: str
    timestamp: datetime
    action: Action
    is_active: bool = False
    id: Optional[int] = None

    def with_id(self, event_id: int, is_active: bool) -> "AttendanceEvent":
        return replace(self, id=event_id, is_active=is_active)


@dataclass(slots=True)
class BoardRecord:
    chat_id: int
    message_type: MessageType
    message_id: int
    last_updated: date


__all__ = ["Action", "MessageType", "AttendanceEvent", "BoardRecord"]
