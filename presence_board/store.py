"""Interfaces the core expects from the event log and the board store."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from .models import AttendanceEvent, BoardRecord, MessageType


class EventLog(Protocol):
    def append_event(self, event: AttendanceEvent) -> AttendanceEvent: ...

    def query_events(self, chat_id: int, start: datetime, end: datetime) -> List[AttendanceEvent]: ...

    def latest_per_user(self, chat_id: int, start: datetime, end: datetime) -> List[AttendanceEvent]: ...

    def distinct_chat_ids(self) -> List[int]: ...

    def oldest_event_timestamp(self) -> Optional[datetime]: ...


class BoardStore(Protocol):
    def get_board(self, chat_id: int, message_type: MessageType) -> Optional[BoardRecord]: ...

    def upsert_board(self, record: BoardRecord) -> None: ...

    def delete_board(self, chat_id: int, message_type: MessageType) -> None: ...

    def distinct_chat_ids(self) -> List[int]: ...


__all__ = ["EventLog", "BoardStore"]
