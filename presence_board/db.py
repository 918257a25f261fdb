"""SQLite persistence layer for Presence Board."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import PersistenceFailure
from .models import Action, AttendanceEvent, BoardRecord, MessageType

Connection = sqlite3.Connection
Row = sqlite3.Row


def _ts(moment: datetime) -> float:
    return moment.timestamp()


def _event_from_row(row: Row) -> AttendanceEvent:
    return AttendanceEvent(
        id=row["id"],
        user_id=row["user_id"],
        chat_id=row["chat_id"],
        display_name=row["display_name"],
        timestamp=datetime.fromtimestamp(row["ts"], tz=timezone.utc),
        action=Action(row["action"]),
        is_active=bool(row["is_active"]),
    )


def _board_from_row(row: Row) -> BoardRecord:
    return BoardRecord(
        chat_id=row["chat_id"],
        message_type=MessageType(row["message_type"]),
        message_id=row["message_id"],
        last_updated=date.fromisoformat(row["last_updated"]),
    )


class Database:
    """Event log and board store backed by a single SQLite file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        try:
            conn = sqlite3.connect(self._path)
        except sqlite3.Error as exc:
            raise PersistenceFailure(f"cannot open {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceFailure(str(exc)) from exc
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS time_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    chat_id INTEGER NOT NULL,
                    display_name TEXT NOT NULL,
                    ts REAL NOT NULL,
                    action TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_time_entries_chat_ts ON time_entries (chat_id, ts)"
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id INTEGER NOT NULL,
                    message_type TEXT NOT NULL,
                    message_id INTEGER NOT NULL,
                    last_updated TEXT NOT NULL,
                    UNIQUE(chat_id, message_type)
                )
                """
            )
            conn.commit()

    # region Event log
    def append_event(self, event: AttendanceEvent) -> AttendanceEvent:
        """Store ``event`` and keep the user's active flag on their latest open "in".

        An "in" or "out" clears only flags at or before its own timestamp, so a
        backdated event never closes a session that started after it. A new
        "in" is active only when nothing later has superseded it.
        """

        ts = _ts(event.timestamp)
        with self.connect() as conn:
            is_active = False
            if event.action is Action.IN:
                later = conn.execute(
                    """
                    SELECT 1 FROM time_entries
                    WHERE user_id = ? AND ts > ? AND action IN (?, ?)
                    LIMIT 1
                    """,
                    (event.user_id, ts, Action.IN.value, Action.OUT.value),
                ).fetchone()
                is_active = later is None
            if event.action is Action.OUT or is_active:
                conn.execute(
                    "UPDATE time_entries SET is_active = 0 WHERE user_id = ? AND is_active = 1 AND ts <= ?",
                    (event.user_id, ts),
                )
            cursor = conn.execute(
                """
                INSERT INTO time_entries (user_id, chat_id, display_name, ts, action, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.user_id,
                    event.chat_id,
                    event.display_name,
                    ts,
                    event.action.value,
                    int(is_active),
                ),
            )
            conn.commit()
            return event.with_id(cursor.lastrowid, is_active)

    def query_events(self, chat_id: int, start: datetime, end: datetime) -> List[AttendanceEvent]:
        """Events of ``chat_id`` with ``start <= timestamp <= end``, oldest first."""

        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM time_entries
                WHERE chat_id = ? AND ts >= ? AND ts <= ?
                ORDER BY ts ASC, id ASC
                """,
                (chat_id, _ts(start), _ts(end)),
            )
            return [_event_from_row(row) for row in cursor.fetchall()]

    def latest_per_user(self, chat_id: int, start: datetime, end: datetime) -> List[AttendanceEvent]:
        latest: dict[int, AttendanceEvent] = {}
        for event in self.query_events(chat_id, start, end):
            latest[event.user_id] = event
        return list(latest.values())

    def oldest_event_timestamp(self) -> Optional[datetime]:
        with self.connect() as conn:
            row = conn.execute("SELECT MIN(ts) AS oldest FROM time_entries").fetchone()
            if not row or row["oldest"] is None:
                return None
            return datetime.fromtimestamp(row["oldest"], tz=timezone.utc)

    # endregion

    # region Board store
    def get_board(self, chat_id: int, message_type: MessageType) -> Optional[BoardRecord]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM chat_messages WHERE chat_id = ? AND message_type = ?",
                (chat_id, message_type.value),
            ).fetchone()
            return _board_from_row(row) if row else None

    def upsert_board(self, record: BoardRecord) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO chat_messages (chat_id, message_type, message_id, last_updated)
                VALUES (:chat_id, :message_type, :message_id, :last_updated)
                ON CONFLICT(chat_id, message_type) DO UPDATE SET
                    message_id=excluded.message_id,
                    last_updated=excluded.last_updated
                """,
                {
                    "chat_id": record.chat_id,
                    "message_type": record.message_type.value,
                    "message_id": record.message_id,
                    "last_updated": record.last_updated.isoformat(),
                },
            )
            conn.commit()

    def delete_board(self, chat_id: int, message_type: MessageType) -> None:
        with self.connect() as conn:
            conn.execute(
                "DELETE FROM chat_messages WHERE chat_id = ? AND message_type = ?",
                (chat_id, message_type.value),
            )
            conn.commit()

    def distinct_chat_ids(self) -> List[int]:
        """Chats that have a board, or have ever recorded an event."""

        with self.connect() as conn:
            cursor = conn.execute(
                """
                SELECT chat_id FROM chat_messages WHERE message_type = ?
                UNION
                SELECT DISTINCT chat_id FROM time_entries
                ORDER BY chat_id
                """,
                (MessageType.STATUS.value,),
            )
            return [row["chat_id"] for row in cursor.fetchall()]

    # endregion


__all__ = ["Database"]
