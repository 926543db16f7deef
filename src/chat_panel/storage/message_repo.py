"""Historical message index: idempotent upserts and timestamp range queries."""

from __future__ import annotations

from typing import Iterable

from chat_panel.log import get_logger
from chat_panel.storage.database import Database
from chat_panel.storage.models import ArchivedMessage

logger = get_logger(__name__)

_UPSERT_SQL = """INSERT OR REPLACE INTO messages
   (id, timestamp, phone, sender_name, group_name, body,
    has_media, media_description, is_group)
   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"""


class MessageRepository:
    """CRUD over the archived message index."""

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    def _params(message: ArchivedMessage) -> tuple:
        return (
            message.id,
            message.timestamp,
            message.phone,
            message.sender_name,
            message.group_name,
            message.body,
            1 if message.has_media else 0,
            message.media_description,
            1 if message.is_group else 0,
        )

    async def upsert(self, message: ArchivedMessage) -> None:
        """Insert or replace a message by id."""
        await self._db.conn.execute(_UPSERT_SQL, self._params(message))
        await self._db.conn.commit()

    async def upsert_many(self, messages: Iterable[ArchivedMessage]) -> int:
        rows = [self._params(m) for m in messages]
        if not rows:
            return 0
        await self._db.conn.executemany(_UPSERT_SQL, rows)
        await self._db.conn.commit()
        return len(rows)

    async def get_range(self, start_ts: int, end_ts: int) -> list[ArchivedMessage]:
        """Messages with start_ts <= timestamp <= end_ts, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM messages
               WHERE timestamp >= ? AND timestamp <= ?
               ORDER BY timestamp ASC, rowid ASC""",
            (start_ts, end_ts),
        )
        rows = await cursor.fetchall()
        logger.debug("messages_fetched", start=start_ts, end=end_ts, count=len(rows))
        return [self._row_to_message(row) for row in rows]

    async def count(self) -> int:
        cursor = await self._db.conn.execute("SELECT COUNT(*) FROM messages")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    def _row_to_message(row) -> ArchivedMessage:
        return ArchivedMessage(
            id=row["id"],
            timestamp=row["timestamp"],
            phone=row["phone"],
            sender_name=row["sender_name"],
            group_name=row["group_name"],
            body=row["body"],
            has_media=bool(row["has_media"]),
            media_description=row["media_description"],
            is_group=bool(row["is_group"]),
        )
