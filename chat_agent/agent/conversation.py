"""Durable conversation history for one session."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chat_agent.agent.messages import Message
from chat_agent.db import connection

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


class ConversationStore:
    """Ordered message history, persisted one row per message."""

    def __init__(
        self,
        session_id: str,
        db_path: Path | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.session_id = session_id
        self._db_path = db_path
        self._lock = lock or asyncio.Lock()

    async def load(self) -> list[Message]:
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "SELECT payload FROM messages WHERE session_id = ? ORDER BY position",
                (self.session_id,),
            )
            rows = await cursor.fetchall()
        return [Message.model_validate_json(row[0]) for row in rows]

    async def replace(self, messages: Sequence[Message]) -> None:
        """Overwrite the stored history with *messages*."""
        async with self._lock, connection(self._db_path) as db:
            await db.execute("DELETE FROM messages WHERE session_id = ?", (self.session_id,))
            for position, message in enumerate(messages):
                await db.execute(
                    "INSERT INTO messages (session_id, position, message_id, payload) "
                    "VALUES (?, ?, ?, ?)",
                    (self.session_id, position, message.id, message.model_dump_json()),
                )
            await db.commit()
        logger.debug("Saved %d message(s) [%s]", len(messages), self.session_id)

    async def append(self, message: Message) -> None:
        async with self._lock, connection(self._db_path) as db:
            cursor = await db.execute(
                "SELECT COALESCE(MAX(position), -1) FROM messages WHERE session_id = ?",
                (self.session_id,),
            )
            row = await cursor.fetchone()
            await db.execute(
                "INSERT INTO messages (session_id, position, message_id, payload) "
                "VALUES (?, ?, ?, ?)",
                (self.session_id, row[0] + 1, message.id, message.model_dump_json()),
            )
            await db.commit()
        logger.info("Appended %s message [%s]", message.role, self.session_id)

    async def clear(self) -> int:
        """Clear all messages. Returns the count of cleared messages."""
        async with self._lock, connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM messages WHERE session_id = ?", (self.session_id,)
            )
            await db.commit()
            return cursor.rowcount
