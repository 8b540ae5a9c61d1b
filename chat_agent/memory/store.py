"""Per-session key/value memory store.

Each agent session owns one ``MemoryStore``. Every mutation is committed
before the call returns, so memories survive process restarts between
turns. The store also holds MCP bearer tokens (``mcp_token_<server_id>``).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from chat_agent.db import connection
from chat_agent.memory.models import MemoryEntry

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_COLUMNS = "key, value, created_at, updated_at"


class MemoryStore:
    """Durable memory scoped to one session.

    Args:
        session_id: Owning session.
        db_path: Local database override (test isolation).
        lock: Session write lock; mutations hold it so racing tool
            handlers cannot lose updates.
    """

    def __init__(
        self,
        session_id: str,
        db_path: Path | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.session_id = session_id
        self._db_path = db_path
        self._lock = lock or asyncio.Lock()

    # -- Write ---------------------------------------------------------------

    async def store(self, key: str, value: str) -> MemoryEntry:
        """Insert or update a memory. ``created_at`` survives updates."""
        async with self._lock, connection(self._db_path) as db:
            existing = await self._fetch(db, key)
            now = datetime.now(UTC)
            if existing is not None:
                # updated_at must move forward even within one clock tick
                if now <= existing.updated_at:
                    now = existing.updated_at + timedelta(microseconds=1)
                entry = MemoryEntry(
                    key=key, value=value, created_at=existing.created_at, updated_at=now
                )
            else:
                entry = MemoryEntry(key=key, value=value, created_at=now, updated_at=now)

            await db.execute(
                f"""
                INSERT INTO memories (session_id, {_COLUMNS}) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (session_id, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                entry.to_row(self.session_id),
            )
            await db.commit()
        logger.debug("Stored memory [%s]: %s", self.session_id, key)
        return entry

    async def forget(self, key: str) -> bool:
        """Delete a memory. Returns True iff the key existed."""
        async with self._lock, connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM memories WHERE session_id = ? AND key = ?",
                (self.session_id, key),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Forgot memory [%s]: %s", self.session_id, key)
        return deleted

    async def clear(self) -> int:
        """Delete every memory in the session. Returns the count removed."""
        async with self._lock, connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM memories WHERE session_id = ?", (self.session_id,)
            )
            await db.commit()
            count = cursor.rowcount
        logger.info("Cleared %d memories [%s]", count, self.session_id)
        return count

    # -- Read ----------------------------------------------------------------

    async def retrieve(self, key: str) -> MemoryEntry | None:
        async with connection(self._db_path) as db:
            return await self._fetch(db, key)

    async def list_all(self) -> list[MemoryEntry]:
        """All memories, oldest first."""
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM memories WHERE session_id = ? ORDER BY created_at",
                (self.session_id,),
            )
            rows = await cursor.fetchall()
        return [MemoryEntry.from_row(row) for row in rows]

    # -- Helpers -------------------------------------------------------------

    async def _fetch(self, db, key: str) -> MemoryEntry | None:
        cursor = await db.execute(
            f"SELECT {_COLUMNS} FROM memories WHERE session_id = ? AND key = ?",
            (self.session_id, key),
        )
        row = await cursor.fetchone()
        return MemoryEntry.from_row(row) if row else None
