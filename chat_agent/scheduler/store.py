"""TaskStore: aiosqlite CRUD for scheduled tasks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from chat_agent.config import settings
from chat_agent.scheduler.models import ScheduledTask

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS scheduled_tasks (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    trigger TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    callback TEXT NOT NULL,
    created_at TEXT NOT NULL,
    next_run_at TEXT
)
"""

_COLUMNS = "id, session_id, trigger, description, callback, created_at, next_run_at"


class TaskStore:
    """Persists scheduled tasks in SQLite.

    Singleton accessed via ``TaskStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: TaskStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> TaskStore:
        """Return the shared TaskStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    # -- CRUD ------------------------------------------------------------------

    async def add_task(self, task: ScheduledTask) -> ScheduledTask:
        """Insert a new task. Returns the same task object."""
        db = await self._connect()
        try:
            await db.execute(
                f"INSERT INTO scheduled_tasks ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                task.to_row(),
            )
            await db.commit()
            logger.info("Added scheduled task: %s (%s)", task.description, task.id)
            return task
        finally:
            await db.close()

    async def get_task(self, task_id: str) -> ScheduledTask | None:
        """Fetch a task by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE id = ?", (task_id,)
            )
            row = await cursor.fetchone()
            return ScheduledTask.from_row(row) if row else None
        finally:
            await db.close()

    async def list_tasks(self, session_id: str | None = None) -> list[ScheduledTask]:
        """Return all tasks, optionally only those of one session."""
        db = await self._connect()
        try:
            if session_id is None:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM scheduled_tasks ORDER BY created_at"
                )
            else:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM scheduled_tasks "
                    "WHERE session_id = ? ORDER BY created_at",
                    (session_id,),
                )
            rows = await cursor.fetchall()
            return [ScheduledTask.from_row(row) for row in rows]
        finally:
            await db.close()

    async def delete_task(self, task_id: str) -> bool:
        """Remove a task. Returns True if a row was deleted."""
        db = await self._connect()
        try:
            cursor = await db.execute("DELETE FROM scheduled_tasks WHERE id = ?", (task_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info("Deleted task: %s", task_id)
            return deleted
        finally:
            await db.close()

    async def update_next_run(self, task_id: str, timestamp: str | None) -> None:
        """Set or clear the next_run_at timestamp."""
        db = await self._connect()
        try:
            await db.execute(
                "UPDATE scheduled_tasks SET next_run_at = ? WHERE id = ?",
                (timestamp, task_id),
            )
            await db.commit()
        finally:
            await db.close()
