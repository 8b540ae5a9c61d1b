"""SchedulerBridge: one session's view of the shared scheduler."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chat_agent.scheduler.models import (
    EXECUTE_TASK,
    ScheduledTask,
    make_task_id,
    validate_trigger,
)

if TYPE_CHECKING:
    from chat_agent.scheduler.engine import SchedulerEngine
    from chat_agent.scheduler.models import Trigger

logger = logging.getLogger(__name__)


class SchedulerBridge:
    """Schedules, lists and cancels tasks owned by a single session.

    Args:
        session_id: Owning session.
        engine: Shared SchedulerEngine.
        lock: Session write lock, shared with the memory store.
    """

    def __init__(
        self,
        session_id: str,
        engine: SchedulerEngine,
        lock: asyncio.Lock | None = None,
    ) -> None:
        self.session_id = session_id
        self._engine = engine
        self._lock = lock or asyncio.Lock()

    async def schedule(
        self,
        trigger: Trigger,
        description: str,
        callback: str = EXECUTE_TASK,
    ) -> ScheduledTask:
        """Create a durable task.

        Raises:
            InvalidTrigger: if *trigger* is not a valid At / After / Cron.
        """
        validate_trigger(trigger)
        task = ScheduledTask(
            id=make_task_id(),
            session_id=self.session_id,
            trigger=trigger,
            description=description,
            callback=callback,
        )
        async with self._lock:
            return await self._engine.schedule_task(task)

    async def list_tasks(self) -> list[ScheduledTask]:
        return await self._engine.store.list_tasks(self.session_id)

    async def cancel(self, task_id: str) -> bool:
        """Cancel one of this session's tasks. False if unknown."""
        async with self._lock:
            task = await self._engine.store.get_task(task_id)
            if task is None or task.session_id != self.session_id:
                logger.info("Cancel ignored, no task %s in session %s", task_id, self.session_id)
                return False
            return await self._engine.cancel_task(task_id)
