"""TaskExecutor: dispatches fired tasks to their callbacks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_agent.agent.messages import user_message
from chat_agent.scheduler.models import EXECUTE_TASK

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from chat_agent.agent.session import AgentSession
    from chat_agent.scheduler.models import ScheduledTask
    from chat_agent.scheduler.store import TaskStore

logger = logging.getLogger(__name__)


class TaskExecutor:
    """Executes scheduled tasks by dispatching on their callback name.

    The only built-in callback is ``execute_task``: it appends
    ``"Running scheduled task: <description>"`` as a user message to the
    owning session's history.

    Args:
        store: TaskStore to look tasks up in.
        get_session: Returns the session for a session id (usually
            ``SessionManager.get``).
        on_message: Optional async hook run after the message is appended,
            e.g. to let the model answer the scheduled prompt.
    """

    def __init__(
        self,
        store: TaskStore,
        get_session: Callable[[str], AgentSession],
        on_message: Callable[[AgentSession], Awaitable[None]] | None = None,
    ) -> None:
        self._store = store
        self._get_session = get_session
        self._on_message = on_message
        self._callbacks: dict[str, Callable[[ScheduledTask], Awaitable[None]]] = {
            EXECUTE_TASK: self._execute_task,
        }

    async def execute(self, task_id: str) -> None:
        """Look up and execute a scheduled task by ID."""
        task = await self._store.get_task(task_id)
        if task is None:
            logger.warning("Scheduled task not found: %s", task_id)
            return

        callback = self._callbacks.get(task.callback)
        if callback is None:
            logger.warning("Unknown callback '%s' for task %s", task.callback, task_id)
            return

        logger.info("Executing task: '%s' (%s)", task.description, task_id)
        try:
            await callback(task)
            logger.info("Task executed successfully: '%s' (%s)", task.description, task_id)
        except Exception:
            logger.exception("Task execution failed: '%s' (%s)", task.description, task_id)

    async def _execute_task(self, task: ScheduledTask) -> None:
        session = self._get_session(task.session_id)
        message = user_message(f"Running scheduled task: {task.description}")
        await session.conversation.append(message)
        if self._on_message is not None:
            await self._on_message(session)
