"""SchedulerEngine: APScheduler lifecycle and job management."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from chat_agent.config import settings
from chat_agent.errors import InvalidTrigger
from chat_agent.scheduler.models import Cron

if TYPE_CHECKING:
    from chat_agent.scheduler.executor import TaskExecutor
    from chat_agent.scheduler.models import ScheduledTask
    from chat_agent.scheduler.store import TaskStore

logger = logging.getLogger(__name__)


class SchedulerEngine:
    """Manages the APScheduler lifecycle and maps ScheduledTasks to jobs.

    Shared by all sessions; ``SchedulerBridge`` scopes it to one session.

    Args:
        store: TaskStore for persistence.
        executor: TaskExecutor to run tasks.
        timezone: IANA timezone string (default from settings).
    """

    def __init__(
        self,
        store: TaskStore,
        executor: TaskExecutor,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._executor = executor
        self._timezone = timezone or settings.scheduler_timezone
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def store(self) -> TaskStore:
        return self._store

    # -- Lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Load persisted tasks, create jobs, and start the scheduler."""
        tasks = await self._store.list_tasks()
        loaded = 0
        for task in tasks:
            try:
                self._add_job(task)
            except Exception:
                logger.exception("Skipping task %s: cannot build its job", task.id)
                continue
            loaded += 1
        self._scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started with %d task(s) (tz=%s)",
            loaded,
            self._timezone,
        )

    async def stop(self) -> None:
        """Shut down the scheduler."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    # -- Task management -------------------------------------------------------

    async def schedule_task(self, task: ScheduledTask) -> ScheduledTask:
        """Persist a task and add it to the live scheduler.

        The APScheduler trigger is built first so a task that cannot be
        scheduled is never stored.

        Raises:
            InvalidTrigger: if no job can be built for the task.
        """
        try:
            trigger = self._build_trigger(task)
        except (OverflowError, ValueError) as exc:
            msg = f"Cannot schedule task: {exc}"
            raise InvalidTrigger(msg) from exc
        await self._store.add_task(task)
        job = self._add_job(task, trigger)
        next_run = getattr(job, "next_run_time", None)
        if next_run:
            task.next_run_at = next_run.isoformat()
            await self._store.update_next_run(task.id, task.next_run_at)
        logger.info("Scheduled task: %s (%s)", task.description, task.id)
        return task

    async def cancel_task(self, task_id: str) -> bool:
        """Remove a task from the scheduler and the store.

        Best effort: a job that is already running is not interrupted.
        """
        try:
            self._scheduler.remove_job(task_id)
        except Exception:
            logger.debug("Job %s not found in scheduler (may already be removed)", task_id)
        deleted = await self._store.delete_task(task_id)
        if deleted:
            logger.info("Cancelled task: %s", task_id)
        return deleted

    # -- Internal --------------------------------------------------------------

    def _add_job(self, task: ScheduledTask, trigger=None):
        """Create an APScheduler job for the given task. Returns the Job."""
        return self._scheduler.add_job(
            self._run_task,
            trigger=trigger or self._build_trigger(task),
            id=task.id,
            name=task.description[:80],
            args=[task.id],
            misfire_grace_time=None,
            replace_existing=True,
        )

    async def _run_task(self, task_id: str) -> None:
        """Callback invoked by APScheduler. Delegates to the executor."""
        await self._executor.execute(task_id)

        task = await self._store.get_task(task_id)
        if task is None:
            return

        if task.is_one_off:
            await self._store.delete_task(task_id)
        else:
            job = self._scheduler.get_job(task_id)
            next_run = getattr(job, "next_run_time", None)
            if next_run:
                await self._store.update_next_run(task_id, next_run.isoformat())

    def _build_trigger(self, task: ScheduledTask):
        """Convert a task's trigger into an APScheduler trigger."""
        if isinstance(task.trigger, Cron):
            return CronTrigger.from_crontab(task.trigger.expr, timezone=self._timezone)
        return DateTrigger(run_date=task.run_date(), timezone=self._timezone)
