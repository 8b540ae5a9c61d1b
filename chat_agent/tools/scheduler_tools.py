"""Scheduler tools: create, list, and cancel scheduled tasks."""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import Field

from chat_agent.agent.context import current_session
from chat_agent.scheduler.models import describe_trigger, parse_trigger
from chat_agent.tools.base import ToolParams, ToolResult
from chat_agent.tools.registry import registry

logger = logging.getLogger(__name__)

_CATEGORY = "scheduler"


# -- schedule_task -------------------------------------------------------------


class When(ToolParams):
    type: Literal["scheduled", "delayed", "cron", "no-schedule"] = Field(
        description=(
            '"scheduled" for a specific date, "delayed" for a delay in seconds, '
            '"cron" for a recurring schedule, "no-schedule" if none was given'
        )
    )
    date: str | None = Field(
        default=None,
        description="ISO 8601 datetime (e.g. '2026-06-01T15:00:00Z'), for 'scheduled'",
    )
    delay_in_seconds: float | None = Field(
        default=None, description="Seconds from now, for 'delayed'"
    )
    cron: str | None = Field(
        default=None, description="Cron expression (e.g. '0 8 * * *'), for 'cron'"
    )


class ScheduleTaskParams(ToolParams):
    when: When = Field(description="When the task should run")
    description: str = Field(description="What to do when the task runs")


@registry.tool(
    name="schedule_task",
    description="A tool to schedule a task to be executed at a later time.",
    category=_CATEGORY,
    params_model=ScheduleTaskParams,
)
async def schedule_task(when: dict[str, Any], description: str) -> ToolResult:
    session = current_session()
    trigger = parse_trigger(when)
    task = await session.scheduler.schedule(trigger, description)
    logger.info("Scheduled task %s (%s) for %s", task.id, describe_trigger(trigger), session.id)
    return ToolResult(data={
        "scheduled": True,
        "task_id": task.id,
        "schedule": describe_trigger(trigger),
        "next_run_at": task.next_run_at,
    })


# -- get_scheduled_tasks ---------------------------------------------------------


@registry.tool(
    name="get_scheduled_tasks",
    description="List all tasks that have been scheduled.",
    category=_CATEGORY,
)
async def get_scheduled_tasks() -> ToolResult:
    tasks = await current_session().scheduler.list_tasks()
    return ToolResult(data={
        "tasks": [t.to_dict() for t in tasks],
        "count": len(tasks),
    })


# -- cancel_scheduled_task -------------------------------------------------------


class CancelTaskParams(ToolParams):
    task_id: str = Field(description="The ID of the task to cancel")


@registry.tool(
    name="cancel_scheduled_task",
    description="Cancel a scheduled task using its ID.",
    category=_CATEGORY,
    params_model=CancelTaskParams,
)
async def cancel_scheduled_task(task_id: str) -> ToolResult:
    cancelled = await current_session().scheduler.cancel(task_id)
    if not cancelled:
        return ToolResult(error=f"Task not found: {task_id}")
    return ToolResult(data={"cancelled": True, "task_id": task_id})
