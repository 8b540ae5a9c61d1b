"""Scheduled task system: models, persistence, execution, and scheduling."""

from chat_agent.scheduler.bridge import SchedulerBridge
from chat_agent.scheduler.engine import SchedulerEngine
from chat_agent.scheduler.executor import TaskExecutor
from chat_agent.scheduler.models import After, At, Cron, ScheduledTask, parse_trigger
from chat_agent.scheduler.store import TaskStore

__all__ = [
    "After",
    "At",
    "Cron",
    "ScheduledTask",
    "SchedulerBridge",
    "SchedulerEngine",
    "TaskExecutor",
    "TaskStore",
    "parse_trigger",
]
