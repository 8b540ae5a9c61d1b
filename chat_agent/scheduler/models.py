"""ScheduledTask data model and schedule triggers."""

from __future__ import annotations

import json
import math
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.cron import CronTrigger

from chat_agent.errors import InvalidTrigger

EXECUTE_TASK = "execute_task"


# -- Triggers ------------------------------------------------------------------


@dataclass(frozen=True)
class At:
    """Run once at an absolute time."""

    when: datetime


@dataclass(frozen=True)
class After:
    """Run once after a delay, counted from scheduling time."""

    seconds: float


@dataclass(frozen=True)
class Cron:
    """Run repeatedly on a 5-field crontab expression."""

    expr: str


Trigger = At | After | Cron


def validate_trigger(trigger: Any, now: datetime | None = None) -> Trigger:
    """Return *trigger* unchanged if valid, else raise ``InvalidTrigger``."""
    now = now or datetime.now(UTC)
    if isinstance(trigger, At):
        if not isinstance(trigger.when, datetime):
            msg = f"At trigger needs a datetime, got {type(trigger.when).__name__}"
            raise InvalidTrigger(msg)
        when = trigger.when if trigger.when.tzinfo else trigger.when.replace(tzinfo=UTC)
        if when < now - timedelta(seconds=1):
            msg = f"Scheduled time {when.isoformat()} is in the past"
            raise InvalidTrigger(msg)
        return trigger
    if isinstance(trigger, After):
        seconds = trigger.seconds
        if (
            isinstance(seconds, bool)
            or not isinstance(seconds, int | float)
            or not math.isfinite(seconds)
            or seconds < 0
        ):
            msg = f"Delay must be a non-negative number of seconds, got {seconds!r}"
            raise InvalidTrigger(msg)
        try:
            now + timedelta(seconds=seconds)
        except OverflowError as exc:
            msg = f"Delay of {seconds!r} seconds is too far in the future"
            raise InvalidTrigger(msg) from exc
        return trigger
    if isinstance(trigger, Cron):
        try:
            CronTrigger.from_crontab(trigger.expr)
        except (ValueError, TypeError, AttributeError) as exc:
            msg = f"Invalid cron expression {trigger.expr!r}: {exc}"
            raise InvalidTrigger(msg) from exc
        return trigger
    msg = f"Not a valid schedule input: {trigger!r}"
    raise InvalidTrigger(msg)


def parse_trigger(when: dict[str, Any]) -> Trigger:
    """Build a trigger from the model's ``when`` payload.

    Accepted shapes::

        {"type": "scheduled", "date": "2026-06-01T15:00:00Z"}
        {"type": "delayed", "delay_in_seconds": 300}
        {"type": "cron", "cron": "0 9 * * *"}

    ``{"type": "no-schedule"}`` and anything else raise ``InvalidTrigger``.
    """
    kind = when.get("type")
    if kind == "scheduled":
        raw = when.get("date")
        try:
            trigger: Trigger = At(datetime.fromisoformat(str(raw)))
        except ValueError as exc:
            msg = f"Invalid date {raw!r}"
            raise InvalidTrigger(msg) from exc
    elif kind == "delayed":
        trigger = After(when.get("delay_in_seconds"))
    elif kind == "cron":
        trigger = Cron(str(when.get("cron") or ""))
    else:
        msg = "Not a valid schedule input"
        raise InvalidTrigger(msg)
    return validate_trigger(trigger)


def trigger_to_dict(trigger: Trigger) -> dict[str, Any]:
    if isinstance(trigger, At):
        return {"type": "at", "when": trigger.when.isoformat()}
    if isinstance(trigger, After):
        return {"type": "after", "seconds": trigger.seconds}
    return {"type": "cron", "expr": trigger.expr}


def trigger_from_dict(data: dict[str, Any]) -> Trigger:
    kind = data.get("type")
    if kind == "at":
        return At(datetime.fromisoformat(data["when"]))
    if kind == "after":
        return After(data["seconds"])
    if kind == "cron":
        return Cron(data["expr"])
    msg = f"Unknown stored trigger type: {kind!r}"
    raise InvalidTrigger(msg)


def describe_trigger(trigger: Trigger) -> str:
    """Short human-readable form, e.g. for tool results."""
    if isinstance(trigger, At):
        return f"at {trigger.when.isoformat()}"
    if isinstance(trigger, After):
        return f"in {trigger.seconds:g} seconds"
    return f"cron '{trigger.expr}'"


# -- Task ----------------------------------------------------------------------


@dataclass
class ScheduledTask:
    """A task to be executed on a schedule.

    Attributes:
        id: Unique identifier (UUID hex).
        session_id: Session the task belongs to.
        trigger: When to run: ``At``, ``After`` or ``Cron``.
        description: Text handed to the callback when the task fires.
        callback: Name of the executor callback to invoke.
        created_at: ISO 8601 timestamp.
        next_run_at: ISO 8601 timestamp of the next planned execution.
    """

    id: str
    session_id: str
    trigger: Trigger
    description: str
    callback: str = EXECUTE_TASK
    created_at: str = field(default="")
    next_run_at: str | None = None

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = datetime.now(UTC).isoformat()

    @property
    def is_one_off(self) -> bool:
        return not isinstance(self.trigger, Cron)

    def run_date(self) -> datetime | None:
        """Absolute fire time for one-off tasks, None for cron tasks."""
        if isinstance(self.trigger, At):
            when = self.trigger.when
            return when if when.tzinfo else when.replace(tzinfo=UTC)
        if isinstance(self.trigger, After):
            return datetime.fromisoformat(self.created_at) + timedelta(
                seconds=self.trigger.seconds
            )
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "trigger": trigger_to_dict(self.trigger),
            "schedule": describe_trigger(self.trigger),
            "description": self.description,
            "callback": self.callback,
            "created_at": self.created_at,
            "next_run_at": self.next_run_at,
        }

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``scheduled_tasks`` column order."""
        return (
            self.id,
            self.session_id,
            json.dumps(trigger_to_dict(self.trigger)),
            self.description,
            self.callback,
            self.created_at,
            self.next_run_at,
        )

    @classmethod
    def from_row(cls, row: tuple) -> ScheduledTask:
        """Deserialize from a SQLite row tuple."""
        return cls(
            id=row[0],
            session_id=row[1],
            trigger=trigger_from_dict(json.loads(row[2])),
            description=row[3],
            callback=row[4],
            created_at=row[5],
            next_run_at=row[6],
        )


def make_task_id() -> str:
    """Generate a new task ID."""
    return uuid.uuid4().hex
