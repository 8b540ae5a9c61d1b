"""System prompt assembly with memory recall."""

import logging
import zoneinfo
from datetime import datetime

from chat_agent.agent.context import current_session, has_session
from chat_agent.config import settings
from chat_agent.memory.models import MemoryEntry

logger = logging.getLogger(__name__)

IDENTITY = (
    "You are a helpful assistant that can do various tasks. "
    "Answer concisely and use the available tools when they help."
)

SECTIONS: tuple[str, ...] = (
    "# Memory\n\n"
    "You have a persistent memory for this conversation. Use `store_memory` to "
    "remember facts the user shares, `retrieve_memory` and `list_memories` to "
    "recall them, and `forget_memory` when asked to forget something.",
    "# Scheduling\n\n"
    "If the user asks to schedule a task, use `schedule_task`. A schedule is one "
    "of: a specific date, a delay in seconds, or a cron expression. Use "
    "`get_scheduled_tasks` to list tasks and `cancel_scheduled_task` to cancel "
    "one by id. When a scheduled task fires you will see a message starting "
    "with 'Running scheduled task:'; carry out what it describes.",
    "# External tool servers\n\n"
    "Use `add_mcp_server` to connect an MCP server. If no bearer token is "
    "given, share the returned authorization URL with the user so they can "
    "complete sign-in. `remove_mcp_server` disconnects a server by id.",
    "# Confirmation\n\n"
    "Some tools (weather lookups, sending email) only run after the user "
    "confirms. Call them normally; the user will approve or deny before "
    "anything happens. Do not claim such an action succeeded until you see "
    "its result.",
)


def _format_memories(entries: list[MemoryEntry]) -> str:
    """Format stored memories for injection into the system prompt."""
    # Bearer tokens for MCP servers are stored as memories too.
    visible = [e for e in entries if not e.key.startswith("mcp_token_")]
    if not visible:
        return ""

    lines = ["## Remembered Facts\n"]
    for entry in visible:
        lines.append(f"- {entry.key}: {entry.value}")
    return "\n".join(lines)


async def _recall_memories() -> str:
    """List the active session's memories, if there is a session."""
    if not has_session():
        return ""
    try:
        entries = await current_session().memory.list_all()
        return _format_memories(entries)
    except Exception:
        logger.exception("Memory recall failed")
        return ""


def _time_text() -> str:
    tz = zoneinfo.ZoneInfo(settings.scheduler_timezone)
    now = datetime.now(tz)
    return (
        f"Current time: {now.strftime('%A, %B %d, %Y %I:%M %p %Z')} "
        f"({settings.scheduler_timezone}). "
        "Resolve relative dates against this time when scheduling."
    )


async def build_system_prompt() -> list[dict]:
    """Assemble the system prompt.

    The static capability text gets ``cache_control`` so it is cached
    across tool-calling rounds. The current time and recalled memories are
    appended as separate blocks.

    Returns:
        List of content blocks for the Claude ``system`` parameter.
    """
    static_text = "\n\n---\n\n".join((IDENTITY, *SECTIONS))

    blocks: list[dict] = [
        {
            "type": "text",
            "text": static_text,
            "cache_control": {"type": "ephemeral"},
        },
        {
            "type": "text",
            "text": _time_text(),
        },
    ]

    memory_text = await _recall_memories()
    if memory_text:
        blocks.append({"type": "text", "text": memory_text})

    return blocks
