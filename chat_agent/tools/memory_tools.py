"""Memory tools: store, recall and forget facts for the current session.

These run against the session's MemoryStore, which is resolved from the
active session scope rather than passed in.
"""

from pydantic import Field

from chat_agent.agent.context import current_session
from chat_agent.tools.base import ToolParams, ToolResult
from chat_agent.tools.registry import registry

_CATEGORY = "memory"

# Bearer tokens for MCP servers live in memory under this prefix.
_RESERVED_PREFIX = "mcp_token_"


def _reserved(key: str) -> ToolResult | None:
    if key.startswith(_RESERVED_PREFIX):
        return ToolResult(error=f"Memory keys starting with '{_RESERVED_PREFIX}' are reserved")
    return None


# -- store_memory ------------------------------------------------------------


class StoreMemoryParams(ToolParams):
    key: str = Field(description="The unique identifier for this memory")
    value: str = Field(description="The information to remember")


@registry.tool(
    name="store_memory",
    description="Store information in the agent's memory for future reference.",
    category=_CATEGORY,
    params_model=StoreMemoryParams,
)
async def store_memory(key: str, value: str) -> ToolResult:
    refused = _reserved(key)
    if refused is not None:
        return refused
    entry = await current_session().memory.store(key, value)
    return ToolResult(data={
        "remembered": True,
        "key": entry.key,
        "value": entry.value,
        "updated_at": entry.updated_at.isoformat(),
    })


# -- retrieve_memory ---------------------------------------------------------


class MemoryKeyParams(ToolParams):
    key: str = Field(description="The unique identifier of the memory")


@registry.tool(
    name="retrieve_memory",
    description="Retrieve information from the agent's memory by key.",
    category=_CATEGORY,
    params_model=MemoryKeyParams,
)
async def retrieve_memory(key: str) -> ToolResult:
    refused = _reserved(key)
    if refused is not None:
        return refused
    entry = await current_session().memory.retrieve(key)
    if entry is None:
        return ToolResult(data={"found": False, "message": f"No memory stored for '{key}'"})
    return ToolResult(data={"found": True, "key": entry.key, "value": entry.value})


# -- list_memories -----------------------------------------------------------


@registry.tool(
    name="list_memories",
    description="List all memories the agent has stored.",
    category=_CATEGORY,
)
async def list_memories() -> ToolResult:
    entries = await current_session().memory.list_all()
    memories = [
        {"key": e.key, "value": e.value, "updated_at": e.updated_at.isoformat()}
        for e in entries
        if not e.key.startswith(_RESERVED_PREFIX)
    ]
    return ToolResult(data={"memories": memories, "count": len(memories)})


# -- forget_memory -----------------------------------------------------------


@registry.tool(
    name="forget_memory",
    description="Remove a specific memory from the agent's storage.",
    category=_CATEGORY,
    params_model=MemoryKeyParams,
)
async def forget_memory(key: str) -> ToolResult:
    refused = _reserved(key)
    if refused is not None:
        return refused
    deleted = await current_session().memory.forget(key)
    if not deleted:
        return ToolResult(data={"deleted": False, "message": f"No memory stored for '{key}'"})
    return ToolResult(data={"deleted": True, "key": key})
