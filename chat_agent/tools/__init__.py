"""Tool framework: import tool modules here to register them."""

# Import tool modules so their @registry.tool() decorators execute.
# To add a tool, create a file in chat_agent/tools/ and add an import here.
from chat_agent.tools import (  # noqa: F401
    email_tools,
    mcp_tools,
    memory_tools,
    scheduler_tools,
    utility,
)
from chat_agent.tools.registry import registry

# Registration is done; the catalogue is read-only from here on.
registry.freeze()

__all__ = ["registry"]
