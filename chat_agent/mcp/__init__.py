"""External MCP server connections."""

from chat_agent.mcp.manager import McpConnectionManager, server_id_from_path
from chat_agent.mcp.models import AuthMode, ConnectResult, McpConnection, McpRequest

__all__ = [
    "AuthMode",
    "ConnectResult",
    "McpConnection",
    "McpConnectionManager",
    "McpRequest",
    "server_id_from_path",
]
