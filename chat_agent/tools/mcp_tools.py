"""MCP tools: manage the remote MCP servers of the current session."""

from pydantic import Field

from chat_agent.agent.context import current_session
from chat_agent.tools.base import ToolParams, ToolResult
from chat_agent.tools.registry import registry


class AddMcpServerParams(ToolParams):
    url: str = Field(min_length=1, description="The full URL of the remote MCP server")
    bearer_token: str | None = Field(
        default=None, description="Optional bearer token for authentication"
    )


@registry.tool(
    name="add_mcp_server",
    description=(
        "Register a remote MCP server in chat. Without a bearer token an "
        "authorization URL is returned for the user to open."
    ),
    category="mcp",
    params_model=AddMcpServerParams,
)
async def add_mcp_server(url: str, bearer_token: str | None = None) -> ToolResult:
    if not url.startswith(("http://", "https://")):
        return ToolResult(error=f"Not a valid server URL: {url}")

    result = await current_session().mcp.connect(url, bearer_token)
    data = {"server_id": result.server_id, "url": url}
    if result.authorization_url:
        data["authorization_url"] = result.authorization_url
        data["message"] = "Open the authorization URL to finish connecting."
    else:
        data["message"] = "Server connected."
    return ToolResult(data=data)


@registry.tool(
    name="list_mcp_servers",
    description="List the MCP servers registered in this chat.",
    category="mcp",
)
async def list_mcp_servers() -> ToolResult:
    connections = await current_session().mcp.list_connections()
    return ToolResult(data={
        "servers": [c.summary() for c in connections],
        "count": len(connections),
    })


class RemoveMcpServerParams(ToolParams):
    server_id: str = Field(description="The ID returned when the server was added")


@registry.tool(
    name="remove_mcp_server",
    description="Remove a registered MCP server and its stored credentials.",
    category="mcp",
    params_model=RemoveMcpServerParams,
)
async def remove_mcp_server(server_id: str) -> ToolResult:
    removed = await current_session().mcp.disconnect(server_id)
    if not removed:
        return ToolResult(error=f"MCP server not found: {server_id}")
    return ToolResult(data={"removed": True, "server_id": server_id})
