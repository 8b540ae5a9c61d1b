"""Lightweight async HTTP front door for agent sessions.

Uses aiohttp's AppRunner/TCPSite for non-blocking start/stop so the server
shares the event loop with the scheduler.

Routes (``{ns}`` is ``settings.agent_namespace``)::

    GET  /health
    GET  /check-api-key
    POST /agents/{ns}/{session_id}                       run a turn
    GET  /agents/{ns}/{session_id}/messages              stored history
    GET  /agents/{ns}/{session_id}/callback/{server_id}  MCP OAuth callback
    *    /agents/{ns}/{session_id}/mcp/{server_id}/...   MCP proxy
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from aiohttp import web
from pydantic import TypeAdapter, ValidationError

from chat_agent.agent.messages import Message
from chat_agent.agent.turn import run_turn
from chat_agent.config import settings
from chat_agent.errors import ExternalServiceFailure, HandlerFailure
from chat_agent.mcp.models import McpRequest

if TYPE_CHECKING:
    from chat_agent.agent.session import SessionManager

logger = logging.getLogger(__name__)

SESSIONS = web.AppKey("sessions", object)

_history_adapter = TypeAdapter(list[Message])

# Paths that answer even when required configuration is missing.
_UNGUARDED = frozenset({"/health", "/check-api-key"})


def _dump(messages: list[Message]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in messages]


def _sessions(request: web.Request) -> SessionManager:
    return request.app[SESSIONS]


@web.middleware
async def _require_config(request: web.Request, handler):
    """Refuse agent requests while required credentials are unset."""
    if request.path not in _UNGUARDED:
        missing = settings.required_missing()
        if missing:
            logger.error("%s not set; refusing %s", ", ".join(missing), request.path)
            return web.Response(text=f"{', '.join(missing)} is not set", status=500)
    return await handler(request)


async def _health(request: web.Request) -> web.Response:
    """GET /health: basic liveness check."""
    return web.json_response({"status": "ok"})


async def _check_api_key(request: web.Request) -> web.Response:
    return web.json_response({"success": bool(settings.anthropic_api_key)})


async def _handle_chat(request: web.Request) -> web.Response:
    """Run one turn over the history the client sends."""
    session_id = request.match_info["session_id"]
    try:
        payload: dict[str, Any] = await request.json()
        messages = _history_adapter.validate_python(payload.get("messages", []))
    except (ValueError, ValidationError, AttributeError) as exc:
        logger.warning("Chat bad request [%s]: %s", session_id, exc)
        return web.json_response({"error": "invalid message history"}, status=400)

    session = _sessions(request).get(session_id)
    history = await run_turn(session, messages)
    return web.json_response({"messages": _dump(history)})


async def _handle_messages(request: web.Request) -> web.Response:
    session = _sessions(request).get(request.match_info["session_id"])
    history = await session.conversation.load()
    return web.json_response({"messages": _dump(history)})


async def _to_mcp_request(request: web.Request) -> McpRequest:
    return McpRequest(
        method=request.method,
        url=str(request.url),
        headers=dict(request.headers),
        body=await request.read(),
    )


async def _handle_callback(request: web.Request) -> web.Response:
    """Finish an MCP OAuth handshake."""
    session = _sessions(request).get(request.match_info["session_id"])
    mcp_request = await _to_mcp_request(request)
    if not session.mcp.is_callback_request(mcp_request):
        return web.json_response({"error": "not an OAuth callback"}, status=400)

    try:
        server_id = await session.mcp.handle_callback_request(mcp_request)
    except HandlerFailure as exc:
        logger.warning("OAuth callback rejected [%s]: %s", session.id, exc)
        return web.json_response({"error": str(exc)}, status=400)
    except ExternalServiceFailure as exc:
        logger.warning("OAuth callback failed [%s]: %s", session.id, exc)
        return web.json_response({"error": str(exc)}, status=502)
    return web.json_response({"serverId": server_id})


async def _handle_mcp_proxy(request: web.Request) -> web.Response:
    """Forward a request to a registered MCP server with its token attached."""
    session = _sessions(request).get(request.match_info["session_id"])
    mcp_request = await _to_mcp_request(request)
    try:
        resp = await session.mcp.forward(mcp_request, tail=request.match_info.get("tail", ""))
    except HandlerFailure as exc:
        return web.json_response({"error": str(exc)}, status=404)
    except httpx.HTTPError as exc:
        logger.warning("MCP proxy failed [%s]: %s", session.id, exc)
        return web.json_response({"error": "upstream MCP server unreachable"}, status=502)

    return web.Response(
        body=resp.content,
        status=resp.status_code,
        content_type=resp.headers.get("content-type", "application/json").split(";")[0],
    )


def create_app(sessions: SessionManager) -> web.Application:
    """Build the aiohttp Application with routes."""
    app = web.Application(middlewares=[_require_config])
    app[SESSIONS] = sessions

    base = f"/agents/{settings.agent_namespace}/{{session_id}}"
    app.router.add_get("/health", _health)
    app.router.add_get("/check-api-key", _check_api_key)
    app.router.add_post(base, _handle_chat)
    app.router.add_get(f"{base}/messages", _handle_messages)
    app.router.add_get(f"{base}/callback/{{server_id}}", _handle_callback)
    app.router.add_route("*", f"{base}/mcp/{{server_id}}", _handle_mcp_proxy)
    app.router.add_route("*", f"{base}/mcp/{{server_id}}/{{tail:.*}}", _handle_mcp_proxy)
    return app


class AgentServer:
    """Manages the aiohttp server lifecycle."""

    def __init__(self, sessions: SessionManager, port: int | None = None) -> None:
        self.port = port or settings.server_port
        self._sessions = sessions
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        missing = settings.required_missing()
        if missing:
            logger.warning("%s not set; agent routes will answer 500", ", ".join(missing))

        self._runner = web.AppRunner(create_app(self._sessions))
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        logger.info("Agent server listening on port %d", self.port)

    async def stop(self) -> None:
        """Shut down the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Agent server stopped")
