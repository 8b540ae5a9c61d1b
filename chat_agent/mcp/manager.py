"""Connection manager for external MCP servers.

A server is registered either with a static bearer token, which is kept in
the session's memory store under ``mcp_token_<server_id>``, or through an
OAuth redirect: ``connect`` returns an authorization URL and the per-session
callback endpoint finishes the handshake.

Requests proxied to a server pick their token up from storage on every call;
nothing is cached in the manager.
"""

from __future__ import annotations

import dataclasses
import logging
import secrets
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urljoin, urlparse

import httpx

from chat_agent.config import settings
from chat_agent.db import connection
from chat_agent.errors import HandlerFailure
from chat_agent.mcp import oauth
from chat_agent.mcp.models import (
    AuthMode,
    ConnectionState,
    ConnectResult,
    McpConnection,
    McpRequest,
    bearer_token_key,
    make_server_id,
)

if TYPE_CHECKING:
    from pathlib import Path

    from chat_agent.memory.store import MemoryStore

logger = logging.getLogger(__name__)


def server_id_from_path(path: str) -> str | None:
    """Return the path segment following ``mcp``, if any."""
    parts = path.split("/")
    if "mcp" not in parts:
        return None
    index = parts.index("mcp") + 1
    if index < len(parts) and parts[index]:
        return parts[index]
    return None


class McpConnectionManager:
    """Registers MCP servers for one session and authenticates requests to them.

    Args:
        session_id: Owning session.
        memory: The session's memory store (bearer token storage).
        db_path: Local database override (test isolation).
        http_client: Client for OAuth and proxied calls; one is created
            lazily when omitted.
    """

    def __init__(
        self,
        session_id: str,
        memory: MemoryStore,
        db_path: Path | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.session_id = session_id
        self._memory = memory
        self._db_path = db_path
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def callback_path(self) -> str:
        return settings.callback_path(self.session_id)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.http_timeout)
        return self._http

    # -- Registration ----------------------------------------------------------

    async def connect(self, url: str, bearer_token: str | None = None) -> ConnectResult:
        """Register a server.

        With a bearer token the server is ready immediately. Without one an
        OAuth handshake is started and its authorization URL returned.
        """
        if bearer_token:
            server_id = await self.connect_with_bearer_token(url, bearer_token)
            return ConnectResult(server_id=server_id)

        server_id = make_server_id()
        redirect_uri = f"{settings.callback_url(self.session_id)}/{server_id}"
        client = self._client()

        metadata = await oauth.discover_metadata(client, url)
        client_id = await oauth.register_client(client, metadata, redirect_uri)
        verifier, challenge = oauth.make_pkce_pair()
        state = secrets.token_urlsafe(16)

        await self._save(
            McpConnection(
                server_id=server_id,
                session_id=self.session_id,
                url=url,
                auth_mode=AuthMode.OAUTH,
                state=ConnectionState.AUTHENTICATING,
                client_id=client_id,
                redirect_uri=redirect_uri,
                token_endpoint=metadata.token_endpoint,
                oauth_state=state,
                code_verifier=verifier,
            )
        )
        authorization_url = oauth.build_authorization_url(
            metadata,
            client_id=client_id,
            redirect_uri=redirect_uri,
            code_challenge=challenge,
            state=state,
        )
        logger.info("Added MCP server with ID: %s (awaiting OAuth)", server_id)
        return ConnectResult(server_id=server_id, authorization_url=authorization_url)

    async def connect_with_bearer_token(self, url: str, token: str) -> str:
        """Register a server authenticated by a static bearer token."""
        server_id = make_server_id()
        await self._save(
            McpConnection(
                server_id=server_id,
                session_id=self.session_id,
                url=url,
                auth_mode=AuthMode.BEARER_TOKEN,
            )
        )
        await self._memory.store(bearer_token_key(server_id), token)
        logger.info("Added MCP server with ID: %s and stored bearer token", server_id)
        return server_id

    async def disconnect(self, server_id: str) -> bool:
        """Forget a server and its stored token. True if it was known."""
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM mcp_connections WHERE session_id = ? AND server_id = ?",
                (self.session_id, server_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
        await self._memory.forget(bearer_token_key(server_id))
        if deleted:
            logger.info("Removed MCP server %s", server_id)
        return deleted

    async def get_connection(self, server_id: str) -> McpConnection | None:
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "SELECT payload FROM mcp_connections WHERE session_id = ? AND server_id = ?",
                (self.session_id, server_id),
            )
            row = await cursor.fetchone()
        return McpConnection.model_validate_json(row[0]) if row else None

    async def list_connections(self) -> list[McpConnection]:
        async with connection(self._db_path) as db:
            cursor = await db.execute(
                "SELECT payload FROM mcp_connections WHERE session_id = ?",
                (self.session_id,),
            )
            rows = await cursor.fetchall()
        return [McpConnection.model_validate_json(row[0]) for row in rows]

    # -- Request rewriting -----------------------------------------------------

    async def rewrite_request(self, request: McpRequest) -> McpRequest:
        """Attach the stored token to a request addressed to an MCP server.

        The token is looked up on every call. Requests for servers without a
        token are returned unchanged.
        """
        server_id = server_id_from_path(urlparse(request.url).path)
        if server_id is None:
            return request

        token = await self._token_for(server_id)
        if token is None:
            return request

        headers = {k: v for k, v in request.headers.items() if k.lower() != "authorization"}
        headers["Authorization"] = f"Bearer {token}"
        logger.debug("Added bearer token to request for MCP server %s", server_id)
        return dataclasses.replace(request, headers=headers)

    async def forward(self, request: McpRequest, tail: str = "") -> httpx.Response:
        """Rewrite *request* and send it on to the server's URL."""
        server_id = server_id_from_path(urlparse(request.url).path)
        conn = await self.get_connection(server_id) if server_id else None
        if conn is None:
            msg = f"Unknown MCP server: {server_id}"
            raise HandlerFailure(msg)

        rewritten = await self.rewrite_request(request)
        target = urljoin(conn.url.rstrip("/") + "/", tail) if tail else conn.url
        query = urlparse(request.url).query
        if query:
            target = f"{target}?{query}"
        headers = {
            k: v
            for k, v in rewritten.headers.items()
            if k.lower() not in ("host", "content-length")
        }
        return await self._client().request(
            rewritten.method, target, headers=headers, content=rewritten.body or None
        )

    async def _token_for(self, server_id: str) -> str | None:
        entry = await self._memory.retrieve(bearer_token_key(server_id))
        if entry is not None:
            return entry.value
        conn = await self.get_connection(server_id)
        if conn is not None and conn.access_token:
            return conn.access_token
        return None

    # -- OAuth callback --------------------------------------------------------

    def is_callback_request(self, request: McpRequest) -> bool:
        """True for GET requests on this session's OAuth callback path."""
        if request.method.upper() != "GET":
            return False
        parsed = urlparse(request.url)
        if not parsed.path.startswith(self.callback_path + "/"):
            return False
        return "state" in parse_qs(parsed.query)

    async def handle_callback_request(self, request: McpRequest) -> str:
        """Complete the OAuth handshake named in the callback URL.

        Returns the server id. Calling it again for a finished handshake is
        harmless and returns the same id.
        """
        parsed = urlparse(request.url)
        server_id = parsed.path.rstrip("/").rsplit("/", 1)[-1]
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}

        conn = await self.get_connection(server_id)
        if conn is None or conn.auth_mode is not AuthMode.OAUTH:
            msg = f"No OAuth handshake pending for MCP server {server_id}"
            raise HandlerFailure(msg)

        if conn.state is ConnectionState.READY:
            logger.info("OAuth handshake for MCP server %s already completed", server_id)
            return server_id

        if "error" in params:
            msg = f"Authorization failed: {params['error']} {params.get('error_description', '')}"
            raise HandlerFailure(msg.strip())
        if params.get("state") != conn.oauth_state:
            msg = f"OAuth state mismatch for MCP server {server_id}"
            raise HandlerFailure(msg)
        code = params.get("code")
        if not code:
            msg = "No authorization code received"
            raise HandlerFailure(msg)

        tokens = await oauth.exchange_code(
            self._client(),
            token_endpoint=conn.token_endpoint or "",
            code=code,
            code_verifier=conn.code_verifier or "",
            client_id=conn.client_id or settings.mcp_client_id,
            redirect_uri=conn.redirect_uri or "",
        )
        await self._save(
            conn.model_copy(
                update={
                    "state": ConnectionState.READY,
                    "access_token": tokens.get("access_token"),
                    "code_verifier": None,
                }
            )
        )
        logger.info("OAuth handshake completed for MCP server %s", server_id)
        return server_id

    # -- Persistence -----------------------------------------------------------

    async def _save(self, conn: McpConnection) -> None:
        async with connection(self._db_path) as db:
            await db.execute(
                """
                INSERT INTO mcp_connections (session_id, server_id, payload) VALUES (?, ?, ?)
                ON CONFLICT (session_id, server_id) DO UPDATE SET payload = excluded.payload
                """,
                (self.session_id, conn.server_id, conn.model_dump_json()),
            )
            await db.commit()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
