"""Data models for external MCP server connections."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


def make_server_id() -> str:
    """Return an 8-character hex id, short enough for URL paths."""
    return uuid.uuid4().hex[:8]


def bearer_token_key(server_id: str) -> str:
    """Memory key under which a server's bearer token is stored."""
    return f"mcp_token_{server_id}"


class AuthMode(str, Enum):
    OAUTH = "oauth"
    BEARER_TOKEN = "bearer_token"


class ConnectionState(str, Enum):
    AUTHENTICATING = "authenticating"
    READY = "ready"


class McpConnection(BaseModel):
    """A registered remote MCP server.

    Bearer tokens are not kept here; they live in the session's memory
    store. OAuth fields are filled while the handshake is in flight and
    ``access_token`` once the callback completes it.
    """

    server_id: str
    session_id: str
    url: str
    auth_mode: AuthMode
    state: ConnectionState = ConnectionState.READY
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    client_id: str | None = None
    redirect_uri: str | None = None
    token_endpoint: str | None = None
    oauth_state: str | None = None
    code_verifier: str | None = None
    access_token: str | None = None

    def summary(self) -> dict[str, str]:
        return {
            "server_id": self.server_id,
            "url": self.url,
            "auth_mode": self.auth_mode.value,
            "state": self.state.value,
        }


@dataclass(frozen=True)
class ConnectResult:
    """Outcome of ``connect``; ``authorization_url`` is set for OAuth only."""

    server_id: str
    authorization_url: str | None = None


@dataclass(frozen=True)
class McpRequest:
    """A request addressed to (or coming back from) an MCP server."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
