"""OAuth 2.1 helpers for MCP servers: discovery, client registration, PKCE."""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode, urlparse

import httpx

from chat_agent.config import settings
from chat_agent.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)

METADATA_PATH = "/.well-known/oauth-authorization-server"


@dataclass(frozen=True)
class AuthServerMetadata:
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str | None = None
    discovered: bool = False


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def default_metadata(server_url: str) -> AuthServerMetadata:
    """Fallback endpoints when the server publishes no metadata."""
    origin = _origin(server_url)
    return AuthServerMetadata(
        authorization_endpoint=f"{origin}/authorize",
        token_endpoint=f"{origin}/token",
        registration_endpoint=f"{origin}/register",
    )


def make_pkce_pair() -> tuple[str, str]:
    """Return ``(code_verifier, code_challenge)`` for the S256 method."""
    verifier = secrets.token_urlsafe(48)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


async def discover_metadata(client: httpx.AsyncClient, server_url: str) -> AuthServerMetadata:
    """Fetch authorization server metadata, falling back to default endpoints."""
    url = f"{_origin(server_url)}{METADATA_PATH}"
    try:
        resp = await client.get(url)
    except httpx.HTTPError as exc:
        msg = f"Could not reach MCP server at {server_url}: {exc}"
        raise ExternalServiceFailure(msg) from exc

    if resp.status_code != 200:
        logger.info("No OAuth metadata at %s (%d); using defaults", url, resp.status_code)
        return default_metadata(server_url)

    data = resp.json()
    fallback = default_metadata(server_url)
    return AuthServerMetadata(
        authorization_endpoint=data.get("authorization_endpoint", fallback.authorization_endpoint),
        token_endpoint=data.get("token_endpoint", fallback.token_endpoint),
        registration_endpoint=data.get("registration_endpoint"),
        discovered=True,
    )


async def register_client(
    client: httpx.AsyncClient,
    metadata: AuthServerMetadata,
    redirect_uri: str,
) -> str:
    """Dynamically register as a public client; return the client id.

    Falls back to the configured client id when the server does not support
    registration.
    """
    if not metadata.registration_endpoint:
        return settings.mcp_client_id

    try:
        resp = await client.post(
            metadata.registration_endpoint,
            json={
                "client_name": settings.mcp_client_name,
                "redirect_uris": [redirect_uri],
                "grant_types": ["authorization_code", "refresh_token"],
                "response_types": ["code"],
                "token_endpoint_auth_method": "none",
            },
        )
    except httpx.HTTPError as exc:
        msg = f"Client registration failed: {exc}"
        raise ExternalServiceFailure(msg) from exc

    if resp.status_code not in (200, 201):
        logger.info(
            "Client registration at %s returned %d; using configured client id",
            metadata.registration_endpoint,
            resp.status_code,
        )
        return settings.mcp_client_id
    return resp.json().get("client_id", settings.mcp_client_id)


def build_authorization_url(
    metadata: AuthServerMetadata,
    *,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
) -> str:
    query = urlencode({
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    })
    return f"{metadata.authorization_endpoint}?{query}"


async def exchange_code(
    client: httpx.AsyncClient,
    *,
    token_endpoint: str,
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
) -> dict:
    """Trade an authorization code for tokens."""
    try:
        resp = await client.post(
            token_endpoint,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "client_id": client_id,
                "redirect_uri": redirect_uri,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    except httpx.HTTPError as exc:
        msg = f"Token exchange failed: {exc}"
        raise ExternalServiceFailure(msg) from exc

    if resp.status_code != 200:
        msg = f"Token exchange failed ({resp.status_code}): {resp.text[:200]}"
        raise ExternalServiceFailure(msg)
    return resp.json()
