"""Tests for the send_email tool."""

import json
from unittest.mock import patch

import httpx

from chat_agent.tools.email_tools import render_email, send_email

_RealClient = httpx.AsyncClient


def _client_factory(handler):
    def factory(**kwargs):
        return _RealClient(transport=httpx.MockTransport(handler), **kwargs)

    return factory


def test_render_escapes_fields() -> None:
    body = render_email("Hi", "<Bob>", "a & b")
    assert "<h1>Hi</h1>" in body
    assert "Hello &lt;Bob&gt;," in body
    assert "a &amp; b" in body


async def test_send_email_posts_to_resend() -> None:
    sent: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    with (
        patch("chat_agent.tools.email_tools.settings.resend_api_key", "re_test"),
        patch("chat_agent.tools.email_tools.httpx.AsyncClient", _client_factory(handler)),
    ):
        result = await send_email(
            to="ada@example.com", subject="Hello", first_name="Ada", message="Meeting at 3"
        )

    assert result.data == {
        "sent": True,
        "to": "ada@example.com",
        "subject": "Hello",
        "id": "email_123",
    }
    request = sent[0]
    assert request.headers["authorization"] == "Bearer re_test"
    payload = json.loads(request.content)
    assert payload["to"] == ["ada@example.com"]
    assert "Hello Ada," in payload["html"]


async def test_send_email_api_error() -> None:
    with (
        patch("chat_agent.tools.email_tools.settings.resend_api_key", "re_test"),
        patch(
            "chat_agent.tools.email_tools.httpx.AsyncClient",
            _client_factory(lambda request: httpx.Response(422, text="invalid to")),
        ),
    ):
        result = await send_email(to="bad", subject="s", first_name="f", message="m")

    assert not result.success
    assert "Failed to send email" in result.error


async def test_send_email_without_key() -> None:
    result = await send_email(to="a@b.c", subject="s", first_name="f", message="m")
    assert not result.success
    assert "RESEND_API_KEY" in result.error
