"""Async Claude API client with streaming and tool-calling loop."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import anthropic

from chat_agent.agent.messages import Message, ToolInvocation
from chat_agent.config import settings
from chat_agent.llm.prompt import build_system_prompt
from chat_agent.tools import registry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


def _is_error(content: str) -> bool:
    try:
        parsed = json.loads(content)
    except ValueError:
        return False
    return isinstance(parsed, dict) and set(parsed) == {"error"}


def to_api_messages(history: Sequence[Message]) -> list[dict[str, Any]]:
    """Format history for the Claude API.

    Tool invocations still waiting for a decision are left out, together
    with their ``tool_use`` blocks, so the payload never holds an
    unanswered call. System-role messages are carried by the system prompt
    and skipped here.
    """
    api_messages: list[dict[str, Any]] = []
    for message in history:
        if message.role == "system":
            continue

        resolved = [inv for inv in message.tool_invocations if not inv.pending]
        if message.role == "user" or not resolved:
            if message.content:
                api_messages.append({"role": message.role, "content": message.content})
            continue

        content: list[dict[str, Any]] = []
        if message.content:
            content.append({"type": "text", "text": message.content})
        content.extend(
            {"type": "tool_use", "id": inv.call_id, "name": inv.tool_name, "input": inv.args}
            for inv in resolved
        )
        api_messages.append({"role": "assistant", "content": content})
        api_messages.append({
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": inv.call_id,
                    "content": inv.result,
                    "is_error": _is_error(inv.result or ""),
                }
                for inv in resolved
            ],
        })
    return api_messages


async def generate_response(
    history: Sequence[Message],
    on_text_delta: Callable[[str], Awaitable[None]] | None = None,
    model: str | None = None,
) -> list[Message]:
    """Generate the assistant's reply with full tool-calling loop.

    Must run inside a session scope. Auto tools are executed as soon as
    Claude calls them and their results fed back for another round. When
    Claude calls a confirmation-required tool, the call is recorded with no
    result and the turn ends; the confirmation reconciler picks it up once
    the user has answered.

    Args:
        history: Reconciled conversation history.
        on_text_delta: Async callback receiving each text chunk.
        model: Override for ``settings.claude_model``.

    Returns:
        The new assistant messages, one per round, in order.
    """
    client = _get_client()
    tool_schemas = registry.get_schemas()
    system_prompt = await build_system_prompt()

    produced: list[Message] = []
    max_rounds = settings.max_tool_rounds
    for round_num in range(max_rounds):
        kwargs: dict[str, Any] = {
            "model": model or settings.claude_model,
            "max_tokens": 4096,
            "system": system_prompt,
            "messages": to_api_messages([*history, *produced]),
        }
        if tool_schemas:
            kwargs["tools"] = tool_schemas

        text = ""
        async with client.messages.stream(**kwargs) as stream:
            async for chunk in stream.text_stream:
                text += chunk
                if on_text_delta:
                    await on_text_delta(chunk)
            response = await stream.get_final_message()

        tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
        if not tool_use_blocks:
            produced.append(Message(role="assistant", content=text))
            return produced

        logger.info(
            "Round %d: %d tool call(s): %s",
            round_num + 1,
            len(tool_use_blocks),
            ", ".join(b.name for b in tool_use_blocks),
        )

        invocations: list[ToolInvocation] = []
        awaiting_confirmation = False
        for block in tool_use_blocks:
            tool_def = registry.resolve(block.name)
            if tool_def is not None and tool_def.requires_confirmation:
                logger.info("Tool '%s' (%s) awaits confirmation", block.name, block.id)
                invocations.append(
                    ToolInvocation(call_id=block.id, tool_name=block.name, args=block.input)
                )
                awaiting_confirmation = True
                continue

            result = await registry.execute(block.name, block.input)
            invocations.append(
                ToolInvocation(
                    call_id=block.id,
                    tool_name=block.name,
                    args=block.input,
                    result=result.to_content(),
                )
            )

        produced.append(
            Message(role="assistant", content=text, tool_invocations=tuple(invocations))
        )
        if awaiting_confirmation:
            return produced

    logger.warning("Hit max tool rounds (%d)", max_rounds)
    return produced
