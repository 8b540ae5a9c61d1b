"""Tests for run_turn(): reconcile, persist, generate."""

import asyncio
from unittest.mock import AsyncMock, patch

from chat_agent.agent.context import current_session
from chat_agent.agent.messages import Decision, Message, ToolInvocation, user_message
from chat_agent.agent.reconciler import DENIED_RESULT
from chat_agent.agent.session import AgentSession
from chat_agent.agent.turn import continue_conversation, run_turn
from chat_agent.tools import registry
from chat_agent.tools.base import ToolResult


def _pending_weather() -> Message:
    inv = ToolInvocation(call_id="w1", tool_name="get_weather_information", args={"city": "Oslo"})
    return Message(role="assistant", content="", tool_invocations=(inv,))


async def test_turn_appends_and_persists(session: AgentSession) -> None:
    reply = Message(role="assistant", content="hello")
    with patch("chat_agent.agent.turn.generate_response", AsyncMock(return_value=[reply])):
        history = await run_turn(session, [user_message("hi")])

    assert [m.content for m in history] == ["hi", "hello"]
    assert await session.conversation.load() == history


async def test_generate_sees_session_and_reconciled_history(session: AgentSession) -> None:
    seen = {}

    async def fake_generate(history, on_text_delta=None):
        seen["session"] = current_session()
        seen["history"] = history
        return [Message(role="assistant", content="ok")]

    decision = user_message("no thanks", decisions={"w1": Decision.DENIED})
    with patch("chat_agent.agent.turn.generate_response", fake_generate):
        await run_turn(session, [user_message("weather?"), _pending_weather(), decision])

    assert seen["session"] is session
    resolved = seen["history"][1].tool_invocations[0]
    assert resolved.result == DENIED_RESULT


async def test_pending_call_without_decision_stays_pending(session: AgentSession) -> None:
    with patch(
        "chat_agent.agent.turn.generate_response",
        AsyncMock(return_value=[Message(role="assistant", content="waiting")]),
    ):
        history = await run_turn(session, [user_message("weather?"), _pending_weather()])

    assert history[1].tool_invocations[0].pending
    stored = await session.conversation.load()
    assert stored[1].tool_invocations[0].pending


async def test_continue_conversation_uses_stored_history(session: AgentSession) -> None:
    await session.conversation.replace([user_message("Running scheduled task: stretch")])
    generate = AsyncMock(return_value=[Message(role="assistant", content="Time to stretch!")])

    with patch("chat_agent.agent.turn.generate_response", generate):
        history = await continue_conversation(session)

    assert history[-1].content == "Time to stretch!"
    passed = generate.await_args.args[0]
    assert passed[0].content == "Running scheduled task: stretch"


async def test_concurrent_approvals_run_handler_once(session: AgentSession) -> None:
    calls: list[str] = []

    async def fake_weather(city: str) -> ToolResult:
        calls.append(city)
        await asyncio.sleep(0)
        return ToolResult(data={"city": city, "weather": "sunny"})

    history = [
        user_message("weather?"),
        _pending_weather(),
        user_message("go ahead", decisions={"w1": Decision.APPROVED}),
    ]
    generate = AsyncMock(return_value=[Message(role="assistant", content="done")])

    with (
        patch.dict(registry._executions, {"get_weather_information": fake_weather}),
        patch("chat_agent.agent.turn.generate_response", generate),
    ):
        first, second = await asyncio.gather(
            run_turn(session, history), run_turn(session, history)
        )

    assert calls == ["Oslo"]
    assert first[1].tool_invocations[0].result == second[1].tool_invocations[0].result


async def test_stale_history_reuses_stored_result(session: AgentSession) -> None:
    resolved = _pending_weather().tool_invocations[0].resolved('{"weather": "rain"}')
    await session.conversation.replace(
        [user_message("weather?"), Message(role="assistant", tool_invocations=(resolved,))]
    )
    execution = AsyncMock(return_value=ToolResult(data={}))
    stale = [
        user_message("weather?"),
        _pending_weather(),
        user_message("yes", decisions={"w1": Decision.APPROVED}),
    ]

    with (
        patch.dict(registry._executions, {"get_weather_information": execution}),
        patch(
            "chat_agent.agent.turn.generate_response",
            AsyncMock(return_value=[Message(role="assistant", content="ok")]),
        ),
    ):
        history = await run_turn(session, stale)

    execution.assert_not_awaited()
    assert history[1].tool_invocations[0].result == '{"weather": "rain"}'
