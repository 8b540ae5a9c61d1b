"""Tests for the confirmation reconciler."""

import json
from types import SimpleNamespace

import pytest

from chat_agent.agent.context import with_session
from chat_agent.agent.messages import Decision, Message, ToolInvocation, user_message
from chat_agent.agent.reconciler import DENIED_RESULT, reconcile, reconcile_history
from chat_agent.tools.base import ToolResult
from chat_agent.tools.registry import ToolRegistry


@pytest.fixture
def calls() -> list[dict]:
    return []


@pytest.fixture
def reg(calls: list[dict]) -> ToolRegistry:
    r = ToolRegistry()

    @r.tool(name="weather", description="Weather", category="test", requires_confirmation=True)
    async def weather(**kwargs) -> ToolResult:
        calls.append({"tool": "weather", **kwargs})
        return ToolResult(data={"weather": f"sunny in {kwargs.get('city')}"})

    @r.tool(name="explode", description="Explode", category="test", requires_confirmation=True)
    async def explode(**kwargs) -> ToolResult:
        msg = "handler blew up"
        raise RuntimeError(msg)

    @r.tool(name="clock", description="Clock", category="test")
    async def clock(**kwargs) -> ToolResult:
        calls.append({"tool": "clock"})
        return ToolResult(data={"time": "10am"})

    r.declare(name="unwired", description="No execution", category="test")
    return r


def _assistant(*invocations: ToolInvocation) -> Message:
    return Message(role="assistant", content="", tool_invocations=invocations)


def _pending(call_id: str, tool: str = "weather", **args) -> ToolInvocation:
    return ToolInvocation(call_id=call_id, tool_name=tool, args=args or {"city": "Paris"})


# -- Decisions ---------------------------------------------------------------


async def test_approved_call_runs_execution(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        user_message("weather in Paris?"),
        _assistant(_pending("c1")),
        user_message("", decisions={"c1": Decision.APPROVED}),
    ]

    result, report = await reconcile(history, tool_registry=reg)

    inv = result[1].tool_invocations[0]
    assert json.loads(inv.result) == {"weather": "sunny in Paris"}
    assert calls == [{"tool": "weather", "city": "Paris"}]
    assert report.executed == ["c1"]


async def test_denied_call_never_runs(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        _assistant(_pending("c1")),
        user_message("", decisions={"c1": Decision.DENIED}),
    ]

    result, report = await reconcile(history, tool_registry=reg)

    assert result[0].tool_invocations[0].result == DENIED_RESULT
    assert json.loads(DENIED_RESULT) == {"error": "User denied access to tool execution"}
    assert calls == []
    assert report.denied == ["c1"]


async def test_no_decision_stays_pending(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [user_message("hi"), _assistant(_pending("c1"))]

    result, report = await reconcile(history, tool_registry=reg)

    assert result[1].tool_invocations[0].result is None
    assert result[1] is history[1]
    assert report.pending == ["c1"]
    assert not report.changed
    assert calls == []


async def test_decision_must_be_in_next_message(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        _assistant(_pending("c1")),
        user_message("unrelated"),
        user_message("", decisions={"c1": Decision.APPROVED}),
    ]

    result, _ = await reconcile(history, tool_registry=reg)

    assert result[0].tool_invocations[0].result is None
    assert calls == []


async def test_decisions_match_by_call_id(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        _assistant(_pending("c1", city="Oslo"), _pending("c2", city="Rome")),
        user_message("", decisions={"c2": Decision.APPROVED, "c1": Decision.DENIED}),
    ]

    result, _ = await reconcile(history, tool_registry=reg)

    first, second = result[0].tool_invocations
    assert first.result == DENIED_RESULT
    assert json.loads(second.result) == {"weather": "sunny in Rome"}
    assert calls == [{"tool": "weather", "city": "Rome"}]


# -- Failures ----------------------------------------------------------------


async def test_failure_is_isolated_to_one_call(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        _assistant(_pending("c1", tool="explode"), _pending("c2")),
        user_message("", decisions={"c1": Decision.APPROVED, "c2": Decision.APPROVED}),
    ]

    result, report = await reconcile(history, tool_registry=reg)

    failed, ok = result[0].tool_invocations
    assert "error" in json.loads(failed.result)
    assert json.loads(ok.result) == {"weather": "sunny in Paris"}
    assert report.failed == ["c1"]
    assert report.executed == ["c2"]


async def test_unknown_tool_gets_error_result(reg: ToolRegistry) -> None:
    history = [_assistant(_pending("c1", tool="mystery"))]

    result, report = await reconcile(history, tool_registry=reg)

    assert json.loads(result[0].tool_invocations[0].result) == {"error": "Unknown tool: mystery"}
    assert report.failed == ["c1"]


async def test_approved_without_execution(reg: ToolRegistry) -> None:
    history = [
        _assistant(_pending("c1", tool="unwired")),
        user_message("", decisions={"c1": Decision.APPROVED}),
    ]

    result, _ = await reconcile(history, tool_registry=reg)

    assert json.loads(result[0].tool_invocations[0].result) == {
        "error": "No execute function found on tool"
    }


async def test_auto_tool_without_result_is_executed(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [_assistant(_pending("c1", tool="clock"))]

    result, report = await reconcile(history, tool_registry=reg)

    assert json.loads(result[0].tool_invocations[0].result) == {"time": "10am"}
    assert calls == [{"tool": "clock"}]
    assert report.executed == ["c1"]


# -- Idempotence and immutability ----------------------------------------------


async def test_second_pass_is_a_no_op(reg: ToolRegistry, calls: list[dict]) -> None:
    history = [
        user_message("weather?"),
        _assistant(_pending("c1")),
        user_message("", decisions={"c1": Decision.APPROVED}),
    ]

    once = await reconcile_history(history, tool_registry=reg)
    twice = await reconcile_history(once, tool_registry=reg)

    assert twice == once
    assert [m.model_dump_json() for m in twice] == [m.model_dump_json() for m in once]
    assert len(calls) == 1


async def test_input_history_is_not_modified(reg: ToolRegistry) -> None:
    history = [
        _assistant(_pending("c1")),
        user_message("", decisions={"c1": Decision.DENIED}),
    ]
    before = [m.model_dump_json() for m in history]

    result = await reconcile_history(history, tool_registry=reg)

    assert [m.model_dump_json() for m in history] == before
    assert result[0] is not history[0]
    assert result[1] is history[1]


async def test_resolved_calls_are_never_rerun(reg: ToolRegistry, calls: list[dict]) -> None:
    done = ToolInvocation(call_id="c1", tool_name="weather", args={"city": "Paris"}, result="{}")
    history = [_assistant(done), user_message("", decisions={"c1": Decision.APPROVED})]

    result = await reconcile_history(history, tool_registry=reg)

    assert result == history
    assert calls == []


async def test_on_result_callback(reg: ToolRegistry) -> None:
    seen: list[tuple[str, str]] = []

    async def on_result(call_id: str, result: str) -> None:
        seen.append((call_id, result))

    history = [
        _assistant(_pending("c1")),
        user_message("", decisions={"c1": Decision.DENIED}),
    ]
    await reconcile(history, tool_registry=reg, on_result=on_result)

    assert seen == [("c1", DENIED_RESULT)]


async def test_handlers_see_active_session() -> None:
    from chat_agent.agent.context import current_session

    r = ToolRegistry()

    @r.tool(name="who", description="Who", category="test", requires_confirmation=True)
    async def who() -> ToolResult:
        return ToolResult(data={"session": current_session().id})

    history = [
        _assistant(ToolInvocation(call_id="c1", tool_name="who")),
        user_message("", decisions={"c1": Decision.APPROVED}),
    ]
    result = await with_session(
        SimpleNamespace(id="s-42"), reconcile_history, history, tool_registry=r
    )

    assert json.loads(result[0].tool_invocations[0].result) == {"session": "s-42"}
