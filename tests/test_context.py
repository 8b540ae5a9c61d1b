"""Tests for the implicit current-session carrier."""

import asyncio
from types import SimpleNamespace

import pytest

from chat_agent.agent.context import current_session, has_session, session_scope, with_session
from chat_agent.errors import NoActiveSession


def _session(name: str):
    return SimpleNamespace(id=name)


def test_no_session_outside_scope() -> None:
    assert not has_session()
    with pytest.raises(NoActiveSession):
        current_session()


async def test_with_session_binds_and_returns() -> None:
    s = _session("a")

    async def body(x: int) -> tuple:
        return current_session(), x

    bound, value = await with_session(s, body, 3)
    assert bound is s
    assert value == 3
    assert not has_session()


async def test_binding_visible_in_nested_awaits() -> None:
    s = _session("a")

    async def inner() -> str:
        await asyncio.sleep(0)
        return current_session().id

    async def outer() -> str:
        return await inner()

    assert await with_session(s, outer) == "a"


async def test_nested_scope_restores_outer() -> None:
    outer, inner = _session("outer"), _session("inner")

    async def body() -> list[str]:
        seen = [current_session().id]
        with session_scope(inner):
            seen.append(current_session().id)
        seen.append(current_session().id)
        return seen

    assert await with_session(outer, body) == ["outer", "inner", "outer"]


async def test_scope_restored_after_exception() -> None:
    s = _session("a")

    async def body() -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await with_session(s, body)
    assert not has_session()


async def test_concurrent_scopes_do_not_cross() -> None:
    sessions = [_session(f"s{i}") for i in range(20)]

    async def body(expected: str) -> bool:
        for _ in range(5):
            await asyncio.sleep(0)
            if current_session().id != expected:
                return False
        return True

    results = await asyncio.gather(*(with_session(s, body, s.id) for s in sessions))
    assert all(results)
