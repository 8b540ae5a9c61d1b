"""Tests for SessionManager and per-session isolation."""

from chat_agent.agent.messages import Message, user_message
from chat_agent.agent.session import SessionManager


def test_get_returns_same_session(sessions: SessionManager) -> None:
    first = sessions.get("s1")
    assert sessions.get("s1") is first
    assert "s1" in sessions
    assert "s2" not in sessions
    assert len(sessions) == 1


def test_stores_share_the_session_lock(sessions: SessionManager) -> None:
    session = sessions.get("s1")
    assert session.memory._lock is session.lock
    assert session.conversation._lock is session.lock


async def test_sessions_are_isolated(sessions: SessionManager) -> None:
    a, b = sessions.get("a"), sessions.get("b")

    await a.memory.store("k", "from a")
    await a.conversation.replace([user_message("hello")])

    assert await b.memory.retrieve("k") is None
    assert await b.conversation.load() == []
    assert (await a.memory.retrieve("k")).value == "from a"


async def test_conversation_roundtrip(sessions: SessionManager) -> None:
    session = sessions.get("s1")
    history = [user_message("hi"), Message(role="assistant", content="hello")]

    await session.conversation.replace(history)
    await session.conversation.append(user_message("again"))

    loaded = await session.conversation.load()
    assert [m.content for m in loaded] == ["hi", "hello", "again"]
    assert loaded[:2] == history
    assert await session.conversation.clear() == 3


async def test_close_forgets_sessions(sessions: SessionManager) -> None:
    sessions.get("s1")
    await sessions.close()
    assert len(sessions) == 0
