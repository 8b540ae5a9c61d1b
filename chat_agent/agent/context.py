"""Implicit "current session" for tool bodies.

Tool handlers call ``current_session()`` instead of receiving the session as
an argument. The binding lives in a ``ContextVar``: every asyncio task gets
its own copy of the context, so turns for different sessions running
concurrently never observe each other's session.
"""

from __future__ import annotations

import contextlib
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TypeVar

from chat_agent.errors import NoActiveSession

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from chat_agent.agent.session import AgentSession

T = TypeVar("T")

_current: ContextVar[AgentSession | None] = ContextVar("current_session", default=None)


def current_session() -> AgentSession:
    """Return the session bound by the enclosing ``with_session`` scope.

    Raises:
        NoActiveSession: when called outside any scope.
    """
    session = _current.get()
    if session is None:
        raise NoActiveSession
    return session


def has_session() -> bool:
    return _current.get() is not None


@contextlib.contextmanager
def session_scope(session: AgentSession) -> Iterator[AgentSession]:
    """Bind *session* for the body of a ``with`` block, restoring on exit."""
    token = _current.set(session)
    try:
        yield session
    finally:
        _current.reset(token)


async def with_session(
    session: AgentSession,
    body: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``body(*args, **kwargs)`` with *session* as the current session."""
    with session_scope(session):
        return await body(*args, **kwargs)
