"""Agent sessions, one per conversation id.

Each session owns its memory, conversation history, scheduler bridge and MCP
connections. The stores share the session's lock so that mutations from
concurrent requests on the same session are serialized.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from chat_agent.agent.conversation import ConversationStore
from chat_agent.mcp.manager import McpConnectionManager
from chat_agent.memory.store import MemoryStore
from chat_agent.scheduler.bridge import SchedulerBridge

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from chat_agent.scheduler.engine import SchedulerEngine

logger = logging.getLogger(__name__)


@dataclass
class AgentSession:
    """State bound to one session id.

    ``lock`` guards individual store writes. ``turn_lock`` is held for a
    whole turn; tool handlers take ``lock`` while it is held, so the two
    must stay distinct.
    """

    id: str
    memory: MemoryStore
    conversation: ConversationStore
    scheduler: SchedulerBridge
    mcp: McpConnectionManager
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionManager:
    """Creates sessions on first use and hands back the same one afterwards."""

    def __init__(
        self,
        engine: SchedulerEngine,
        db_path: Path | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.engine = engine
        self.db_path = db_path
        self._http = http_client
        self._sessions: dict[str, AgentSession] = {}

    def get(self, session_id: str) -> AgentSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = self._create(session_id)
            self._sessions[session_id] = session
            logger.info("Created session %s", session_id)
        return session

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def _create(self, session_id: str) -> AgentSession:
        lock = asyncio.Lock()
        memory = MemoryStore(session_id, db_path=self.db_path, lock=lock)
        return AgentSession(
            id=session_id,
            memory=memory,
            conversation=ConversationStore(session_id, db_path=self.db_path, lock=lock),
            scheduler=SchedulerBridge(session_id, self.engine, lock=lock),
            mcp=McpConnectionManager(
                session_id, memory, db_path=self.db_path, http_client=self._http
            ),
            lock=lock,
        )

    async def close(self) -> None:
        for session in self._sessions.values():
            await session.mcp.aclose()
        self._sessions.clear()
