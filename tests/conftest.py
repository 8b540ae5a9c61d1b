"""Shared test fixtures."""

from pathlib import Path

import pytest

from chat_agent.agent.session import AgentSession, SessionManager
from chat_agent.scheduler.engine import SchedulerEngine
from chat_agent.scheduler.executor import TaskExecutor
from chat_agent.scheduler.store import TaskStore


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("chat_agent.config.settings.turso_database_url", "")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "agent.db"


@pytest.fixture
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(db_path=tmp_path / "tasks.db")


@pytest.fixture
def sessions(_no_turso, db_path: Path, task_store: TaskStore) -> SessionManager:
    """A SessionManager over an engine that is never started.

    Jobs are added to the APScheduler instance but nothing fires.
    """
    executor = TaskExecutor(store=task_store, get_session=lambda sid: manager.get(sid))
    engine = SchedulerEngine(store=task_store, executor=executor, timezone="UTC")
    manager = SessionManager(engine=engine, db_path=db_path)
    return manager


@pytest.fixture
def session(sessions: SessionManager) -> AgentSession:
    return sessions.get("session-a")
