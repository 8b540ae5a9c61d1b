"""Chat agent entry point."""

import asyncio
import logging
import signal

from chat_agent.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from chat_agent.agent.session import AgentSession, SessionManager
    from chat_agent.agent.turn import continue_conversation
    from chat_agent.scheduler import SchedulerEngine, TaskExecutor, TaskStore
    from chat_agent.server.app import AgentServer

    async def _answer_scheduled(session: AgentSession) -> None:
        # Let the model respond to the "Running scheduled task" prompt.
        await continue_conversation(session)

    store = TaskStore.get()
    executor = TaskExecutor(
        store=store,
        get_session=lambda session_id: sessions.get(session_id),
        on_message=_answer_scheduled if settings.anthropic_api_key else None,
    )
    engine = SchedulerEngine(store=store, executor=executor)
    sessions = SessionManager(engine=engine)
    server = AgentServer(sessions)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    await engine.start()
    await server.start()
    try:
        await stop.wait()
    finally:
        await server.stop()
        await engine.stop()
        await sessions.close()


def main() -> None:
    """Start the scheduler and the HTTP server."""
    logger.info("Starting chat agent with model %s...", settings.claude_model)
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
