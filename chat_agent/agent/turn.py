"""One conversational turn: reconcile, persist, generate, persist."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from chat_agent.agent.context import with_session
from chat_agent.agent.reconciler import reconcile
from chat_agent.llm.client import generate_response

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from chat_agent.agent.messages import Message, ToolInvocation
    from chat_agent.agent.session import AgentSession

logger = logging.getLogger(__name__)


def _adopt_stored_results(
    messages: Sequence[Message], stored: Sequence[Message]
) -> list[Message]:
    """Fill pending calls in *messages* that *stored* already resolved.

    The client may send a history that predates an earlier turn's
    resolution (e.g. a repeated approval); those calls must not run again.
    """
    resolved: dict[str, ToolInvocation] = {
        inv.call_id: inv
        for message in stored
        for inv in message.tool_invocations
        if not inv.pending
    }
    if not resolved:
        return list(messages)

    adopted: list[Message] = []
    for message in messages:
        if not any(inv.call_id in resolved for inv in message.pending_invocations):
            adopted.append(message)
            continue
        invocations = tuple(
            resolved[inv.call_id] if inv.pending and inv.call_id in resolved else inv
            for inv in message.tool_invocations
        )
        logger.info("Message %s has call(s) resolved by an earlier turn", message.id)
        adopted.append(message.model_copy(update={"tool_invocations": invocations}))
    return adopted


async def _turn(
    session: AgentSession,
    messages: Sequence[Message],
    on_text_delta: Callable[[str], Awaitable[None]] | None,
) -> list[Message]:
    stored = await session.conversation.load()
    history, report = await reconcile(_adopt_stored_results(messages, stored))
    await session.conversation.replace(history)

    if report.pending:
        logger.info(
            "Turn for %s still has %d call(s) awaiting confirmation",
            session.id,
            len(report.pending),
        )

    produced = await generate_response(history, on_text_delta=on_text_delta)
    extended = [*history, *produced]
    await session.conversation.replace(extended)
    return extended


async def run_turn(
    session: AgentSession,
    messages: Sequence[Message],
    on_text_delta: Callable[[str], Awaitable[None]] | None = None,
) -> list[Message]:
    """Run a turn over the client's view of the history.

    Turns for the same session run one at a time. Pending tool calls that
    now have a decision are resolved first; the reconciled history is
    stored before the model is asked to continue it.

    Returns:
        The reconciled history extended with the assistant's messages.
    """
    async with session.turn_lock:
        return await with_session(session, _turn, session, messages, on_text_delta)


async def continue_conversation(session: AgentSession) -> list[Message]:
    """Run a turn over the stored history, e.g. after a scheduled task fired."""
    history = await session.conversation.load()
    return await run_turn(session, history)
