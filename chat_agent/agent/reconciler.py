"""Confirmation reconciler: resolves pending tool calls at the start of a turn.

A confirmation-required tool call is recorded in history with an empty
result. The client answers in the *next* message by attaching a decision
for the call id. Each turn the reconciler walks the history in order:

- approved → run the tool's execution-table entry and fill the result
- denied → fill the fixed rejection result; the tool never runs
- no decision yet → leave the call pending for a later turn

The input history is never modified; a new list is returned in which only
the messages holding newly resolved calls are replaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from chat_agent.agent.messages import Decision, Message, ToolInvocation
from chat_agent.errors import UnknownTool
from chat_agent.tools import registry as default_registry
from chat_agent.tools.base import ToolMode, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from chat_agent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DENIED_RESULT = ToolResult(error="User denied access to tool execution").to_content()


@dataclass
class ReconcileReport:
    """Call ids grouped by what happened to them in one reconciliation pass."""

    executed: list[str] = field(default_factory=list)
    denied: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.executed or self.denied or self.failed)


async def reconcile(
    history: Sequence[Message],
    *,
    tool_registry: ToolRegistry | None = None,
    on_result: Callable[[str, str], Awaitable[None]] | None = None,
) -> tuple[list[Message], ReconcileReport]:
    """Resolve every pending tool call that now has a decision.

    Handlers run inside the caller's session scope. ``on_result`` is awaited
    with ``(call_id, result)`` for each call resolved in this pass.
    """
    reg = tool_registry or default_registry
    messages = list(history)
    report = ReconcileReport()
    reconciled: list[Message] = []

    for index, message in enumerate(messages):
        if not message.pending_invocations:
            reconciled.append(message)
            continue

        next_message = messages[index + 1] if index + 1 < len(messages) else None
        invocations: list[ToolInvocation] = []
        changed = False

        for invocation in message.tool_invocations:
            if not invocation.pending:
                invocations.append(invocation)
                continue

            result = await _resolve(invocation, next_message, reg, report)
            if result is None:
                report.pending.append(invocation.call_id)
                invocations.append(invocation)
                continue

            invocations.append(invocation.resolved(result))
            changed = True
            if on_result is not None:
                await on_result(invocation.call_id, result)

        if changed:
            message = message.model_copy(update={"tool_invocations": tuple(invocations)})
        reconciled.append(message)

    if report.changed:
        logger.info(
            "Reconciled tool calls: %d executed, %d denied, %d failed, %d pending",
            len(report.executed),
            len(report.denied),
            len(report.failed),
            len(report.pending),
        )
    return reconciled, report


async def reconcile_history(
    history: Sequence[Message],
    *,
    tool_registry: ToolRegistry | None = None,
) -> list[Message]:
    """Like ``reconcile`` but returns only the new history."""
    reconciled, _ = await reconcile(history, tool_registry=tool_registry)
    return reconciled


async def _resolve(
    invocation: ToolInvocation,
    next_message: Message | None,
    reg: ToolRegistry,
    report: ReconcileReport,
) -> str | None:
    """Return the result for one pending call, or None if it stays pending."""
    tool_def = reg.resolve(invocation.tool_name)

    if tool_def is None:
        logger.warning("Pending call %s references unknown tool", invocation.call_id)
        report.failed.append(invocation.call_id)
        return ToolResult(error=str(UnknownTool(invocation.tool_name))).to_content()

    if tool_def.mode is ToolMode.AUTO:
        # Auto tools normally run when first invoked; finish the job now.
        logger.warning(
            "Auto tool '%s' (%s) found without a result; executing",
            invocation.tool_name,
            invocation.call_id,
        )
        result = await reg.execute(invocation.tool_name, invocation.args)
        _record(report, invocation.call_id, result)
        return result.to_content()

    decision = next_message.decision_for(invocation.call_id) if next_message else None
    if decision is None:
        return None

    if decision is Decision.DENIED:
        logger.info("User denied '%s' (%s)", invocation.tool_name, invocation.call_id)
        report.denied.append(invocation.call_id)
        return DENIED_RESULT

    logger.info("User approved '%s' (%s)", invocation.tool_name, invocation.call_id)
    result = await reg.run_execution(invocation.tool_name, invocation.args)
    _record(report, invocation.call_id, result)
    return result.to_content()


def _record(report: ReconcileReport, call_id: str, result: ToolResult) -> None:
    if result.success:
        report.executed.append(call_id)
    else:
        report.failed.append(call_id)
