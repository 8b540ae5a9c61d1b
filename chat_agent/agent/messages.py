"""Conversation history models.

Messages are immutable. Reconciliation builds new ``Message`` values with
``model_copy`` rather than editing tool invocations in place.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def make_message_id() -> str:
    return uuid.uuid4().hex


class Decision(str, Enum):
    """Human decision on a pending tool call, as sent by the client."""

    APPROVED = "Yes, confirmed."
    DENIED = "No, denied."


class ToolInvocation(BaseModel):
    """A tool call requested by the model.

    ``result`` is None while the call is pending a decision.
    """

    model_config = ConfigDict(frozen=True)

    call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None

    @property
    def pending(self) -> bool:
        return self.result is None

    def resolved(self, result: str) -> ToolInvocation:
        return self.model_copy(update={"result": result})


class Message(BaseModel):
    """A single conversation message.

    ``decisions`` maps call ids of the previous message's pending tool
    invocations to the user's approve/deny answer.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=make_message_id)
    role: Literal["user", "assistant", "system"]
    content: str = ""
    tool_invocations: tuple[ToolInvocation, ...] = ()
    decisions: dict[str, Decision] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def pending_invocations(self) -> list[ToolInvocation]:
        return [inv for inv in self.tool_invocations if inv.pending]

    def decision_for(self, call_id: str) -> Decision | None:
        return self.decisions.get(call_id)


def user_message(content: str, decisions: dict[str, Decision] | None = None) -> Message:
    """Build a user-role message."""
    return Message(role="user", content=content, decisions=decisions or {})
