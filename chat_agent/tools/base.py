"""Base types for the tool-calling framework."""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ToolMode(str, Enum):
    """How a tool call is routed.

    ``AUTO`` tools run as soon as the model asks for them.
    ``CONFIRMATION_REQUIRED`` tools wait for a human decision in a later turn.
    """

    AUTO = "auto"
    CONFIRMATION_REQUIRED = "confirmation_required"


@dataclass
class ToolResult:
    """Result of a tool execution.

    Every tool returns one of these. ``to_content()`` is what ends up in the
    result slot of the tool invocation inside the message history.
    """

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_content(self) -> str:
        """Serialize for the tool invocation result field."""
        if self.error:
            return json.dumps({"error": self.error})
        return json.dumps(self.data or {}, default=str)


class ToolParams(BaseModel):
    """Base class for tool parameter models.

    Subclass with Field() definitions. The JSON schema is auto-generated
    via model_json_schema() for the tool catalogue.
    """
