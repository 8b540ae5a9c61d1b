"""Error taxonomy for the agent runtime.

Every error here is caught at the per-tool-call boundary and rendered as a
string result, so none of them ever ends a turn.
"""


class AgentError(Exception):
    """Base class for agent runtime errors."""


class NoActiveSession(AgentError):
    """Raised when the current session is read outside any session scope."""

    def __init__(self, msg: str = "No active agent session") -> None:
        super().__init__(msg)


class InvalidTrigger(AgentError):
    """Raised when a schedule trigger is not one of at / after / cron."""


class UnknownTool(AgentError):
    """Raised when the model references a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class HandlerFailure(AgentError):
    """Raised when a tool's own logic fails."""


class ExternalServiceFailure(AgentError):
    """Raised when an outbound call (email, lookups, MCP servers) fails."""
