"""Tool registry: central catalog for all tools."""

from __future__ import annotations

import inspect
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from chat_agent.errors import (
    ExternalServiceFailure,
    HandlerFailure,
    InvalidTrigger,
    NoActiveSession,
    UnknownTool,
)
from chat_agent.tools.base import ToolMode, ToolParams, ToolResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolDef:
    """Descriptor of a registered tool.

    Auto tools carry their handler. Confirmation-required tools carry the
    schema only; their effect lives in the registry's execution table.
    """

    name: str
    description: str
    category: str
    mode: ToolMode
    params_model: type[ToolParams] | None = None
    handler: Callable[..., Awaitable[ToolResult]] | None = None

    @property
    def requires_confirmation(self) -> bool:
        return self.mode is ToolMode.CONFIRMATION_REQUIRED


class ToolRegistry:
    """Central registry for all tools.

    Auto tools register with the decorator::

        @registry.tool(name="my_tool", description="Does a thing", category="utility")
        async def my_tool() -> ToolResult:
            return ToolResult(data={"ok": True})

    Passing ``requires_confirmation=True`` declares a schema-only tool and
    files the decorated function in the execution table instead. The two
    halves can also be registered separately with ``declare()`` and
    ``@registry.execution(name)``.

    The registry is frozen once startup registration is done; after that it
    is read-only.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}
        self._executions: dict[str, Callable[..., Awaitable[ToolResult]]] = {}
        self._frozen = False

    # -- Registration ----------------------------------------------------------

    def tool(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
        requires_confirmation: bool = False,
    ) -> Callable:
        """Decorator to register an async function as a tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            _require_async(name, fn)
            if requires_confirmation:
                self.declare(
                    name=name,
                    description=description,
                    category=category,
                    params_model=params_model,
                )
                self._add_execution(name, fn)
            else:
                self._add(
                    ToolDef(
                        name=name,
                        description=description,
                        category=category,
                        mode=ToolMode.AUTO,
                        params_model=params_model,
                        handler=fn,
                    )
                )
            return fn

        return decorator

    def declare(
        self,
        *,
        name: str,
        description: str,
        category: str,
        params_model: type[ToolParams] | None = None,
    ) -> ToolDef:
        """Declare a confirmation-required tool (schema only)."""
        tool_def = ToolDef(
            name=name,
            description=description,
            category=category,
            mode=ToolMode.CONFIRMATION_REQUIRED,
            params_model=params_model,
        )
        self._add(tool_def)
        return tool_def

    def execution(self, name: str) -> Callable:
        """Decorator to register the effect of a confirmation-required tool."""

        def decorator(fn: Callable[..., Awaitable[ToolResult]]) -> Callable:
            _require_async(name, fn)
            self._add_execution(name, fn)
            return fn

        return decorator

    def freeze(self) -> None:
        """Validate and make the registry read-only."""
        self.validate()
        self._frozen = True
        logger.info("Tool registry frozen with %d tool(s)", len(self._tools))

    @property
    def frozen(self) -> bool:
        return self._frozen

    def validate(self) -> None:
        """Every confirmation-required tool needs an execution entry."""
        missing = [
            t.name
            for t in self._tools.values()
            if t.requires_confirmation and t.name not in self._executions
        ]
        if missing:
            msg = f"Confirmation-required tools without an execution: {', '.join(missing)}"
            raise ValueError(msg)

    # -- Lookup ----------------------------------------------------------------

    def resolve(self, name: str) -> ToolDef | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def describe(self) -> list[ToolDef]:
        """All descriptors in registration order."""
        return list(self._tools.values())

    def has_execution(self, name: str) -> bool:
        return name in self._executions

    @property
    def tool_names(self) -> list[str]:
        """All registered tool names."""
        return list(self._tools.keys())

    def get_schemas(self) -> list[dict[str, Any]]:
        """Generate Claude-compatible tool schemas for all registered tools."""
        return [self._tool_schema(t) for t in self._tools.values()]

    # -- Execution -------------------------------------------------------------

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run an auto tool's handler by name.

        Never raises: unknown names, invalid arguments and handler errors
        all come back as ``ToolResult(error=...)``.
        """
        tool_def = self._tools.get(name)
        if tool_def is None:
            return ToolResult(error=str(UnknownTool(name)))
        if tool_def.handler is None:
            return ToolResult(error=f"Tool '{name}' requires confirmation before it can run.")
        return await self._invoke(name, tool_def.handler, tool_def.params_model, arguments)

    async def run_execution(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Run the execution-table entry of an approved tool call."""
        fn = self._executions.get(name)
        if fn is None:
            return ToolResult(error="No execute function found on tool")
        tool_def = self._tools.get(name)
        params_model = tool_def.params_model if tool_def else None
        return await self._invoke(name, fn, params_model, arguments)

    async def _invoke(
        self,
        name: str,
        fn: Callable[..., Awaitable[ToolResult]],
        params_model: type[ToolParams] | None,
        arguments: dict[str, Any],
    ) -> ToolResult:
        logger.info("Tool '%s' called with %s", name, arguments)
        t0 = time.monotonic()

        try:
            if params_model is not None:
                kwargs = params_model(**arguments).model_dump()
            else:
                kwargs = dict(arguments)

            result = await fn(**kwargs)
        except ValidationError as exc:
            logger.warning("Tool '%s' got invalid arguments: %s", name, exc)
            return ToolResult(error=f"Invalid arguments for tool '{name}': {exc}")
        except NoActiveSession:
            logger.exception("Tool '%s' ran outside a session scope", name)
            return ToolResult(error=f"Tool '{name}' could not find the active agent session.")
        except (InvalidTrigger, HandlerFailure, ExternalServiceFailure) as exc:
            elapsed = time.monotonic() - t0
            logger.warning("Tool '%s' failed in %.2fs: %s", name, elapsed, exc)
            return ToolResult(error=str(exc))
        except Exception:
            elapsed = time.monotonic() - t0
            logger.exception("Tool '%s' failed in %.2fs", name, elapsed)
            return ToolResult(error=f"Tool '{name}' failed. Check logs for details.")

        elapsed = time.monotonic() - t0
        if result.success:
            logger.info("Tool '%s' succeeded in %.2fs", name, elapsed)
        else:
            logger.warning("Tool '%s' returned error in %.2fs: %s", name, elapsed, result.error)
        return result

    # -- Internal --------------------------------------------------------------

    def _add(self, tool_def: ToolDef) -> None:
        self._check_mutable()
        self._tools[tool_def.name] = tool_def

    def _add_execution(self, name: str, fn: Callable[..., Awaitable[ToolResult]]) -> None:
        self._check_mutable()
        self._executions[name] = fn

    def _check_mutable(self) -> None:
        if self._frozen:
            msg = "Tool registry is frozen; register tools at startup"
            raise RuntimeError(msg)

    @staticmethod
    def _tool_schema(tool_def: ToolDef) -> dict[str, Any]:
        """Build a single Claude tool schema dict."""
        if tool_def.params_model is not None:
            input_schema = tool_def.params_model.model_json_schema()
        else:
            input_schema = {"type": "object", "properties": {}}

        return {
            "name": tool_def.name,
            "description": tool_def.description,
            "input_schema": input_schema,
        }


def _require_async(name: str, fn: Callable[..., Any]) -> None:
    if not inspect.iscoroutinefunction(fn):
        msg = f"Tool handler '{name}' must be an async function"
        raise TypeError(msg)


# Global registry: import this from anywhere to register or look up tools.
registry = ToolRegistry()
