"""
Tool Registry - in-memory lookup from tool name to implementation.

The registry is populated once at startup and read-only afterwards, so it
can be shared by concurrently executing sessions. ``invoke`` is the single
dispatch seam used by the agent loop: it runs the availability gate and
validation before the tool body, and converts unexpected exceptions into
failed results so one broken tool never takes down the loop.
"""

from __future__ import annotations

import re
import time
from typing import Any

import structlog

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolResult
from agentloop.core.interfaces.tools import ToolProtocol
from agentloop.infrastructure.tools.tool_converter import tools_to_openai_format


class ToolRegistry:
    """Name-keyed collection of tools."""

    def __init__(self, tools: list[ToolProtocol] | None = None, logger: Any = None):
        self._tools: dict[str, ToolProtocol] = {}
        self.logger = logger or structlog.get_logger().bind(component="tool_registry")
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolProtocol) -> None:
        """Register a tool; a later registration with the same name wins."""
        if tool.name in self._tools:
            self.logger.warning("tool_registration_overwritten", tool=tool.name)
        self._tools[tool.name] = tool
        self.logger.debug("tool_registered", tool=tool.name)

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None)
        if removed is not None:
            self.logger.debug("tool_unregistered", tool=name)
        return removed is not None

    def get(self, name: str) -> ToolProtocol | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> list[ToolProtocol]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def list_schemas(self) -> list[dict[str, Any]]:
        """LLM-facing function calling schema array."""
        return tools_to_openai_format(self._tools.values())

    def get_tools_by_pattern(self, pattern: str) -> list[ToolProtocol]:
        """Tools whose name matches a regular expression."""
        regex = re.compile(pattern)
        return [tool for name, tool in self._tools.items() if regex.search(name)]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    async def invoke(
        self,
        name: str,
        params: dict[str, Any],
        context: ExecutionContext,
    ) -> ToolResult:
        """
        Validate and execute a tool by name.

        Args:
            name: Registered tool name
            params: Arguments supplied by the model
            context: Execution context of the current call

        Returns:
            The tool's result, or a failed ToolResult for unknown tools,
            unavailable tools, validation failures and unexpected exceptions.
        """
        logger = context.logger.bind(component="tool_registry", tool=name)
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("tool_not_found")
            return ToolResult.fail(f"Tool not found: {name}")

        if not tool.can_execute(context):
            logger.warning("tool_unavailable")
            return ToolResult.fail(f"Tool '{name}' is not available in this context")

        validation = tool.validate(params)
        if not validation.is_valid:
            logger.info("tool_validation_failed", errors=validation.errors)
            return ToolResult.invalid(validation.errors)

        started = time.perf_counter()
        try:
            logger.info("tool_execute", args_keys=sorted(params))
            result = await tool.execute(params, context)
        except Exception as e:
            logger.exception("tool_exception", error=str(e))
            result = ToolResult.fail(f"Tool execution failed: {type(e).__name__}: {e}")

        if not result.metadata.duration_ms:
            result.metadata.duration_ms = (time.perf_counter() - started) * 1000
        logger.info("tool_complete", success=result.success, duration_ms=round(result.metadata.duration_ms, 2))
        return result
