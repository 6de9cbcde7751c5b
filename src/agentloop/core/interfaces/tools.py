"""
Tool protocol.

Defines the contract every tool exposes to the registry and the agent loop.
Tools are looked up by ``name``; their ``schema`` is converted into the
function-calling format sent to the model.
"""

from typing import Any, Protocol, runtime_checkable

from agentloop.core.domain.context import ExecutionContext
from agentloop.core.domain.tools import ToolResult, ToolSchema, ValidationResult


@runtime_checkable
class ToolProtocol(Protocol):
    """
    Protocol for sandboxed workspace tools.

    ``execute`` must not raise for expected failures (missing file, invalid
    path, bad parameters); those are returned as ``ToolResult(success=False)``.
    """

    @property
    def name(self) -> str:
        """Unique tool name used as the registry key."""
        ...

    @property
    def description(self) -> str:
        """Description shown to the model."""
        ...

    @property
    def schema(self) -> ToolSchema:
        """Static parameter schema."""
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema of the parameters (function-calling format)."""
        ...

    def validate(self, params: dict[str, Any]) -> ValidationResult:
        """Check parameters against the schema before execution."""
        ...

    def can_execute(self, context: ExecutionContext) -> bool:
        """Whether the tool is available in the given context."""
        ...

    async def execute(self, params: dict[str, Any], context: ExecutionContext) -> ToolResult:
        """Run the tool."""
        ...
