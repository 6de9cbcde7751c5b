"""
Core Domain Models

Result types returned to callers of the executor.
"""

from dataclasses import dataclass, field
from typing import Any

from agentloop.core.domain.messages import (
    CanonicalMessage,
    ErrorMessage,
    ResultMessage,
    TextMessage,
    ToolCallMessage,
    UsageStats,
)


@dataclass
class ExecutionResult:
    """
    Aggregate outcome of one executor call.

    Attributes:
        session_id: Session the execution ran in
        success: Whether the loop finished successfully
        messages: Every canonical message emitted, in order
        final_text: Text the model produced in its final round
        tools_used: Names of dispatched tools, in call order
        duration_ms: Wall clock duration
        total_cost_usd: Estimated provider cost
        usage: Token usage across all rounds
        cancelled: True when the caller cancelled the execution
        error: Failure description when success is False
    """

    session_id: str
    success: bool
    messages: list[CanonicalMessage] = field(default_factory=list)
    final_text: str = ""
    tools_used: list[str] = field(default_factory=list)
    duration_ms: float = 0.0
    total_cost_usd: float = 0.0
    usage: UsageStats = field(default_factory=UsageStats)
    cancelled: bool = False
    error: str | None = None

    @classmethod
    def from_messages(cls, session_id: str, messages: list[CanonicalMessage]) -> "ExecutionResult":
        """Summarize a canonical message list."""
        summary = next((m for m in reversed(messages) if isinstance(m, ResultMessage)), None)
        errors = [m.message for m in messages if isinstance(m, ErrorMessage)]

        # text after the last completed tool call is the final answer
        final_parts: list[str] = []
        for message in messages:
            if isinstance(message, ToolCallMessage) and message.is_complete:
                final_parts = []
            elif isinstance(message, TextMessage):
                final_parts.append(message.text)

        if summary is None:
            return cls(
                session_id=session_id,
                success=False,
                messages=list(messages),
                final_text="".join(final_parts),
                tools_used=_tools_used(messages),
                cancelled=True,
                error=errors[-1] if errors else None,
            )

        return cls(
            session_id=session_id,
            success=summary.success,
            messages=list(messages),
            final_text="".join(final_parts),
            tools_used=_tools_used(messages),
            duration_ms=summary.duration_ms,
            total_cost_usd=summary.total_cost_usd,
            usage=summary.usage,
            error=summary.error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "success": self.success,
            "final_text": self.final_text,
            "tools_used": self.tools_used,
            "duration_ms": self.duration_ms,
            "total_cost_usd": self.total_cost_usd,
            "cancelled": self.cancelled,
            "error": self.error,
            "messages": [m.to_dict() for m in self.messages],
        }


def _tools_used(messages: list[CanonicalMessage]) -> list[str]:
    return [m.tool_name for m in messages if isinstance(m, ToolCallMessage) and m.is_complete]
