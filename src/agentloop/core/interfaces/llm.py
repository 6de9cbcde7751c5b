"""
Provider protocol.

The agent loop depends only on this shape: a streaming submit call that
yields provider-native chunks, a normalizer that turns those chunks into
canonical messages, and a cost estimate for the terminal summary.
"""

from collections.abc import AsyncIterator
from typing import Any, Protocol

from agentloop.core.domain.messages import CanonicalMessage, UsageStats


class NormalizerProtocol(Protocol):
    """Stateful per-round converter from native chunks to canonical messages."""

    def normalize(self, event: Any) -> list[CanonicalMessage]:
        ...

    def flush(self) -> list[CanonicalMessage]:
        ...


class ProviderProtocol(Protocol):
    """Model backend the loop talks to."""

    name: str
    model: str

    def stream(
        self,
        system_prompt: str | None,
        messages: list[dict[str, Any]],
        tool_schemas: list[dict[str, Any]],
    ) -> AsyncIterator[Any]:
        """Submit one round and yield native streaming chunks."""
        ...

    def create_normalizer(self, session_id: str, logger: Any = None) -> NormalizerProtocol:
        ...

    def estimate_cost(self, usage: UsageStats) -> float:
        ...
