"""
Error taxonomy for agent execution.

Expected tool failures (bad parameters, path escapes, missing files) never
surface as exceptions; they are reported as failed ToolResults. The
exceptions below cover the conditions a caller has to handle: provider
misconfiguration, provider failures before streaming began, and session
misuse.
"""

from typing import Any


class AgentLoopError(Exception):
    """Base class for all agentloop errors."""


class ProviderConfigurationError(AgentLoopError, ValueError):
    """Raised synchronously when a provider is missing its credential or model."""


class UnknownProviderError(AgentLoopError, KeyError):
    """Raised when a provider name has no registered factory."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unknown provider"


class ProviderError(AgentLoopError):
    """Raised when the provider backend fails (network, rate limit, auth)."""


class ExecutionFailedError(AgentLoopError):
    """
    Raised when an execution cannot start streaming at all.

    Attributes:
        messages: Canonical messages emitted before the failure, ending with
            the error message that describes it.
    """

    def __init__(self, message: str, messages: list[Any] | None = None):
        super().__init__(message)
        self.messages = list(messages or [])


class SessionNotFoundError(AgentLoopError, KeyError):
    """Raised when continuing a session that does not exist."""

    def __str__(self) -> str:
        return f"Session not found: {self.args[0]}" if self.args else "Session not found"


class SessionBusyError(AgentLoopError):
    """Raised when a second execution is started on a session that is still running."""
