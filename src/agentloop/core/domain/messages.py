"""
Canonical Messages - provider independent execution events.

Every provider stream is normalized into these frozen dataclasses once, by
the normalizer; the loop, the executor and the CLI consume them by type
instead of inspecting provider specific shapes.

Message kinds:
- text: Text fragment produced by the model
- tool_call: Tool invocation (started, streaming parameter update, complete)
- tool_result: Outcome of a dispatched tool call
- turn_finished: End of one model round with reason and usage
- error: Provider or execution error
- cancelled: Terminal message when the caller cancelled
- result: Terminal summary with success, duration and cost
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar


class MessageKind(str, Enum):
    """Tag of a canonical message."""

    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TURN_FINISHED = "turn_finished"
    ERROR = "error"
    CANCELLED = "cancelled"
    RESULT = "result"


class ToolCallStatus(str, Enum):
    """Lifecycle stage of a streamed tool call."""

    STARTED = "started"
    STREAMING = "streaming"
    COMPLETE = "complete"


@dataclass(frozen=True)
class UsageStats:
    """Token counters reported by the provider for one round (or summed)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "UsageStats") -> "UsageStats":
        return UsageStats(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class CanonicalMessage:
    """Base class of the tagged union; ``kind`` identifies the concrete type."""

    kind: ClassVar[MessageKind]

    session_id: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class TextMessage(CanonicalMessage):
    kind: ClassVar[MessageKind] = MessageKind.TEXT

    text: str = ""


@dataclass(frozen=True)
class ToolCallMessage(CanonicalMessage):
    """
    A model requested tool invocation.

    Streaming providers emit the same tool_call_id several times: once when
    the call starts, then a STREAMING update whenever the accumulated
    argument text parses to a new value, and finally COMPLETE. Only
    COMPLETE calls are dispatched.

    Attributes:
        tool_call_id: Provider assigned call id
        tool_name: Name of the requested tool
        arguments: Parsed arguments (empty until parseable)
        status: Lifecycle stage of the call
        raw_arguments: Accumulated argument text as received
        argument_error: Set on COMPLETE calls whose arguments never parsed
    """

    kind: ClassVar[MessageKind] = MessageKind.TOOL_CALL

    tool_call_id: str = ""
    tool_name: str = ""
    arguments: dict[str, Any] = field(default_factory=dict)
    status: ToolCallStatus = ToolCallStatus.COMPLETE
    raw_arguments: str = ""
    argument_error: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.status == ToolCallStatus.COMPLETE


@dataclass(frozen=True)
class ToolResultMessage(CanonicalMessage):
    kind: ClassVar[MessageKind] = MessageKind.TOOL_RESULT

    tool_call_id: str = ""
    tool_name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False


@dataclass(frozen=True)
class TurnFinishedMessage(CanonicalMessage):
    kind: ClassVar[MessageKind] = MessageKind.TURN_FINISHED

    reason: str = "stop"
    usage: UsageStats = field(default_factory=UsageStats)


@dataclass(frozen=True)
class ErrorMessage(CanonicalMessage):
    kind: ClassVar[MessageKind] = MessageKind.ERROR

    message: str = ""


@dataclass(frozen=True)
class CancelledMessage(CanonicalMessage):
    kind: ClassVar[MessageKind] = MessageKind.CANCELLED

    reason: str = "Cancelled by caller"


@dataclass(frozen=True)
class ResultMessage(CanonicalMessage):
    """
    Terminal summary of one execute() call.

    Attributes:
        success: Overall outcome
        duration_ms: Wall clock duration of the execution
        total_cost_usd: Estimated provider cost across all rounds
        usage: Token usage summed across all rounds
        rounds: Number of provider rounds performed
        stop_reason: Why the loop stopped (completed, max_rounds, provider_error)
        error: Failure description when success is False
    """

    kind: ClassVar[MessageKind] = MessageKind.RESULT

    success: bool = True
    duration_ms: float = 0.0
    total_cost_usd: float = 0.0
    usage: UsageStats = field(default_factory=UsageStats)
    rounds: int = 0
    stop_reason: str = "completed"
    error: str | None = None

