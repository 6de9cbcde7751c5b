"""
Model Response Normalizer - provider stream chunks to canonical messages.

A normalizer is created per round and is stateful: it accumulates partial
tool-call argument text and attempts a JSON parse on every delta, emitting a
STREAMING tool-call update only when the accumulated text parses to a new
value. Calls are completed either by an atomic tool-call event or when the
provider finishes the turn; a final parse failure is carried on the
completed call as ``argument_error`` rather than raised.

Two native shapes are supported:
- chat_completions: OpenAI style streaming chunks (what litellm yields for
  every backend): choices[0].delta.content / .tool_calls, finish_reason,
  and a trailing usage chunk.
- events: typed event dicts (text-delta, tool-call-streaming-start,
  tool-call-delta, tool-call, tool-result, finish, error, step-start,
  step-finish) for providers that already stream discrete events.
"""

import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from agentloop.core.domain.messages import (
    CanonicalMessage,
    ErrorMessage,
    TextMessage,
    ToolCallMessage,
    ToolCallStatus,
    ToolResultMessage,
    TurnFinishedMessage,
    UsageStats,
)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a dict or an attribute-style object."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _pick(event: dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if event.get(name) is not None:
            return event[name]
    return default


def usage_from(raw: Any) -> UsageStats:
    """Build UsageStats from OpenAI (snake_case) or camelCase usage payloads."""
    if raw is None:
        return UsageStats()
    prompt = _field(raw, "prompt_tokens") or _field(raw, "promptTokens") or _field(raw, "input_tokens") or 0
    completion = (
        _field(raw, "completion_tokens") or _field(raw, "completionTokens") or _field(raw, "output_tokens") or 0
    )
    total = _field(raw, "total_tokens") or _field(raw, "totalTokens") or (prompt + completion)
    return UsageStats(prompt_tokens=int(prompt), completion_tokens=int(completion), total_tokens=int(total))


@dataclass
class _PendingCall:
    tool_call_id: str = ""
    tool_name: str = ""
    raw_arguments: str = ""
    last_parsed: dict[str, Any] | None = None
    started: bool = False
    completed: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


class StreamNormalizer:
    """Shared tool-call accumulation for all native stream shapes."""

    def __init__(self, session_id: str, logger: Any = None):
        self.session_id = session_id
        self.logger = (logger or structlog.get_logger()).bind(component="normalizer")
        self._calls: dict[Any, _PendingCall] = {}
        self._finish_reason: str | None = None
        self._usage = UsageStats()
        self._turn_finished_emitted = False

    def normalize(self, event: Any) -> list[CanonicalMessage]:
        raise NotImplementedError

    def flush(self) -> list[CanonicalMessage]:
        """Complete dangling tool calls and emit the turn-finished message."""
        messages = self._complete_pending()
        if not self._turn_finished_emitted:
            messages.append(self._turn_finished())
        return messages

    def _turn_finished(self) -> TurnFinishedMessage:
        self._turn_finished_emitted = True
        reason = self._finish_reason or ("tool_calls" if self._calls else "stop")
        return TurnFinishedMessage(session_id=self.session_id, reason=reason, usage=self._usage)

    def _start(self, call: _PendingCall) -> list[CanonicalMessage]:
        if call.started or not call.tool_name:
            return []
        call.started = True
        if not call.tool_call_id:
            call.tool_call_id = f"call_{uuid.uuid4().hex[:12]}"
        return [self._message(call, ToolCallStatus.STARTED, {})]

    def _append_arguments(self, call: _PendingCall, delta: str) -> list[CanonicalMessage]:
        """Accumulate argument text; emit an update only once it parses to a new value."""
        call.raw_arguments += delta
        messages = self._start(call)
        try:
            parsed = json.loads(call.raw_arguments)
        except json.JSONDecodeError:
            return messages
        if isinstance(parsed, dict) and parsed != call.last_parsed:
            call.last_parsed = parsed
            if call.started:
                messages.append(self._message(call, ToolCallStatus.STREAMING, parsed))
        return messages

    def _complete(self, call: _PendingCall, arguments: Any = None) -> list[CanonicalMessage]:
        if call.completed:
            return []
        messages = self._start(call)
        call.completed = True

        if isinstance(arguments, str):
            call.raw_arguments = arguments
            arguments = None

        argument_error = None
        if arguments is None:
            text = call.raw_arguments.strip()
            try:
                arguments = json.loads(text) if text else {}
            except json.JSONDecodeError as e:
                arguments = {}
                argument_error = f"Invalid JSON in tool arguments: {e}"
                self.logger.warning(
                    "tool_args_parse_failed",
                    tool=call.tool_name,
                    tool_call_id=call.tool_call_id,
                    raw_length=len(call.raw_arguments),
                )

        if not isinstance(arguments, dict):
            argument_error = "Tool arguments must be a JSON object"
            arguments = {}

        messages.append(self._message(call, ToolCallStatus.COMPLETE, arguments, argument_error))
        return messages

    def _complete_pending(self) -> list[CanonicalMessage]:
        messages: list[CanonicalMessage] = []
        for call in self._calls.values():
            if not call.completed and call.tool_name:
                messages.extend(self._complete(call))
        return messages

    def _message(
        self,
        call: _PendingCall,
        status: ToolCallStatus,
        arguments: dict[str, Any],
        argument_error: str | None = None,
    ) -> ToolCallMessage:
        return ToolCallMessage(
            session_id=self.session_id,
            tool_call_id=call.tool_call_id,
            tool_name=call.tool_name,
            arguments=dict(arguments),
            status=status,
            raw_arguments=call.raw_arguments,
            argument_error=argument_error,
        )


class ChatCompletionNormalizer(StreamNormalizer):
    """Normalizer for OpenAI style chat completion chunks (litellm)."""

    def normalize(self, event: Any) -> list[CanonicalMessage]:
        messages: list[CanonicalMessage] = []

        usage = _field(event, "usage")
        if usage:
            self._usage = usage_from(usage)

        choices = _field(event, "choices") or []
        if not choices:
            return messages
        choice = choices[0]

        delta = _field(choice, "delta")
        content = _field(delta, "content")
        if content:
            messages.append(TextMessage(session_id=self.session_id, text=content))

        for tool_delta in _field(delta, "tool_calls") or []:
            index = _field(tool_delta, "index")
            key = index if index is not None else len(self._calls)
            call = self._calls.setdefault(key, _PendingCall())
            call_id = _field(tool_delta, "id")
            if call_id:
                call.tool_call_id = call_id
            function = _field(tool_delta, "function")
            name = _field(function, "name")
            if name:
                call.tool_name = name
            messages.extend(self._append_arguments(call, _field(function, "arguments") or ""))

        finish_reason = _field(choice, "finish_reason")
        if finish_reason:
            self._finish_reason = finish_reason
            messages.extend(self._complete_pending())

        return messages


class EventStreamNormalizer(StreamNormalizer):
    """Normalizer for streams of typed event dicts."""

    IGNORED_EVENTS = frozenset({"step-start", "step-finish", "reasoning", "source"})

    def normalize(self, event: Any) -> list[CanonicalMessage]:
        if not isinstance(event, dict):
            self.logger.warning("normalizer_unknown_event", event_type=type(event).__name__)
            return []

        event_type = event.get("type")
        if event_type == "text-delta":
            text = _pick(event, "textDelta", "text_delta", "text", "delta", default="")
            return [TextMessage(session_id=self.session_id, text=text)] if text else []

        if event_type == "tool-call-streaming-start":
            call = self._call_for(event)
            return self._start(call)

        if event_type == "tool-call-delta":
            call = self._call_for(event)
            return self._append_arguments(
                call, _pick(event, "argsTextDelta", "args_text_delta", "delta", default="")
            )

        if event_type == "tool-call":
            call = self._call_for(event)
            return self._complete(call, _pick(event, "args", "arguments", "input"))

        if event_type == "tool-result":
            result = _pick(event, "result", "output", default={})
            payload = result if isinstance(result, dict) else {"result": result}
            return [
                ToolResultMessage(
                    session_id=self.session_id,
                    tool_call_id=_pick(event, "toolCallId", "tool_call_id", default=""),
                    tool_name=_pick(event, "toolName", "tool_name", default=""),
                    payload=payload,
                    is_error=bool(_pick(event, "isError", "is_error", default=False)),
                )
            ]

        if event_type == "finish":
            self._finish_reason = _pick(event, "finishReason", "finish_reason", default="stop")
            self._usage = usage_from(event.get("usage"))
            return self._complete_pending() + [self._turn_finished()]

        if event_type == "error":
            error = event.get("error")
            message = _pick(error, "message") if isinstance(error, dict) else error
            return [ErrorMessage(session_id=self.session_id, message=str(message or "Unknown provider error"))]

        if event_type in self.IGNORED_EVENTS:
            self.logger.debug("normalizer_event_ignored", event_type=event_type)
            return []

        self.logger.warning("normalizer_unknown_event", event_type=event_type)
        return []

    def _call_for(self, event: dict[str, Any]) -> _PendingCall:
        call_id = _pick(event, "toolCallId", "tool_call_id", "id", default="")
        call = self._calls.get(call_id)
        if call is None:
            call = self._calls[call_id] = _PendingCall(tool_call_id=call_id)
        name = _pick(event, "toolName", "tool_name", "name")
        if name:
            call.tool_name = name
        return call


NORMALIZERS: dict[str, type[StreamNormalizer]] = {
    "chat_completions": ChatCompletionNormalizer,
    "events": EventStreamNormalizer,
}


def create_normalizer(kind: str, session_id: str, logger: Any = None) -> StreamNormalizer:
    """Instantiate a registered normalizer by name."""
    try:
        normalizer_cls = NORMALIZERS[kind]
    except KeyError:
        raise ValueError(
            f"Unknown normalizer '{kind}'. Available: {', '.join(sorted(NORMALIZERS))}"
        ) from None
    return normalizer_cls(session_id=session_id, logger=logger)
