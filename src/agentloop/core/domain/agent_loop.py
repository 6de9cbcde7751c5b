"""
Agent Loop - tool-calling execution loop with streaming canonical messages.

One ``execute`` call runs a sequential state machine:

    Idle -> Requesting(n) -> Streaming(n) -> Dispatching(n)
         -> Requesting(n+1) | Finished | Cancelled | Failed

Each round submits the conversation plus the registry's tool schemas to the
provider, normalizes the streamed chunks, dispatches completed tool calls
through the registry (sequentially, in arrival order) and folds the calls
and their results back into the conversation. The loop stops when the model
requests no tools, when the round budget is spent, on cancellation, or on a
provider error.

Every canonical message is handed to the optional ``on_message`` callback
as soon as it is produced, in causal order, and the complete list is
returned at the end.
"""

import asyncio
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from agentloop.core.domain.context import CancellationToken, ExecutionContext
from agentloop.core.domain.conversation import ConversationState
from agentloop.core.domain.errors import ExecutionFailedError
from agentloop.core.domain.messages import (
    CancelledMessage,
    CanonicalMessage,
    ErrorMessage,
    ResultMessage,
    TextMessage,
    ToolCallMessage,
    ToolResultMessage,
    TurnFinishedMessage,
    UsageStats,
)
from agentloop.core.domain.tools import ToolResult
from agentloop.core.interfaces.llm import ProviderProtocol
from agentloop.infrastructure.tools.registry import ToolRegistry
from agentloop.infrastructure.tools.tool_converter import (
    assistant_tool_calls_to_message,
    tool_result_to_message,
)

DEFAULT_MAX_ROUNDS = 5
MAX_ROUNDS_LIMIT = 10

MessageCallback = Callable[[CanonicalMessage], None]

# returned by _next_chunk when cancellation won the race
_CANCELLED = object()


class LoopState(str, Enum):
    """State of one execute() call."""

    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    DISPATCHING = "dispatching"
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ExecutionOptions:
    """
    Per-call options of AgentLoop.execute.

    Attributes:
        working_directory: Sandbox root for every tool call
        max_rounds: Round budget (1..10); one provider call per round
        on_message: Synchronous callback invoked for each canonical message
        cancellation: Cooperative cancellation handle
        session_id: Conversation id; generated when omitted
    """

    working_directory: str | Path
    max_rounds: int = DEFAULT_MAX_ROUNDS
    on_message: MessageCallback | None = None
    cancellation: CancellationToken | None = None
    session_id: str | None = None

    def __post_init__(self) -> None:
        if (
            isinstance(self.max_rounds, bool)
            or not isinstance(self.max_rounds, int)
            or not 1 <= self.max_rounds <= MAX_ROUNDS_LIMIT
        ):
            raise ValueError(f"max_rounds must be an integer between 1 and {MAX_ROUNDS_LIMIT}")


@dataclass
class _Run:
    """Mutable bookkeeping for one execute() call."""

    session_id: str
    logger: Any
    on_message: MessageCallback | None = None
    messages: list[CanonicalMessage] = field(default_factory=list)
    state: LoopState = LoopState.IDLE
    rounds: int = 0
    usage: UsageStats = field(default_factory=UsageStats)
    started: float = field(default_factory=time.perf_counter)

    def emit(self, message: CanonicalMessage) -> None:
        self.messages.append(message)
        if self.on_message is not None:
            self.on_message(message)

    @property
    def duration_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


@dataclass
class _RoundOutcome:
    text: str = ""
    tool_calls: list[ToolCallMessage] = field(default_factory=list)
    turn_finished: TurnFinishedMessage | None = None
    error: str | None = None
    cancelled: bool = False


class AgentLoop:
    """
    Provider-agnostic tool-calling loop.

    The loop holds no per-execution state on the instance, so one AgentLoop
    can serve several sessions concurrently; each execute() call owns its
    conversation exclusively.
    """

    def __init__(
        self,
        provider: ProviderProtocol,
        registry: ToolRegistry,
        system_prompt: str | None = None,
        logger: Any = None,
        max_output_chars: int = 20000,
    ):
        """
        Initialize the loop with injected collaborators.

        Args:
            provider: Streaming model backend with its normalizer
            registry: Tools available to the model (read-only after startup)
            system_prompt: System prompt sent with every round
            logger: structlog logger; a component-bound default is used otherwise
            max_output_chars: Per-field cap for tool output fed back to the model
        """
        self.provider = provider
        self.registry = registry
        self.system_prompt = system_prompt
        self.max_output_chars = max_output_chars
        self.logger = (logger or structlog.get_logger()).bind(component="agent_loop")
        # tool executions left running after a cancellation
        self._background: set[asyncio.Task] = set()

    async def execute(
        self,
        prompt_or_history: "str | Iterable[dict[str, Any]] | ConversationState",
        options: ExecutionOptions,
    ) -> list[CanonicalMessage]:
        """
        Run the loop until the model stops requesting tools.

        Args:
            prompt_or_history: User prompt, chat history, or a ConversationState
                that receives the appended messages
            options: Working directory, round budget, callback, cancellation

        Returns:
            All canonical messages of this call, ending with a ResultMessage
            or a CancelledMessage.

        Raises:
            ExecutionFailedError: When the provider fails before streaming
                anything in a round (missing credentials, network failure).
        """
        session_id = options.session_id or str(uuid.uuid4())
        logger = self.logger.bind(session_id=session_id)
        context = ExecutionContext.create(
            options.working_directory, session_id, options.cancellation, logger
        )
        conversation = ConversationState.from_input(prompt_or_history)
        run = _Run(session_id=session_id, logger=logger, on_message=options.on_message)
        tool_schemas = self.registry.list_schemas()

        logger.info(
            "execute_start",
            max_rounds=options.max_rounds,
            working_directory=str(context.working_directory),
            tools=self.registry.names(),
            history_length=len(conversation),
        )

        for round_number in range(1, options.max_rounds + 1):
            if context.is_cancelled:
                return self._cancelled(run, context)

            run.rounds = round_number
            outcome = await self._stream_round(run, conversation, tool_schemas, context)

            if outcome.cancelled:
                self._commit_round(conversation, outcome.text, [], [])
                return self._cancelled(run, context)

            if outcome.error:
                self._commit_round(conversation, outcome.text, [], [])
                return self._finish(run, success=False, stop_reason="provider_error", error=outcome.error)

            answered, tool_messages, cancelled = await self._dispatch(run, outcome.tool_calls, context)
            self._commit_round(conversation, outcome.text, answered, tool_messages)
            if cancelled:
                return self._cancelled(run, context)

            turn_finished = outcome.turn_finished or TurnFinishedMessage(
                session_id=session_id,
                reason="tool_calls" if outcome.tool_calls else "stop",
            )
            run.usage = run.usage + turn_finished.usage
            run.emit(turn_finished)

            if not outcome.tool_calls:
                logger.info("final_answer_received", round=round_number)
                return self._finish(run, success=True, stop_reason="completed")

        logger.warning("max_rounds_reached", max_rounds=options.max_rounds)
        return self._finish(
            run,
            success=False,
            stop_reason="max_rounds",
            error=f"Exceeded maximum rounds ({options.max_rounds})",
        )

    async def _stream_round(
        self,
        run: _Run,
        conversation: ConversationState,
        tool_schemas: list[dict[str, Any]],
        context: ExecutionContext,
    ) -> _RoundOutcome:
        """Requesting + Streaming: consume one provider response."""
        logger = run.logger
        run.state = LoopState.REQUESTING
        logger.info("round_start", round=run.rounds, conversation_length=len(conversation))

        outcome = _RoundOutcome()
        text_parts: list[str] = []
        normalizer = self.provider.create_normalizer(run.session_id, logger)
        stream = self.provider.stream(self.system_prompt, conversation.messages, tool_schemas)
        received_any = False

        def handle(message: CanonicalMessage) -> None:
            if isinstance(message, TurnFinishedMessage):
                # held back until every tool result of the round is out
                outcome.turn_finished = message
                return
            run.emit(message)
            if isinstance(message, TextMessage):
                text_parts.append(message.text)
            elif isinstance(message, ToolCallMessage):
                if message.is_complete:
                    outcome.tool_calls.append(message)
            elif isinstance(message, ErrorMessage):
                outcome.error = message.message
            elif not isinstance(message, ToolResultMessage):
                logger.warning("unexpected_message_kind", kind=message.kind.value)

        iterator = stream.__aiter__()
        try:
            while True:
                if context.is_cancelled:
                    outcome.cancelled = True
                    break
                try:
                    chunk = await self._next_chunk(iterator, context)
                except StopAsyncIteration:
                    for message in normalizer.flush():
                        handle(message)
                    break
                if chunk is _CANCELLED:
                    outcome.cancelled = True
                    break
                if not received_any:
                    received_any = True
                    run.state = LoopState.STREAMING
                for message in normalizer.normalize(chunk):
                    handle(message)
                if outcome.error:
                    break
        except Exception as e:
            if not received_any:
                run.state = LoopState.FAILED
                logger.error("provider_failed", round=run.rounds, error=str(e))
                run.emit(ErrorMessage(session_id=run.session_id, message=str(e)))
                raise ExecutionFailedError(str(e), messages=run.messages) from e
            logger.error("stream_error", round=run.rounds, error=str(e))
            run.emit(ErrorMessage(session_id=run.session_id, message=str(e)))
            outcome.error = str(e)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        outcome.text = "".join(text_parts)
        if outcome.tool_calls:
            logger.info(
                "tool_calls_received",
                round=run.rounds,
                count=len(outcome.tool_calls),
                tools=[call.tool_name for call in outcome.tool_calls],
            )
        return outcome

    async def _dispatch(
        self,
        run: _Run,
        tool_calls: list[ToolCallMessage],
        context: ExecutionContext,
    ) -> tuple[list[ToolCallMessage], list[dict[str, Any]], bool]:
        """
        Dispatching: execute pending calls sequentially.

        Returns:
            (answered calls, tool chat messages, cancelled flag)
        """
        run.state = LoopState.DISPATCHING
        answered: list[ToolCallMessage] = []
        tool_messages: list[dict[str, Any]] = []

        for call in tool_calls:
            if context.is_cancelled:
                return answered, tool_messages, True

            if call.argument_error:
                result = ToolResult.fail(call.argument_error)
            else:
                result = await self._run_tool(call, context)
                if result is None or context.is_cancelled:
                    run.logger.info("tool_result_discarded", tool=call.tool_name, tool_call_id=call.tool_call_id)
                    return answered, tool_messages, True

            payload = result.to_payload()
            if not result.success:
                run.logger.warning("tool_failed", round=run.rounds, tool=call.tool_name, error=result.error)

            run.emit(
                ToolResultMessage(
                    session_id=run.session_id,
                    tool_call_id=call.tool_call_id,
                    tool_name=call.tool_name,
                    payload=payload,
                    is_error=not result.success,
                )
            )
            answered.append(call)
            tool_messages.append(
                tool_result_to_message(call.tool_call_id, call.tool_name, payload, self.max_output_chars)
            )

        return answered, tool_messages, False

    async def _next_chunk(self, iterator: Any, context: ExecutionContext) -> Any:
        """Next provider chunk, or _CANCELLED when cancellation fires first."""
        if context.cancellation is None:
            return await iterator.__anext__()

        pending = asyncio.ensure_future(iterator.__anext__())
        waiter = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if pending in done:
            return pending.result()

        # the stream must be idle again before it can be closed
        pending.cancel()
        await asyncio.wait({pending})
        return _CANCELLED

    async def _run_tool(self, call: ToolCallMessage, context: ExecutionContext) -> ToolResult | None:
        """Run one tool; returns None when cancellation fired while it was running."""
        invocation = asyncio.ensure_future(
            self.registry.invoke(call.tool_name, call.arguments, context)
        )
        if context.cancellation is None:
            return await invocation

        waiter = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait({invocation, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if invocation in done:
            return invocation.result()

        # no preemption: the tool keeps running, its result is never folded in
        self._background.add(invocation)
        invocation.add_done_callback(self._background.discard)
        return None

    @staticmethod
    def _commit_round(
        conversation: ConversationState,
        text: str,
        answered: list[ToolCallMessage],
        tool_messages: list[dict[str, Any]],
    ) -> None:
        """Fold one round into the conversation: assistant message, then its tool results."""
        if not text and not answered:
            return
        conversation.append(assistant_tool_calls_to_message(text, answered))
        for message in tool_messages:
            conversation.append(message)

    def _finish(
        self,
        run: _Run,
        success: bool,
        stop_reason: str,
        error: str | None = None,
    ) -> list[CanonicalMessage]:
        run.state = LoopState.FINISHED
        cost = self.provider.estimate_cost(run.usage)
        run.emit(
            ResultMessage(
                session_id=run.session_id,
                success=success,
                duration_ms=run.duration_ms,
                total_cost_usd=cost,
                usage=run.usage,
                rounds=run.rounds,
                stop_reason=stop_reason,
                error=error,
            )
        )
        run.logger.info(
            "execute_complete",
            success=success,
            stop_reason=stop_reason,
            rounds=run.rounds,
            duration_ms=round(run.duration_ms, 2),
            total_tokens=run.usage.total_tokens,
        )
        return run.messages

    def _cancelled(self, run: _Run, context: ExecutionContext) -> list[CanonicalMessage]:
        run.state = LoopState.CANCELLED
        reason = (context.cancellation.reason if context.cancellation else None) or "Cancelled by caller"
        run.emit(CancelledMessage(session_id=run.session_id, reason=reason))
        run.logger.info("execute_cancelled", rounds=run.rounds, reason=reason)
        return run.messages
