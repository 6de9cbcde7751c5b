"""
Application Layer - Agent Executor Service

Caller boundary around AgentLoop. The executor owns the session store,
folds every execution into its session's conversation and turns the
canonical message list into an ExecutionResult. The CLI and embedding
applications both go through it.
"""

import uuid
from collections.abc import Callable
from pathlib import Path

import structlog

from agentloop.application.sessions import Session, SessionStore
from agentloop.core.domain.agent_loop import (
    DEFAULT_MAX_ROUNDS,
    AgentLoop,
    ExecutionOptions,
    MessageCallback,
)
from agentloop.core.domain.context import CancellationToken
from agentloop.core.domain.errors import (
    AgentLoopError,
    SessionBusyError,
    SessionNotFoundError,
)
from agentloop.core.domain.models import ExecutionResult

logger = structlog.get_logger()


class AgentExecutor:
    """
    Service layer orchestrating loop executions over sessions.

    The loop is built lazily from ``loop_factory`` on first use, so a
    missing provider credential surfaces when something is executed rather
    than at construction time.
    """

    def __init__(
        self,
        loop_factory: Callable[[], AgentLoop],
        session_store: SessionStore | None = None,
        default_max_rounds: int = DEFAULT_MAX_ROUNDS,
        session_max_age_seconds: float = 24 * 60 * 60,
    ):
        """
        Initialize AgentExecutor.

        Args:
            loop_factory: Zero-argument callable returning a configured AgentLoop
            session_store: Store for sessions; a fresh in-memory store otherwise
            default_max_rounds: Round budget used when execute() gets none
            session_max_age_seconds: Idle time after which cleanup_sessions() drops a session
        """
        self.loop_factory = loop_factory
        self.sessions = session_store if session_store is not None else SessionStore()
        self.default_max_rounds = default_max_rounds
        self.session_max_age_seconds = session_max_age_seconds
        self.logger = logger.bind(component="agent_executor")
        self._loop: AgentLoop | None = None

    @property
    def loop(self) -> AgentLoop:
        if self._loop is None:
            self._loop = self.loop_factory()
        return self._loop

    def get_session(self, session_id: str, working_directory: str | Path = ".") -> Session:
        """Return the session for ``session_id``, creating it on first use."""
        return self.sessions.get_or_create(session_id, working_directory)

    def cleanup_sessions(self, max_age_seconds: float | None = None) -> int:
        """
        Remove sessions idle for longer than ``max_age_seconds``.

        Falls back to the executor's ``session_max_age_seconds``. Returns the
        number of sessions removed.
        """
        if max_age_seconds is None:
            max_age_seconds = self.session_max_age_seconds
        return self.sessions.cleanup(max_age_seconds)

    def available_tools(self) -> list[str]:
        return self.loop.registry.names()

    def is_ready(self) -> bool:
        """True when a loop can be built (provider configured, credential present)."""
        try:
            self.loop
        except AgentLoopError as e:
            self.logger.warning("executor_not_ready", error=str(e))
            return False
        return True

    async def execute(
        self,
        prompt: str,
        session_id: str | None = None,
        working_directory: str | Path = ".",
        max_rounds: int | None = None,
        on_message: MessageCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ExecutionResult:
        """
        Run one prompt in a session and fold the turn into its conversation.

        Args:
            prompt: User prompt for this turn
            session_id: Existing or new session id; generated when omitted
            working_directory: Sandbox root used when the session is created
            max_rounds: Round budget (1..10); the executor default otherwise
            on_message: Callback receiving each canonical message as it is emitted
            cancellation: Cooperative cancellation handle

        Returns:
            ExecutionResult summarizing the emitted messages

        Raises:
            SessionBusyError: If the session already has an execution in flight
            ExecutionFailedError: If the provider failed before streaming began
            ProviderConfigurationError: If the provider cannot be built
        """
        session_id = session_id or str(uuid.uuid4())
        session = self.sessions.get_or_create(session_id, working_directory)
        return await self._run(session, prompt, max_rounds, on_message, cancellation)

    async def continue_conversation(
        self,
        session_id: str,
        prompt: str,
        max_rounds: int | None = None,
        on_message: MessageCallback | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ExecutionResult:
        """
        Run a follow-up prompt in an existing session.

        Raises:
            SessionNotFoundError: If no session with this id exists
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.touch()
        return await self._run(session, prompt, max_rounds, on_message, cancellation)

    async def _run(
        self,
        session: Session,
        prompt: str,
        max_rounds: int | None,
        on_message: MessageCallback | None,
        cancellation: CancellationToken | None,
    ) -> ExecutionResult:
        if session.is_busy:
            raise SessionBusyError(f"Session {session.session_id} already has an execution in progress")

        options = ExecutionOptions(
            working_directory=session.working_directory,
            max_rounds=max_rounds if max_rounds is not None else self.default_max_rounds,
            on_message=on_message,
            cancellation=cancellation,
            session_id=session.session_id,
        )
        log = self.logger.bind(session_id=session.session_id)

        async with session.lock:
            loop = self.loop
            log.info("execution_started", prompt=prompt[:100], turn=session.turns + 1)
            session.conversation.append_user(prompt)
            try:
                messages = await loop.execute(session.conversation, options)
            except Exception as e:
                log.error("execution_failed", error=str(e), error_type=type(e).__name__)
                raise
            finally:
                session.touch()
            session.turns += 1

        result = ExecutionResult.from_messages(session.session_id, messages)
        log.info(
            "execution_completed",
            success=result.success,
            cancelled=result.cancelled,
            tools_used=len(result.tools_used),
            duration_ms=round(result.duration_ms, 2),
        )
        return result
