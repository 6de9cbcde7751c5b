"""
Execution context shared by the loop and every tool call.

The context is immutable for the lifetime of one execute() call. Tools read
the working directory (the sandbox boundary) and the injected logger from
it; the loop polls the cancellation token at its suspension points.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog


class CancellationToken:
    """
    Cooperative cancellation handle for one execution.

    The loop polls ``cancelled`` before consuming each provider event and
    before each tool dispatch, and awaits ``wait()`` while a tool is running
    so it can stop waiting on it.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Cancelled by caller") -> None:
        """Signal cancellation. Repeated calls keep the first reason."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class ExecutionContext:
    """
    Read-only bundle passed to every tool invocation.

    Attributes:
        working_directory: Absolute, resolved sandbox root
        session_id: Opaque identifier of the conversation
        cancellation: Optional cancellation handle for the execution
        logger: Bound structlog logger used instead of a global channel
    """

    working_directory: Path
    session_id: str
    cancellation: CancellationToken | None = None
    logger: Any = field(default_factory=lambda: structlog.get_logger())

    @classmethod
    def create(
        cls,
        working_directory: str | Path,
        session_id: str,
        cancellation: CancellationToken | None = None,
        logger: Any = None,
    ) -> "ExecutionContext":
        """Build a context with a resolved working directory and session-bound logger."""
        base_logger = logger or structlog.get_logger()
        return cls(
            working_directory=Path(working_directory).resolve(),
            session_id=session_id,
            cancellation=cancellation,
            logger=base_logger.bind(session_id=session_id),
        )

    @property
    def is_cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.cancelled
