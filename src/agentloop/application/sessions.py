from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

import structlog

from agentloop.core.domain.conversation import ConversationState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """
    Represents a caller-visible conversation in the session store.

    Attributes:
        session_id (str): The unique identifier for the session.
        working_directory (Path): The sandbox root used for this session's tool calls.
        conversation (ConversationState): The accumulated conversation.
        created_at (datetime): When the session was created (UTC).
        last_activity (datetime): When the session was last used (UTC).
        turns (int): Number of completed executions on this session.
    """

    session_id: str
    working_directory: Path
    conversation: ConversationState = field(default_factory=ConversationState)
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    turns: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def is_busy(self) -> bool:
        return self.lock.locked()

    def touch(self) -> None:
        self.last_activity = _utcnow()


class SessionStore:
    """
    Manages the lifecycle of sessions in memory.

    Sessions are created on first use of an id and removed only by an
    explicit ``cleanup`` call; there is no background reaper.
    """

    def __init__(self) -> None:
        self._items: dict[str, Session] = {}
        self.logger = structlog.get_logger().bind(component="session_store")

    def get_or_create(self, session_id: str, working_directory: str | Path) -> Session:
        """
        Returns the session for ``session_id``, creating it on first use.

        Args:
            session_id (str): The session identifier.
            working_directory (str | Path): Sandbox root for a newly created session.

        Returns:
            Session: The existing or newly created session, with its activity timestamp refreshed.
        """
        session = self._items.get(session_id)
        if session is None:
            session = Session(session_id=session_id, working_directory=Path(working_directory).resolve())
            self._items[session_id] = session
            self.logger.info(
                "session_created",
                session_id=session_id,
                working_directory=str(session.working_directory),
            )
        else:
            session.touch()
        return session

    def get(self, session_id: str) -> Session | None:
        return self._items.get(session_id)

    def list(self) -> list[Session]:
        return list(self._items.values())

    def cleanup(self, max_age_seconds: float) -> int:
        """
        Removes idle sessions whose last activity is older than ``max_age_seconds``.

        Sessions with an execution in flight are never removed.

        Returns:
            int: Number of sessions removed.
        """
        cutoff = _utcnow() - timedelta(seconds=max_age_seconds)
        expired = [
            sid
            for sid, session in self._items.items()
            if session.last_activity < cutoff and not session.is_busy
        ]
        for sid in expired:
            del self._items[sid]
        if expired:
            self.logger.info("sessions_cleaned_up", removed=len(expired), remaining=len(self._items))
        return len(expired)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._items
