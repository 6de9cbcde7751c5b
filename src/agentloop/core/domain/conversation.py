"""
Conversation state - the loop's working memory.

Messages are stored in the OpenAI chat format (role-tagged dicts), which is
what litellm accepts for every provider. The state is append-only within an
execution; starting a new session is the only way to reset it.
"""

from collections.abc import Iterable
from typing import Any

VALID_ROLES = frozenset({"system", "user", "assistant", "tool"})


class ConversationState:
    """Ordered, append-only sequence of role-tagged chat messages."""

    def __init__(self, messages: Iterable[dict[str, Any]] | None = None):
        self._messages: list[dict[str, Any]] = []
        for message in messages or ():
            self.append(message)

    @classmethod
    def from_input(
        cls, prompt_or_history: "str | Iterable[dict[str, Any]] | ConversationState"
    ) -> "ConversationState":
        """
        Build a conversation from a prompt string or an existing history.

        A ConversationState is returned as-is so the caller's session state
        keeps receiving the appended messages.
        """
        if isinstance(prompt_or_history, ConversationState):
            return prompt_or_history
        if isinstance(prompt_or_history, str):
            state = cls()
            state.append_user(prompt_or_history)
            return state
        return cls(prompt_or_history)

    def append(self, message: dict[str, Any]) -> None:
        role = message.get("role")
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid message role: {role!r}")
        self._messages.append(dict(message))

    def append_user(self, content: str) -> None:
        self.append({"role": "user", "content": content})

    def append_assistant(
        self,
        content: str | None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> None:
        message: dict[str, Any] = {"role": "assistant", "content": content}
        if tool_calls:
            message["tool_calls"] = tool_calls
        self.append(message)

    @property
    def messages(self) -> list[dict[str, Any]]:
        """Copy of the message list, safe to hand to a provider."""
        return [dict(m) for m in self._messages]

    @property
    def last_assistant_text(self) -> str:
        for message in reversed(self._messages):
            if message["role"] == "assistant" and message.get("content"):
                return message["content"]
        return ""

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self.messages)
