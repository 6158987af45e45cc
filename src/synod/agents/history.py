"""
Chat history for one process run.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

USER = "user"
AGENT = "agent"


@dataclass(frozen=True)
class ChatMessage:
    role: str  # "user" or "agent"
    name: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "name": self.name, "content": self.content}


class ChatHistory:
    """
    Append-only transcript: the user prompt followed by agent turns in
    invocation order.
    """

    def __init__(self, messages: list[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = list(messages or [])

    @classmethod
    def from_prompt(cls, prompt: str, user: str = USER) -> ChatHistory:
        history = cls()
        history.add_user(prompt, user)
        return history

    def add_user(self, content: str, name: str = USER) -> ChatMessage:
        message = ChatMessage(role=USER, name=name, content=content)
        self._messages.append(message)
        return message

    def add(self, agent: str, content: str) -> ChatMessage:
        """Append an agent turn."""
        message = ChatMessage(role=AGENT, name=agent, content=content)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def turns(self) -> list[ChatMessage]:
        """Agent messages only."""
        return [m for m in self._messages if m.role == AGENT]

    @property
    def last(self) -> ChatMessage | None:
        return self._messages[-1] if self._messages else None

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._messages]

    def transcript(self) -> str:
        """`name: content` lines; a lone message is returned as its bare content."""
        if len(self._messages) == 1:
            return self._messages[0].content
        return "\n".join(f"{m.name}: {m.content}" for m in self._messages)
