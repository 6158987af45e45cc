"""
Capability interfaces the runtime calls through.

Concrete provider integrations (LLM vendors, vector stores, MCP/OpenAPI
transports, OAuth flows) live outside the core and implement these.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MemoryEntry:
    """A single item returned from a memory query."""

    content: str
    score: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Credential:
    """Credential material attached to outbound calls."""

    scheme: str
    headers: dict[str, str] = field(default_factory=dict)
    expires_at: float | None = None


class ReasoningProvider(ABC):
    """
    Completion capability.

    Implementations raise ProviderUnavailable / ProviderTimeout /
    ProviderRejected from synod.errors; anything else is treated as
    unavailable.
    """

    name: str = "reasoning"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        settings: Mapping[str, Any],
        credential: Credential | None = None,
    ) -> str:
        """
        Complete a rendered prompt.

        Args:
            prompt: Fully rendered prompt text
            settings: Merged model settings (kernel, function, agent)
            credential: Acquired from the kernel's `reasoning.authentication`

        Returns:
            Raw response text
        """
        ...


class EmbeddingProvider(ABC):
    name: str = "embedding"

    @abstractmethod
    async def embed(
        self, texts: list[str], credential: Credential | None = None
    ) -> list[list[float]]:
        ...


class MemoryProvider(ABC):
    name: str = "memory"

    @abstractmethod
    async def query(
        self, criteria: Mapping[str, Any], credential: Credential | None = None
    ) -> list[MemoryEntry]:
        """
        Query the memory.

        Args:
            criteria: At least `query` (text) and `limit` (int)
            credential: Acquired from the memory's `authentication`, if any

        Returns:
            Entries ordered by relevance
        """
        ...


class ToolsetTransport(ABC):
    """MCP / OpenAPI transport for the tools of one toolset."""

    name: str = "toolset"

    @abstractmethod
    async def invoke(
        self,
        tool_name: str,
        args: Mapping[str, Any],
        credential: Credential | None = None,
    ) -> Any:
        ...


class CredentialProvider(ABC):
    @abstractmethod
    def acquire(self, policy: Any) -> Credential:
        """Acquire a credential for an AuthenticationPolicy."""
        ...


@dataclass(frozen=True)
class AgentHandle:
    """A discovered remote agent: where to send and what it advertised."""

    endpoint: str
    name: str
    url: str
    card: dict[str, Any] = field(default_factory=dict)


class RemoteAgentChannel(ABC):
    """
    Transport to agents hosted elsewhere.

    Implementations raise RemoteAgentUnavailable / RemoteAgentTimeout.
    """

    @abstractmethod
    async def discover(
        self,
        endpoint: str,
        name: str | None = None,
        credential: Credential | None = None,
    ) -> AgentHandle:
        ...

    @abstractmethod
    async def send(
        self,
        handle: AgentHandle,
        messages: list[dict[str, Any]],
        credential: Credential | None = None,
    ) -> str:
        """
        Forward a conversation and return the agent's reply text.

        Args:
            handle: Handle returned by discover()
            messages: Ordered `{"role", "name", "content"}` messages
            credential: Headers to attach, if the channel is authenticated
        """
        ...

    async def close(self) -> None:
        return None
