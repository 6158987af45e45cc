"""
Providers - capability interfaces, built-ins and the registry.
"""

from synod.providers.auth import EnvCredentialProvider
from synod.providers.base import (
    AgentHandle,
    Credential,
    CredentialProvider,
    EmbeddingProvider,
    MemoryEntry,
    MemoryProvider,
    ReasoningProvider,
    RemoteAgentChannel,
    ToolsetTransport,
)
from synod.providers.registry import ENTRY_POINT_GROUP, CapabilityRegistry
from synod.providers.static import (
    FileMemoryProvider,
    StaticMemoryProvider,
    StaticReasoningProvider,
)

__all__ = [
    "AgentHandle",
    "CapabilityRegistry",
    "Credential",
    "CredentialProvider",
    "EmbeddingProvider",
    "ENTRY_POINT_GROUP",
    "EnvCredentialProvider",
    "FileMemoryProvider",
    "MemoryEntry",
    "MemoryProvider",
    "ReasoningProvider",
    "RemoteAgentChannel",
    "StaticMemoryProvider",
    "StaticReasoningProvider",
    "ToolsetTransport",
]
