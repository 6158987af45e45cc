"""
Capability registry - maps provider names to capability factories.

Factories are looked up by the `provider:` field of a kernel's
`reasoning` / `embedding` block, by `kind` for static and file memories,
by `provider` for key-value and vector memories and by `kind` for
toolsets. Third-party packages contribute factories through the
`synod.providers` entry-point group; each entry point resolves to a
callable taking the registry.

Lookups are lazy: an unknown provider only fails (ProviderUnavailable)
when a run first needs it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any

import structlog

from synod.errors import CredentialError, ProviderUnavailable
from synod.manifest.models import (
    AuthenticationPolicy,
    EmbeddingSpec,
    FileMemory,
    ReasoningSpec,
    ResolvedKernel,
    StaticMemory,
)
from synod.providers.auth import EnvCredentialProvider
from synod.providers.base import (
    Credential,
    CredentialProvider,
    EmbeddingProvider,
    MemoryProvider,
    ReasoningProvider,
    ToolsetTransport,
)
from synod.providers.static import (
    FileMemoryProvider,
    StaticMemoryProvider,
    StaticReasoningProvider,
)

logger = structlog.get_logger()

ENTRY_POINT_GROUP = "synod.providers"

ReasoningFactory = Callable[[ReasoningSpec, "CapabilityRegistry"], ReasoningProvider]
EmbeddingFactory = Callable[[EmbeddingSpec, "CapabilityRegistry"], EmbeddingProvider]
MemoryFactory = Callable[[Any, "CapabilityRegistry"], MemoryProvider]
ToolsetFactory = Callable[[Any, "CapabilityRegistry"], ToolsetTransport]


class CapabilityRegistry:
    """
    Builds and caches provider capabilities for resolved components.

    Example:
        registry = CapabilityRegistry(base_dir=manifest_path.parent)
        registry.register_reasoning("scripted", lambda spec, reg: MyProvider(spec.settings))
        provider = registry.reasoning(kernel)
    """

    def __init__(
        self,
        base_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
        load_entry_points: bool = True,
    ) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self._reasoning: dict[str, ReasoningFactory] = {}
        self._embedding: dict[str, EmbeddingFactory] = {}
        self._memory: dict[str, MemoryFactory] = {}
        self._toolset: dict[str, ToolsetFactory] = {}
        self._credentials: dict[str, CredentialProvider] = {}
        # id(component) -> (component, capability); the component is held so ids stay unique
        self._cache: dict[tuple[str, int], tuple[Any, Any]] = {}
        self._entry_points_loaded = not load_entry_points

        self.register_reasoning(
            "static", lambda spec, _reg: StaticReasoningProvider.from_settings(spec.settings)
        )
        self.register_memory("static", lambda memory, _reg: StaticMemoryProvider(memory.entries))
        self.register_memory("file", self._file_memory)
        env_credentials = EnvCredentialProvider(env)
        for scheme in EnvCredentialProvider.SCHEMES:
            self.register_credentials(scheme, env_credentials)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_reasoning(self, provider: str, factory: ReasoningFactory) -> None:
        self._reasoning[provider] = factory

    def register_embedding(self, provider: str, factory: EmbeddingFactory) -> None:
        self._embedding[provider] = factory

    def register_memory(self, name: str, factory: MemoryFactory) -> None:
        """Register a memory factory under a memory kind or a backing provider name."""
        self._memory[name] = factory

    def register_toolset(self, kind: str, factory: ToolsetFactory) -> None:
        self._toolset[kind] = factory

    def register_credentials(self, scheme: str, provider: CredentialProvider) -> None:
        self._credentials[scheme] = provider

    def _load_entry_points(self) -> None:
        if self._entry_points_loaded:
            return
        self._entry_points_loaded = True
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                register = ep.load()
            except Exception as e:
                logger.warning(
                    "Failed to load provider entry point", entry_point=ep.name, error=str(e)
                )
                continue
            register(self)
            logger.debug("Loaded provider entry point", entry_point=ep.name)

    def _factory(self, table: dict[str, Any], name: str, capability: str) -> Any:
        if name not in table:
            self._load_entry_points()
        try:
            return table[name]
        except KeyError:
            raise ProviderUnavailable(
                f"no {capability} provider registered for {name!r}",
                name,
                retryable=False,
            ) from None

    def _cached(self, capability: str, component: Any, build: Callable[[], Any]) -> Any:
        key = (capability, id(component))
        hit = self._cache.get(key)
        if hit is not None and hit[0] is component:
            return hit[1]
        value = build()
        self._cache[key] = (component, value)
        return value

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def reasoning(self, kernel: ResolvedKernel) -> ReasoningProvider:
        """Reasoning capability for a kernel (built once per kernel)."""
        spec = kernel.reasoning
        if spec is None:
            raise ProviderUnavailable(
                f"kernel {kernel.name!r} declares no reasoning capability", retryable=False
            )
        factory = self._factory(self._reasoning, spec.provider, "reasoning")
        return self._cached("reasoning", kernel, lambda: factory(spec, self))

    def embedding(self, kernel: ResolvedKernel) -> EmbeddingProvider:
        spec = kernel.embedding
        if spec is None:
            raise ProviderUnavailable(
                f"kernel {kernel.name!r} declares no embedding capability", retryable=False
            )
        factory = self._factory(self._embedding, spec.provider, "embedding")
        return self._cached("embedding", kernel, lambda: factory(spec, self))

    def memory(self, memory: Any) -> MemoryProvider:
        if isinstance(memory, (StaticMemory, FileMemory)):
            name = memory.kind
        else:
            name = memory.provider
        factory = self._factory(self._memory, name, "memory")
        return self._cached("memory", memory, lambda: factory(memory, self))

    def toolset(self, toolset: Any) -> ToolsetTransport:
        factory = self._factory(self._toolset, toolset.kind, "toolset")
        return self._cached("toolset", toolset, lambda: factory(toolset, self))

    def credential(self, policy: AuthenticationPolicy | None) -> Credential | None:
        """Acquire a credential for a policy; None when no policy is set."""
        if policy is None:
            return None
        if policy.scheme not in self._credentials:
            self._load_entry_points()
        provider = self._credentials.get(policy.scheme)
        if provider is None:
            raise CredentialError(
                f"no credential provider registered for scheme {policy.scheme!r}",
                policy.name,
            )
        return provider.acquire(policy)

    def reasoning_credential(self, kernel: ResolvedKernel) -> Credential | None:
        """Credential for a kernel's `reasoning.authentication`, acquired per call."""
        return self.credential(kernel.reasoning.authentication if kernel.reasoning else None)

    def embedding_credential(self, kernel: ResolvedKernel) -> Credential | None:
        return self.credential(kernel.embedding.authentication if kernel.embedding else None)

    def component_credential(self, component: Any) -> Credential | None:
        """Credential for a memory or toolset; static and file memories carry no policy."""
        return self.credential(getattr(component, "authentication", None))

    def _file_memory(self, memory: FileMemory, _registry: CapabilityRegistry) -> FileMemoryProvider:
        path = Path(memory.path)
        if not path.is_absolute():
            path = self.base_dir / path
        return FileMemoryProvider(path, memory.format)
