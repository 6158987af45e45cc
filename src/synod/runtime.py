"""
Runtime - entry point tying a resolved manifest to the process engines.

Example:
    runtime = Runtime.from_manifest("agents.yaml")
    async with runtime:
        result = await runtime.run("refine-text", "The cat sat on the mat.")
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from synod.agents.a2a import A2AChannel
from synod.agents.invoker import AgentInvoker
from synod.config import RuntimeConfig
from synod.context import RunContext
from synod.kernel.binding import Sanitizer, strip_control_characters
from synod.kernel.invoker import KernelInvoker
from synod.manifest.loader import load_manifest
from synod.manifest.models import CollaborationProcess, ConvergenceProcess, ResolvedGraph
from synod.manifest.resolver import resolve_manifest
from synod.process.collaboration import CollaborationEngine
from synod.process.convergence import ConvergenceEngine
from synod.process.results import ProcessResult
from synod.process.strategies import StrategyEvaluator
from synod.providers.base import RemoteAgentChannel
from synod.providers.registry import CapabilityRegistry

logger = structlog.get_logger()

__all__ = ["Runtime", "resolve_manifest"]


class Runtime:
    """
    Executes processes of one resolved manifest.

    The resolved graph is shared read-only; each run owns its history and
    RunContext. A single semaphore bounds in-flight invocations across all
    concurrent runs of this runtime.
    """

    def __init__(
        self,
        graph: ResolvedGraph,
        config: RuntimeConfig | None = None,
        registry: CapabilityRegistry | None = None,
        channel: RemoteAgentChannel | None = None,
        sanitizer: Sanitizer | None = strip_control_characters,
    ) -> None:
        self.graph = graph
        self.config = config or RuntimeConfig()
        self.registry = registry or CapabilityRegistry()
        self.channel = channel if channel is not None else A2AChannel(
            timeout_seconds=self.config.invocation_timeout_seconds
        )
        self.kernel_invoker = KernelInvoker(
            self.registry, sanitizer=sanitizer, output_retry=self.config.output_retry
        )
        self.agent_invoker = AgentInvoker(self.registry, self.kernel_invoker, self.channel)
        self.evaluator = StrategyEvaluator(self.kernel_invoker)
        self.collaboration = CollaborationEngine(
            self.agent_invoker,
            self.evaluator,
            default_maximum_iterations=self.config.default_maximum_iterations,
        )
        self.convergence = ConvergenceEngine(self.agent_invoker, self.evaluator)
        self._semaphore: asyncio.Semaphore | None = None
        self._active: set[RunContext] = set()

    @classmethod
    def from_manifest(
        cls,
        path: str | Path,
        config: RuntimeConfig | None = None,
        **kwargs: Any,
    ) -> Runtime:
        """Load, resolve and wrap a manifest file; relative paths resolve from its directory."""
        path = Path(path)
        graph = resolve_manifest(load_manifest(path))
        kwargs.setdefault("registry", CapabilityRegistry(base_dir=path.parent))
        return cls(graph, config=config, **kwargs)

    async def __aenter__(self) -> Runtime:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.channel.close()

    def _context(self, process: str) -> RunContext:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.config.max_concurrency)
        return RunContext(
            semaphore=self._semaphore,
            invocation_timeout=self.config.invocation_timeout_seconds,
            run_timeout=self.config.run_timeout_seconds,
            retry_backoff=self.config.retry_backoff_seconds,
            process=process,
        )

    def _process(self, process: str | CollaborationProcess | ConvergenceProcess):
        if isinstance(process, str):
            return self.graph.process(process)
        return process

    def cancel(self) -> None:
        """Cancel every run in flight; each returns a CANCELLED result."""
        for context in list(self._active):
            context.cancel()

    async def _execute(self, engine: Any, process: Any, prompt: str) -> ProcessResult:
        context = self._context(process.name)
        self._active.add(context)
        try:
            result = await engine.run(process, prompt, context)
        finally:
            self._active.discard(context)
        logger.info(
            "Process finished",
            process=process.name,
            kind=process.kind,
            status=result.status.value,
            iterations=result.iterations,
            duration_ms=result.duration_ms,
        )
        return result

    async def run_collaboration(
        self, process: str | CollaborationProcess, prompt: str
    ) -> ProcessResult:
        resolved = self._process(process)
        if not isinstance(resolved, CollaborationProcess):
            raise TypeError(f"process {resolved.name!r} is not a collaboration")
        return await self._execute(self.collaboration, resolved, prompt)

    async def run_convergence(
        self, process: str | ConvergenceProcess, prompt: str
    ) -> ProcessResult:
        resolved = self._process(process)
        if not isinstance(resolved, ConvergenceProcess):
            raise TypeError(f"process {resolved.name!r} is not a convergence")
        return await self._execute(self.convergence, resolved, prompt)

    async def run(
        self, process: str | CollaborationProcess | ConvergenceProcess, prompt: str
    ) -> ProcessResult:
        """Run a process by name or instance, dispatching on its kind."""
        resolved = self._process(process)
        if isinstance(resolved, CollaborationProcess):
            return await self.run_collaboration(resolved, prompt)
        return await self.run_convergence(resolved, prompt)
