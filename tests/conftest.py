"""Pytest configuration for Synod (src layout) and shared fixtures."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import structlog


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[1]
    src_root = project_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture(autouse=True)
def _reset_logging():
    """CLI tests configure structlog against a captured stream; undo that."""
    yield
    structlog.reset_defaults()


class ScriptedProvider:
    """
    Reasoning provider driven by a script.

    `script` is either a list consumed in order (exceptions are raised) or a
    callable taking the prompt.
    """

    name = "scripted"

    def __init__(self, script: list[Any] | Callable[[str], Any], delay: float = 0.0) -> None:
        self.script = script
        self.delay = delay
        self.prompts: list[str] = []
        self.settings: list[dict[str, Any]] = []
        self.credentials: list[Any] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, prompt: str, settings: Any, credential: Any = None) -> str:
        self.prompts.append(prompt)
        self.settings.append(dict(settings))
        self.credentials.append(credential)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if callable(self.script):
                item = self.script(prompt)
            else:
                assert self.script, "scripted provider ran out of responses"
                item = self.script.pop(0)
        finally:
            self.in_flight -= 1
        if isinstance(item, BaseException):
            raise item
        return item

    @property
    def calls(self) -> int:
        return len(self.prompts)


class FakeChannel:
    """Remote agent channel answering from a name -> reply (or exception) map."""

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies = dict(replies or {})
        self.discovered: list[tuple[str, str | None]] = []
        self.sent: list[tuple[str, list[dict[str, Any]], Any]] = []
        self.closed = False

    async def discover(self, endpoint: str, name: str | None = None, credential: Any = None):
        from synod.providers.base import AgentHandle

        self.discovered.append((endpoint, name))
        return AgentHandle(endpoint=endpoint, name=name or "remote", url=f"{endpoint}/rpc")

    async def send(self, handle: Any, messages: list[dict[str, Any]], credential: Any = None):
        self.sent.append((handle.name, messages, credential))
        reply = self.replies.get(handle.name, "ok")
        if isinstance(reply, BaseException):
            raise reply
        return reply(messages) if callable(reply) else reply

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def scripted() -> type[ScriptedProvider]:
    return ScriptedProvider


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def providers() -> dict[str, ScriptedProvider]:
    """Scripted providers keyed by the kernel's `model` name."""
    return {}


@pytest.fixture
def registry(providers: dict[str, ScriptedProvider], tmp_path: Path):
    """Capability registry whose `scripted` provider looks up `providers[model]`."""
    from synod.errors import ProviderUnavailable
    from synod.providers.registry import CapabilityRegistry

    registry = CapabilityRegistry(base_dir=tmp_path, env={}, load_entry_points=False)

    def factory(spec: Any, _registry: Any) -> ScriptedProvider:
        key = spec.model or "default"
        if key not in providers:
            raise ProviderUnavailable(f"no scripted provider {key!r}", "scripted", retryable=False)
        return providers[key]

    registry.register_reasoning("scripted", factory)
    return registry


def kernel(model: str = "default") -> dict[str, Any]:
    return {"reasoning": {"provider": "scripted", "model": model}}


@pytest.fixture
def scripted_kernel() -> Callable[[str], dict[str, Any]]:
    """Inline kernel definition bound to `providers[model]`."""
    return kernel
