"""
Toolsets reachable from a hosted agent's turn.

Tools are addressed as `<toolset>.<tool>`. The agent calls one by answering
with only a JSON object:

    {"tool": "catalog.lookup", "arguments": {"term": "photosynthesis"}}

The invoker runs the call through the toolset's transport, appends the
result to the prompt and asks the kernel again.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from synod.context import RunContext
from synod.kernel.output import strip_fences
from synod.manifest.models import HostedAgent, McpToolset, OpenApiToolset, ResolvedKernel
from synod.providers.registry import CapabilityRegistry

logger = structlog.get_logger()

CALL_FORMAT = '{"tool": "<toolset>.<tool>", "arguments": {...}}'


@dataclass(frozen=True)
class ToolCall:
    toolset: str
    tool: str
    arguments: dict[str, Any] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        return f"{self.toolset}.{self.tool}"


class Toolbox:
    """
    The toolsets one agent may call.

    Agent toolsets come before the kernel's; a toolset name declared on
    both resolves to the agent's.
    """

    def __init__(
        self,
        toolsets: list[McpToolset | OpenApiToolset],
        registry: CapabilityRegistry,
    ) -> None:
        self.registry = registry
        self.toolsets: dict[str, McpToolset | OpenApiToolset] = {}
        for toolset in toolsets:
            self.toolsets.setdefault(toolset.name, toolset)

    @classmethod
    def for_agent(
        cls, agent: HostedAgent, kernel: ResolvedKernel, registry: CapabilityRegistry
    ) -> Toolbox:
        return cls([*agent.toolsets, *kernel.toolsets], registry)

    def __bool__(self) -> bool:
        return bool(self.toolsets)

    def describe(self) -> str:
        """Prompt section body listing toolsets, their tools and the call format."""
        lines: list[str] = []
        for toolset in self.toolsets.values():
            summary = f"- {toolset.name}"
            if toolset.description:
                summary += f": {toolset.description}"
            lines.append(summary)
            lines.extend(f"  - {toolset.name}.{tool}" for tool in toolset.tools)
        lines.append("")
        lines.append(f"To call a tool, answer with only {CALL_FORMAT}")
        return "\n".join(lines)

    def parse_call(self, text: str) -> ToolCall | None:
        """The tool call an answer requests, or None for an ordinary reply."""
        try:
            data = json.loads(strip_fences(text))
        except json.JSONDecodeError:
            return None
        if not isinstance(data, Mapping) or not isinstance(data.get("tool"), str):
            return None
        toolset, _, tool = data["tool"].partition(".")
        arguments = data.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            arguments = {"input": arguments}
        return ToolCall(toolset=toolset, tool=tool, arguments=dict(arguments))

    def _known(self, call: ToolCall) -> McpToolset | OpenApiToolset | None:
        toolset = self.toolsets.get(call.toolset)
        if toolset is None or not call.tool:
            return None
        if toolset.tools and call.tool not in toolset.tools:
            return None
        return toolset

    async def call(self, call: ToolCall, context: RunContext, agent: str | None = None) -> str:
        """
        Run a tool call and render its result as prompt text.

        Unknown tools are reported back to the agent instead of failing the
        turn; transport failures propagate as provider errors.
        """
        toolset = self._known(call)
        if toolset is None:
            logger.warning("Agent requested an unknown tool", agent=agent, tool=call.qualified_name)
            return f"error: unknown tool {call.qualified_name!r}"

        transport = self.registry.toolset(toolset)
        credential = self.registry.component_credential(toolset)
        result = await context.call_provider(
            lambda: transport.invoke(call.tool, call.arguments, credential),
            transport.name,
            agent=agent,
            tool=call.qualified_name,
        )
        logger.debug("Tool called", agent=agent, tool=call.qualified_name)
        if isinstance(result, str):
            return result
        return json.dumps(result, ensure_ascii=False, default=str)
