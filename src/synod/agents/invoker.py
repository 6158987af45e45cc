"""
Agent Invoker - one conversational turn for a hosted or remote agent.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from synod.agents.history import ChatHistory
from synod.agents.tools import Toolbox
from synod.context import RunContext
from synod.errors import (
    InvalidDefinition,
    RemoteAgentTimeout,
    RemoteAgentUnavailable,
    SynodError,
)
from synod.kernel.invoker import KernelInvoker, complete, merged_settings
from synod.manifest.models import HostedAgent, KernelFunction, RemoteAgent, ResolvedKernel
from synod.providers.base import RemoteAgentChannel
from synod.providers.registry import CapabilityRegistry

logger = structlog.get_logger()

DEFAULT_MEMORY_LIMIT = 5
DEFAULT_TOOL_ROUNDS = 5


def build_prompt(
    agent: HostedAgent,
    history: ChatHistory,
    memories: list[str],
    tools: Toolbox | None = None,
) -> str:
    """
    Compose a hosted agent's prompt.

    Sections, each omitted when empty: instructions, skills, tools,
    retrieved memory, prior conversation and the message to respond to.
    """
    sections: list[str] = []
    if agent.instructions:
        sections.append(agent.instructions.strip())
    if agent.skills:
        lines = [
            f"- {skill.name}: {skill.description}" if skill.description else f"- {skill.name}"
            for skill in agent.skills
        ]
        sections.append("## Skills\n" + "\n".join(lines))
    if tools:
        sections.append("## Tools\n" + tools.describe())
    if memories:
        sections.append("## Context\n" + "\n".join(f"- {m}" for m in memories))

    messages = list(history)
    if len(messages) > 1:
        prior = "\n".join(f"{m.name}: {m.content}" for m in messages[:-1])
        sections.append("## Conversation\n" + prior)
    if messages:
        sections.append("## Respond to\n" + messages[-1].content)
    return "\n\n".join(sections)


class AgentInvoker:
    """
    Produces one response message per call.

    Hosted agents with a `function` go through the Kernel Invoker (history
    and instructions bound where the function declares them); other hosted
    agents complete a composed prompt on their kernel, calling tools from
    their toolsets for up to `max_tool_rounds` rounds. Remote agents go
    through the channel.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        kernel_invoker: KernelInvoker,
        channel: RemoteAgentChannel | None = None,
        memory_limit: int = DEFAULT_MEMORY_LIMIT,
        max_tool_rounds: int = DEFAULT_TOOL_ROUNDS,
    ) -> None:
        self.registry = registry
        self.kernel_invoker = kernel_invoker
        self.channel = channel
        self.memory_limit = memory_limit
        self.max_tool_rounds = max_tool_rounds

    async def invoke(
        self,
        agent: HostedAgent | RemoteAgent,
        history: ChatHistory,
        context: RunContext | None = None,
    ) -> str:
        context = context or RunContext()
        log = logger.bind(agent=agent.name, mode=agent.mode, process=context.process)
        log.debug("Invoking agent", messages=len(history))
        if isinstance(agent, RemoteAgent):
            return await self._invoke_remote(agent, history, context)
        if agent.function is not None:
            return await self._invoke_function(agent, agent.function, history, context)
        if agent.kernel is not None:
            return await self._invoke_kernel(agent, agent.kernel, history, context)
        raise InvalidDefinition("hosted agent needs a `kernel` or a `function`", agent.name)

    async def _invoke_function(
        self,
        agent: HostedAgent,
        function: KernelFunction,
        history: ChatHistory,
        context: RunContext,
    ) -> str:
        bindings: dict[str, Any] = {}
        if function.variable(agent.history_variable_name) is not None:
            bindings[agent.history_variable_name] = history.transcript()
        if agent.instructions and function.variable(agent.instructions_variable_name) is not None:
            bindings[agent.instructions_variable_name] = agent.instructions
        value = await self.kernel_invoker.invoke(
            function, bindings, context, kernel=agent.kernel or function.kernel
        )
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)

    async def _invoke_kernel(
        self,
        agent: HostedAgent,
        kernel: ResolvedKernel,
        history: ChatHistory,
        context: RunContext,
    ) -> str:
        memories = await self._recall(agent, history, context)
        toolbox = Toolbox.for_agent(agent, kernel, self.registry)
        prompt = build_prompt(agent, history, memories, toolbox)
        provider = self.registry.reasoning(kernel)
        settings = merged_settings(kernel, agent.settings)

        async def ask(text: str) -> str:
            credential = self.registry.reasoning_credential(kernel)
            return await complete(provider, text, settings, context, credential, agent=agent.name)

        reply = await ask(prompt)
        if not toolbox:
            return reply
        for _ in range(self.max_tool_rounds):
            call = toolbox.parse_call(reply)
            if call is None:
                return reply
            result = await toolbox.call(call, context, agent.name)
            prompt = f"{prompt}\n\n## Tool call\n{reply.strip()}\n\n## Tool result\n{result}"
            reply = await ask(prompt)
        if toolbox.parse_call(reply) is not None:
            logger.warning(
                "Tool round limit reached", agent=agent.name, rounds=self.max_tool_rounds
            )
        return reply

    async def _recall(
        self, agent: HostedAgent, history: ChatHistory, context: RunContext
    ) -> list[str]:
        source = agent.memory
        if source is None or history.last is None:
            return []
        memory = self.registry.memory(source)
        credential = self.registry.component_credential(source)
        criteria = {"query": history.last.content, "limit": self.memory_limit}
        entries = await context.call_provider(
            lambda: memory.query(criteria, credential),
            memory.name,
            agent=agent.name,
            memory=source.name,
        )
        return [entry.content for entry in entries]

    async def _invoke_remote(
        self, agent: RemoteAgent, history: ChatHistory, context: RunContext
    ) -> str:
        if self.channel is None:
            raise RemoteAgentUnavailable(
                f"agent {agent.name!r} is remote but no channel is configured",
                agent.remote.endpoint,
                retryable=False,
            )
        channel = self.channel
        spec = agent.remote
        credential = self.registry.credential(spec.authentication)
        messages = history.to_list()

        async def attempt() -> str:
            handle = await context.call(
                lambda: channel.discover(spec.endpoint, spec.name, credential),
                on_timeout=lambda msg: RemoteAgentTimeout(msg, spec.endpoint),
                timeout=spec.timeout_seconds,
            )
            try:
                return await context.call(
                    lambda: channel.send(handle, messages, credential),
                    on_timeout=lambda msg: RemoteAgentTimeout(msg, handle.url),
                    timeout=spec.timeout_seconds,
                )
            except SynodError:
                raise
            except Exception as e:
                raise RemoteAgentUnavailable(f"{type(e).__name__}: {e}", handle.url) from e

        return await context.with_retry(attempt, agent=agent.name, endpoint=spec.endpoint)
