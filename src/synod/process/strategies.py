"""
Strategy Evaluator - kernel functions in the selection, termination,
decomposition and synthesis roles.

All four go through `evaluate`: bind the role's named variables and invoke
the function through the Kernel Invoker. Variable names configured on a
strategy are checked against the function when the manifest resolves; a
defaulted name the function does not declare is left unbound, so a
function may ignore e.g. the history.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import structlog

from synod.agents.history import ChatHistory
from synod.context import RunContext
from synod.errors import OutputSchemaViolation, SelectionOutOfRange
from synod.kernel.invoker import KernelInvoker
from synod.kernel.output import coerce_boolean, strip_fences
from synod.manifest.models import (
    DecompositionStrategy,
    HostedAgent,
    KernelFunction,
    RemoteAgent,
    SelectionStrategy,
    SynthesisStrategy,
    TerminationStrategy,
)

logger = structlog.get_logger()


def roster(agents: list[HostedAgent | RemoteAgent]) -> list[dict[str, str]]:
    """Participant list as bound into strategy functions."""
    return [{"name": agent.name, "description": agent.description} for agent in agents]


def match_participant(selected: Any, participants: list[str]) -> str:
    """
    Map a selection answer onto a participant name.

    Accepts the bare name (quoted, fenced or with trailing punctuation) or
    an object with a `name` / `agent` key; exact matches win over
    case-insensitive ones.

    Raises:
        SelectionOutOfRange: The answer names no participant
    """
    if isinstance(selected, Mapping):
        selected = selected.get("name", selected.get("agent", ""))
    text = strip_fences(str(selected)).strip().strip("\"'`").rstrip(".!").strip()
    if text in participants:
        return text
    folded = {name.casefold(): name for name in participants}
    if text.casefold() in folded:
        return folded[text.casefold()]
    raise SelectionOutOfRange(text, participants)


class StrategyEvaluator:
    def __init__(self, kernel_invoker: KernelInvoker) -> None:
        self.kernel_invoker = kernel_invoker

    async def evaluate(
        self,
        function: KernelFunction,
        bindings: Mapping[str, Any],
        context: RunContext,
    ) -> Any:
        """Invoke a strategy function, leaving out defaulted names it does not declare."""
        declared = {
            name: value for name, value in bindings.items() if function.variable(name) is not None
        }
        return await self.kernel_invoker.invoke(function, declared, context)

    async def select_agent(
        self,
        strategy: SelectionStrategy,
        agents: list[HostedAgent | RemoteAgent],
        history: ChatHistory,
        context: RunContext,
    ) -> str:
        selected = await self.evaluate(
            strategy.function,
            {
                strategy.agents_variable_name: roster(agents),
                strategy.history_variable_name: history.to_list(),
            },
            context,
        )
        return match_participant(selected, [agent.name for agent in agents])

    async def should_terminate(
        self,
        strategy: TerminationStrategy,
        agent: str,
        history: ChatHistory,
        context: RunContext,
    ) -> bool:
        answer = await self.evaluate(
            strategy.function,
            {
                strategy.agent_variable_name: agent,
                strategy.history_variable_name: history.to_list(),
            },
            context,
        )
        try:
            return coerce_boolean(answer)
        except ValueError as e:
            raise OutputSchemaViolation(str(e), strategy.function.name, str(answer)) from e

    async def decompose(
        self,
        strategy: DecompositionStrategy,
        prompt: str,
        agents: list[HostedAgent | RemoteAgent],
        context: RunContext,
    ) -> dict[str, str]:
        """
        Per-agent sub-prompts.

        Agents the answer omits are absent from the result; names that are
        not participants are dropped with a warning.

        Raises:
            OutputSchemaViolation: The answer is not an object of name -> prompt
        """
        answer = await self.evaluate(
            strategy.function,
            {
                strategy.prompt_variable_name: prompt,
                strategy.agents_variable_name: roster(agents),
            },
            context,
        )
        if isinstance(answer, str):
            try:
                answer = json.loads(strip_fences(answer))
            except json.JSONDecodeError as e:
                raise OutputSchemaViolation(
                    "decomposition is not a JSON object", strategy.function.name, answer
                ) from e
        if not isinstance(answer, Mapping):
            raise OutputSchemaViolation(
                "decomposition must map agent names to prompts",
                strategy.function.name,
                json.dumps(answer, default=str),
            )

        names = {agent.name for agent in agents}
        unknown = sorted(str(k) for k in answer if k not in names)
        if unknown:
            logger.warning(
                "Decomposition named non-participants",
                function=strategy.function.name,
                unknown=unknown,
            )
        return {
            name: value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
            for name, value in answer.items()
            if name in names
        }

    async def synthesize(
        self,
        strategy: SynthesisStrategy,
        inputs: list[dict[str, Any]],
        context: RunContext,
    ) -> Any:
        return await self.evaluate(
            strategy.function, {strategy.inputs_variable_name: inputs}, context
        )
