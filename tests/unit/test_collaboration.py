"""
Tests for the Collaboration Engine.
"""

from __future__ import annotations

import pytest

from synod.agents.invoker import AgentInvoker
from synod.context import RunContext
from synod.errors import Cancelled, ProviderRejected, ProviderUnavailable, SelectionOutOfRange
from synod.kernel.invoker import KernelInvoker
from synod.manifest.models import CollaborationProcess
from synod.process.collaboration import CollaborationEngine
from synod.process.results import ProcessStatus
from synod.process.strategies import StrategyEvaluator
from synod.providers.base import MemoryProvider

AGENTS = ["GrammarBot", "ToneTuner", "ClarityCoach"]


def strategy_function(model: str, *variables: str) -> dict:
    return {
        "name": model,
        "template": model + " " + " ".join("{{%s}}" % v for v in variables),
        "kernel": {"name": model, "reasoning": {"provider": "scripted", "model": model}},
        "inputVariables": [{"name": v} for v in variables],
    }


def collaboration(**fields) -> CollaborationProcess:
    data = {
        "name": "refine-text",
        "agents": [
            {
                "name": name,
                "instructions": f"You are {name}.",
                "kernel": {"name": "k", "reasoning": {"provider": "scripted", "model": "agent"}},
            }
            for name in AGENTS
        ],
        **fields,
    }
    return CollaborationProcess.model_validate(data)


def terminate(**fields) -> dict:
    return {"function": strategy_function("terminate", "history"), **fields}


def select() -> dict:
    return {"function": strategy_function("select", "agents")}


def speaker(prompt: str) -> str:
    return prompt.splitlines()[0].removeprefix("You are ").rstrip(".") + " edited"


@pytest.fixture
def engine(registry) -> CollaborationEngine:
    kernel_invoker = KernelInvoker(registry)
    return CollaborationEngine(
        AgentInvoker(registry, kernel_invoker), StrategyEvaluator(kernel_invoker)
    )


@pytest.fixture
def context() -> RunContext:
    return RunContext(retry_backoff=0)


class TestCollaborationEngine:
    @pytest.mark.asyncio
    async def test_cap_stops_the_run(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        providers["terminate"] = scripted(lambda prompt: "false")
        process = collaboration(maximumIterations=5, termination=terminate())

        result = await engine.run(process, "The cat sat on the mat.", context)

        assert result.status == ProcessStatus.COMPLETED
        assert result.cap_triggered is True
        assert result.iterations == 5
        assert providers["agent"].calls == 5
        assert providers["terminate"].calls == 5
        assert [m.name for m in result.turns] == [
            "GrammarBot",
            "ToneTuner",
            "ClarityCoach",
            "GrammarBot",
            "ToneTuner",
        ]
        assert result.output == "ToneTuner edited"
        assert result.history[0].content == "The cat sat on the mat."

    @pytest.mark.asyncio
    async def test_default_cap(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        result = await engine.run(collaboration(), "go", context)

        assert result.iterations == 99
        assert result.cap_triggered is True

    @pytest.mark.asyncio
    async def test_termination_ends_before_cap(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        providers["terminate"] = scripted(["no", "yes"])
        process = collaboration(maximumIterations=5, termination=terminate())

        result = await engine.run(process, "go", context)

        assert result.status == ProcessStatus.COMPLETED
        assert result.cap_triggered is False
        assert result.iterations == 2
        assert result.output == "ToneTuner edited"

    @pytest.mark.asyncio
    async def test_initial_agent_then_round_robin(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        process = collaboration(initialAgent="ClarityCoach", maximumIterations=4)

        result = await engine.run(process, "go", context)

        assert [m.name for m in result.turns] == [
            "ClarityCoach",
            "GrammarBot",
            "ToneTuner",
            "ClarityCoach",
        ]

    @pytest.mark.asyncio
    async def test_selection_after_initial_agent(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        providers["select"] = scripted(["GrammarBot", "grammarbot."])
        process = collaboration(
            initialAgent="ToneTuner", maximumIterations=3, selection=select()
        )

        result = await engine.run(process, "go", context)

        assert [m.name for m in result.turns] == ["ToneTuner", "GrammarBot", "GrammarBot"]
        assert providers["select"].calls == 2

    @pytest.mark.asyncio
    async def test_termination_allow_list(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        providers["terminate"] = scripted(["yes"])
        process = collaboration(
            maximumIterations=5, termination=terminate(agents=["ClarityCoach"])
        )

        result = await engine.run(process, "go", context)

        assert result.iterations == 3
        assert result.turns[-1].name == "ClarityCoach"
        assert providers["terminate"].calls == 1

    @pytest.mark.asyncio
    async def test_selection_out_of_range_fails(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        providers["select"] = scripted(["GrammarBot", "Nobody"])
        process = collaboration(maximumIterations=5, selection=select())

        result = await engine.run(process, "go", context)

        assert result.status == ProcessStatus.FAILED
        assert isinstance(result.error, SelectionOutOfRange)
        assert result.iterations == 1
        assert [m.name for m in result.turns] == ["GrammarBot"]
        assert result.output is None

    @pytest.mark.asyncio
    async def test_agent_failure_fails_the_run(self, engine, context, providers, scripted):
        providers["agent"] = scripted([ProviderRejected("refused")])
        result = await engine.run(collaboration(maximumIterations=3), "go", context)

        assert result.status == ProcessStatus.FAILED
        assert isinstance(result.error, ProviderRejected)

    @pytest.mark.asyncio
    async def test_memory_backend_failure_fails_the_run(
        self, engine, registry, context, providers, scripted
    ):
        class DownMemory(MemoryProvider):
            async def query(self, criteria, credential=None):
                raise ConnectionError("vector store down")

        registry.register_memory("kv", lambda memory, reg: DownMemory())
        providers["agent"] = scripted(speaker)
        process = CollaborationProcess.model_validate(
            {
                "name": "recall",
                "agents": [
                    {
                        "name": "GrammarBot",
                        "kernel": {
                            "name": "k",
                            "reasoning": {"provider": "scripted", "model": "agent"},
                        },
                        "memory": {"kind": "keyValue", "name": "notes", "provider": "kv"},
                    }
                ],
            }
        )

        result = await engine.run(process, "go", context)

        assert result.status == ProcessStatus.FAILED
        assert isinstance(result.error, ProviderUnavailable)
        assert "vector store down" in str(result.error)
        assert providers["agent"].calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_run(self, engine, context, providers, scripted):
        providers["agent"] = scripted(speaker)
        context.cancel()

        result = await engine.run(collaboration(maximumIterations=3), "go", context)

        assert result.status == ProcessStatus.CANCELLED
        assert isinstance(result.error, Cancelled)
        assert result.iterations == 0
        assert providers["agent"].calls == 0
