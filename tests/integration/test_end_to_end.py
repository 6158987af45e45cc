"""
End-to-end runs of the example manifests through the Runtime.

The manifests run offline on the built-in `static` provider; the scripted
variants swap that provider for test doubles keyed by kernel model.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from synod.config import RuntimeConfig
from synod.errors import ProviderRejected
from synod.process.results import ProcessStatus
from synod.runtime import Runtime

MANIFESTS = Path(__file__).parent / "manifests"
REFINE_TEXT = MANIFESTS / "refine-text.yaml"
REVIEW_QUESTION = MANIFESTS / "review-question-quality.yaml"

EDITORS = {"GrammarBot", "ToneTuner", "ClarityCoach"}
REVIEWERS = ["AccuracyReviewer", "ClarityReviewer", "DepthReviewer"]


@pytest.fixture
def config() -> RuntimeConfig:
    return RuntimeConfig(retry_backoff_seconds=0)


@pytest.fixture
def scripted_registry(registry, providers):
    """Registry where `static` kernels resolve to `providers[model]`."""

    def factory(spec, _registry):
        return providers[spec.model]

    registry.register_reasoning("static", factory)
    return registry


def last_line(prompt: str) -> str:
    return prompt.strip().splitlines()[-1]


class TestRefineText:
    @pytest.mark.asyncio
    async def test_offline_manifest(self, config):
        async with Runtime.from_manifest(REFINE_TEXT, config=config) as runtime:
            result = await runtime.run("refine-text", "The cat sat on the mat.")

        assert result.status == ProcessStatus.COMPLETED
        assert isinstance(result.output, str) and result.output
        assert 0 < len(result.turns) <= 5
        assert {m.name for m in result.turns} <= EDITORS
        assert result.turns[0].name == "GrammarBot"
        assert result.cap_triggered is True

    @pytest.mark.asyncio
    async def test_judge_ends_the_session(self, config, scripted_registry, providers, scripted):
        providers["editor"] = scripted(lambda prompt: last_line(prompt).rstrip(".") + "!")
        providers["judge"] = scripted(["false", "false", "true"])

        runtime = Runtime.from_manifest(REFINE_TEXT, config=config, registry=scripted_registry)
        async with runtime:
            result = await runtime.run_collaboration("refine-text", "The cat sat on the mat.")

        assert result.status == ProcessStatus.COMPLETED
        assert result.cap_triggered is False
        assert [m.name for m in result.turns] == ["GrammarBot", "ToneTuner", "ClarityCoach"]
        assert result.output == "The cat sat on the mat!!!"
        # The judge saw the last editor and the JSON history.
        judge_prompt = providers["judge"].prompts[-1]
        assert "taken by ClarityCoach" in judge_prompt
        assert '"name": "ToneTuner"' in judge_prompt

    @pytest.mark.asyncio
    async def test_cap_of_five(self, config, scripted_registry, providers, scripted):
        providers["editor"] = scripted(last_line)
        providers["judge"] = scripted(lambda prompt: "false")

        async with Runtime.from_manifest(
            REFINE_TEXT, config=config, registry=scripted_registry
        ) as runtime:
            result = await runtime.run("refine-text", "The cat sat on the mat.")

        assert len(result.turns) == 5
        assert providers["editor"].calls == 5
        assert result.cap_triggered is True


class TestReviewQuestionQuality:
    @pytest.mark.asyncio
    async def test_offline_manifest(self, config):
        async with Runtime.from_manifest(REVIEW_QUESTION, config=config) as runtime:
            result = await runtime.run("review-question-quality", "Define photosynthesis.")

        assert result.status == ProcessStatus.COMPLETED
        assert result.output.startswith("A sound recall question")
        assert [o.agent for o in result.outcomes] == REVIEWERS
        assert all(o.ok for o in result.outcomes)
        assert result.outcomes[1].prompt.startswith("Is the wording unambiguous?")

    @pytest.mark.asyncio
    async def test_concurrent_fan_out(self, config, scripted_registry, providers, scripted):
        providers["reviewer"] = scripted(lambda prompt: "ok: " + last_line(prompt), delay=0.1)
        providers["planner"] = scripted(["not a plan"])
        providers["synthesizer"] = scripted(lambda prompt: "merged")

        async with Runtime.from_manifest(
            REVIEW_QUESTION, config=config, registry=scripted_registry
        ) as runtime:
            result = await runtime.run_convergence(
                "review-question-quality", "Define photosynthesis."
            )

        assert result.status == ProcessStatus.COMPLETED
        assert providers["reviewer"].max_in_flight == 3
        # Overlapping calls: the run is shorter than the summed agent durations.
        assert result.duration_ms < sum(o.duration_ms for o in result.outcomes)

        prompt = providers["synthesizer"].prompts[0]
        inputs = json.loads(prompt[prompt.index("[") :])
        assert [entry["agent"] for entry in inputs] == REVIEWERS
        assert all(entry["response"] == "ok: Define photosynthesis." for entry in inputs)

    @pytest.mark.asyncio
    async def test_one_reviewer_fails(self, config, scripted_registry, providers, scripted):
        def review(prompt: str) -> str:
            if "clearly worded" in prompt:
                raise ProviderRejected("refused")
            return "fine"

        providers["reviewer"] = scripted(review)
        providers["planner"] = scripted(["{}"])
        providers["synthesizer"] = scripted(lambda prompt: "two of three")

        async with Runtime.from_manifest(
            REVIEW_QUESTION, config=config, registry=scripted_registry
        ) as runtime:
            result = await runtime.run("review-question-quality", "Define photosynthesis.")

        assert result.status == ProcessStatus.COMPLETED
        prompt = providers["synthesizer"].prompts[0]
        inputs = json.loads(prompt[prompt.index("[") :])
        assert len(inputs) == 3
        assert inputs[1] == {
            "agent": "ClarityReviewer",
            "response": None,
            "error": "ProviderRejected: refused",
        }


class TestRuntime:
    @pytest.mark.asyncio
    async def test_cancel_in_flight_runs(self, config, scripted_registry, providers, scripted):
        providers["reviewer"] = scripted(lambda prompt: "slow", delay=5)
        providers["planner"] = scripted(["{}"])
        providers["synthesizer"] = scripted(lambda prompt: "never")

        async with Runtime.from_manifest(
            REVIEW_QUESTION, config=config, registry=scripted_registry
        ) as runtime:
            run = asyncio.create_task(runtime.run("review-question-quality", "Q"))
            while providers["reviewer"].in_flight < 3:
                await asyncio.sleep(0.01)
            runtime.cancel()
            result = await asyncio.wait_for(run, timeout=2)

        assert result.status == ProcessStatus.CANCELLED
        assert providers["synthesizer"].calls == 0

    @pytest.mark.asyncio
    async def test_run_deadline(self, scripted_registry, providers, scripted):
        providers["editor"] = scripted(lambda prompt: "slow", delay=5)
        config = RuntimeConfig(run_timeout_seconds=0.1, retry_backoff_seconds=0)

        async with Runtime.from_manifest(
            REFINE_TEXT, config=config, registry=scripted_registry
        ) as runtime:
            result = await runtime.run("refine-text", "The cat sat on the mat.")

        assert result.status == ProcessStatus.CANCELLED
        assert "deadline" in str(result.error)

    @pytest.mark.asyncio
    async def test_kind_mismatch(self, config):
        async with Runtime.from_manifest(REFINE_TEXT, config=config) as runtime:
            with pytest.raises(TypeError, match="not a convergence"):
                await runtime.run_convergence("refine-text", "hi")

    @pytest.mark.asyncio
    async def test_unknown_process(self, config):
        async with Runtime.from_manifest(REFINE_TEXT, config=config) as runtime:
            with pytest.raises(KeyError, match="nope"):
                await runtime.run("nope", "hi")
