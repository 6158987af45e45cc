"""
Convergence Engine - decompose, fan out to every agent concurrently,
collect, synthesize.
"""

from __future__ import annotations

import asyncio
import time

import structlog

from synod.agents.history import ChatHistory
from synod.agents.invoker import AgentInvoker
from synod.context import RunContext
from synod.errors import Cancelled, ConvergenceExhausted, SynodError
from synod.manifest.models import ConvergenceProcess, HostedAgent, RemoteAgent
from synod.process.results import AgentOutcome, ProcessResult, ProcessRun, ProcessStatus
from synod.process.strategies import StrategyEvaluator

logger = structlog.get_logger()


class ConvergenceEngine:
    def __init__(self, agent_invoker: AgentInvoker, evaluator: StrategyEvaluator) -> None:
        self.agent_invoker = agent_invoker
        self.evaluator = evaluator

    async def run(
        self,
        process: ConvergenceProcess,
        prompt: str,
        context: RunContext,
    ) -> ProcessResult:
        run = ProcessRun(process.name, process.kind)
        start = time.monotonic()
        log = logger.bind(process=process.name, kind=process.kind)
        log.info("Convergence started", agents=process.agent_names)
        outcomes: list[AgentOutcome] = []

        def finish(status: ProcessStatus, **kwargs) -> ProcessResult:
            return run.finish(
                status,
                outcomes=outcomes,
                duration_ms=int((time.monotonic() - start) * 1000),
                **kwargs,
            )

        try:
            context.check()
            prompts = await self._decompose(process, prompt, context)
            run.advance()
            outcomes = await self._fan_out(process.agents, prompts, context)

            failures = {o.agent: o.error or "" for o in outcomes if not o.ok}
            if len(failures) == len(outcomes):
                raise ConvergenceExhausted(failures)
            if failures:
                log.warning("Some agents failed", failed=sorted(failures))

            inputs = [outcome.to_synthesis_input() for outcome in outcomes]
            output = await self.evaluator.synthesize(process.synthesis, inputs, context)
            log.info("Convergence completed", succeeded=len(outcomes) - len(failures))
            return finish(ProcessStatus.COMPLETED, output=output)
        except Cancelled as e:
            log.warning("Convergence cancelled", reason=str(e))
            return finish(ProcessStatus.CANCELLED, error=e)
        except SynodError as e:
            log.warning("Convergence failed", error=str(e), error_type=type(e).__name__)
            return finish(ProcessStatus.FAILED, error=e)

    async def _decompose(
        self,
        process: ConvergenceProcess,
        prompt: str,
        context: RunContext,
    ) -> dict[str, str]:
        prompts = {name: prompt for name in process.agent_names}
        if process.decomposition is None:
            return prompts
        try:
            sub_prompts = await self.evaluator.decompose(
                process.decomposition, prompt, process.agents, context
            )
        except Cancelled:
            raise
        except SynodError as e:
            logger.warning(
                "Decomposition failed, sending the original prompt to every agent",
                process=process.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return prompts
        prompts.update(sub_prompts)
        return prompts

    async def _fan_out(
        self,
        agents: list[HostedAgent | RemoteAgent],
        prompts: dict[str, str],
        context: RunContext,
    ) -> list[AgentOutcome]:
        """Invoke every agent concurrently; slots follow declaration order."""
        tasks = [
            asyncio.create_task(self._invoke_one(agent, prompts[agent.name], context))
            for agent in agents
        ]
        try:
            settled = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        outcomes: list[AgentOutcome] = []
        for agent, result in zip(agents, settled):
            if isinstance(result, Cancelled):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(
                    "Agent invocation raised unexpectedly",
                    agent=agent.name,
                    error=str(result),
                    exc_info=result,
                )
                result = AgentOutcome(
                    agent=agent.name,
                    prompt=prompts[agent.name],
                    error=f"{type(result).__name__}: {result}",
                )
            outcomes.append(result)
        return outcomes

    async def _invoke_one(
        self,
        agent: HostedAgent | RemoteAgent,
        prompt: str,
        context: RunContext,
    ) -> AgentOutcome:
        start = time.monotonic()
        outcome = AgentOutcome(agent=agent.name, prompt=prompt)
        try:
            outcome.response = await self.agent_invoker.invoke(
                agent, ChatHistory.from_prompt(prompt), context
            )
        except Cancelled:
            raise
        except SynodError as e:
            logger.warning(
                "Agent failed",
                agent=agent.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome.error = f"{type(e).__name__}: {e}"
        outcome.duration_ms = int((time.monotonic() - start) * 1000)
        return outcome
