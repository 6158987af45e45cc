"""
Collaboration Engine - sequential turn-taking between agents.

Each iteration: pick an agent (initialAgent on turn 0, then the selection
strategy, or round-robin in declaration order without one), invoke it,
append its reply, then evaluate termination. The run ends when
termination answers true or the iteration count reaches the maximum
(`cap_triggered`).
"""

from __future__ import annotations

import time

import structlog

from synod.agents.history import ChatHistory
from synod.agents.invoker import AgentInvoker
from synod.context import RunContext
from synod.errors import Cancelled, SynodError
from synod.manifest.models import DEFAULT_MAXIMUM_ITERATIONS, CollaborationProcess
from synod.process.results import ProcessResult, ProcessRun, ProcessStatus
from synod.process.strategies import StrategyEvaluator

logger = structlog.get_logger()


class CollaborationEngine:
    def __init__(
        self,
        agent_invoker: AgentInvoker,
        evaluator: StrategyEvaluator,
        default_maximum_iterations: int = DEFAULT_MAXIMUM_ITERATIONS,
    ) -> None:
        self.agent_invoker = agent_invoker
        self.evaluator = evaluator
        self.default_maximum_iterations = default_maximum_iterations

    async def run(
        self,
        process: CollaborationProcess,
        prompt: str,
        context: RunContext,
    ) -> ProcessResult:
        """
        Run a collaboration to its terminal result.

        Process errors (selection out of range, failed invocations,
        cancellation) end the run with a FAILED or CANCELLED result rather
        than raising.
        """
        maximum = process.maximum_iterations or self.default_maximum_iterations
        run = ProcessRun(process.name, process.kind, maximum)
        history = ChatHistory.from_prompt(prompt)
        agents = {agent.name: agent for agent in process.agents}
        names = process.agent_names
        start = time.monotonic()
        log = logger.bind(process=process.name, kind=process.kind)
        log.info("Collaboration started", agents=names, maximum_iterations=maximum)

        def finish(status: ProcessStatus, **kwargs) -> ProcessResult:
            return run.finish(
                status,
                history=list(history.messages),
                duration_ms=int((time.monotonic() - start) * 1000),
                **kwargs,
            )

        try:
            while True:
                context.check()
                name = await self._next_agent(process, names, run.iterations, history, context)
                iteration = run.advance()

                response = await self.agent_invoker.invoke(agents[name], history, context)
                history.add(name, response)
                log.info("Agent turn completed", iteration=iteration, agent=name)

                if await self._should_terminate(process, name, history, context):
                    log.info("Collaboration terminated by strategy", iterations=iteration)
                    return finish(ProcessStatus.COMPLETED, output=response)

                if run.at_cap:
                    log.info("Collaboration reached iteration cap", iterations=iteration)
                    return finish(ProcessStatus.COMPLETED, output=response, cap_triggered=True)
        except Cancelled as e:
            log.warning("Collaboration cancelled", iterations=run.iterations, reason=str(e))
            return finish(ProcessStatus.CANCELLED, error=e)
        except SynodError as e:
            log.warning(
                "Collaboration failed",
                iterations=run.iterations,
                error=str(e),
                error_type=type(e).__name__,
            )
            return finish(ProcessStatus.FAILED, error=e)

    async def _next_agent(
        self,
        process: CollaborationProcess,
        names: list[str],
        iteration: int,
        history: ChatHistory,
        context: RunContext,
    ) -> str:
        if iteration == 0 and process.initial_agent is not None:
            return process.initial_agent
        if process.selection is not None:
            return await self.evaluator.select_agent(
                process.selection, process.agents, history, context
            )
        offset = names.index(process.initial_agent) if process.initial_agent else 0
        return names[(offset + iteration) % len(names)]

    async def _should_terminate(
        self,
        process: CollaborationProcess,
        agent: str,
        history: ChatHistory,
        context: RunContext,
    ) -> bool:
        termination = process.termination
        if termination is None:
            return False
        if termination.agents and agent not in termination.agents:
            return False
        return await self.evaluator.should_terminate(termination, agent, history, context)
