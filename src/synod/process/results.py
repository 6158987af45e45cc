"""
Process run state and terminal results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from synod.agents.history import ChatMessage
from synod.errors import SynodError


class ProcessStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AgentOutcome:
    """One agent's settled result in a convergence fan-out."""

    agent: str
    prompt: str
    response: str | None = None
    error: str | None = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_synthesis_input(self) -> dict[str, Any]:
        """Entry passed to synthesis; failures are explicit absence markers."""
        if self.ok:
            return {"agent": self.agent, "response": self.response}
        return {"agent": self.agent, "response": None, "error": self.error}

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent": self.agent,
            "prompt": self.prompt,
            "response": self.response,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ProcessResult:
    """
    Terminal result of a process run.

    `status` distinguishes a produced answer (COMPLETED) from a run that
    ended without one (FAILED, with `error` set) or was stopped (CANCELLED).
    """

    process: str
    kind: str
    status: ProcessStatus
    output: Any = None
    error: SynodError | None = None
    history: list[ChatMessage] = field(default_factory=list)
    iterations: int = 0
    cap_triggered: bool = False
    outcomes: list[AgentOutcome] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.status == ProcessStatus.COMPLETED

    @property
    def turns(self) -> list[ChatMessage]:
        return [m for m in self.history if m.role == "agent"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "process": self.process,
            "kind": self.kind,
            "status": self.status.value,
            "output": self.output,
            "error": (
                {"type": type(self.error).__name__, "message": str(self.error)}
                if self.error
                else None
            ),
            "iterations": self.iterations,
            "cap_triggered": self.cap_triggered,
            "history": [m.to_dict() for m in self.history],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "duration_ms": self.duration_ms,
        }


class ProcessRun:
    """
    Mutable state of one execution; the terminal result is set exactly once.
    """

    def __init__(self, process: str, kind: str, maximum_iterations: int | None = None) -> None:
        self.process = process
        self.kind = kind
        self.maximum_iterations = maximum_iterations
        self.iterations = 0
        self._result: ProcessResult | None = None

    @property
    def done(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> ProcessResult | None:
        return self._result

    def advance(self) -> int:
        if self.maximum_iterations is not None and self.iterations >= self.maximum_iterations:
            raise RuntimeError(f"{self.process}: iteration cap {self.maximum_iterations} exceeded")
        self.iterations += 1
        return self.iterations

    @property
    def at_cap(self) -> bool:
        return self.maximum_iterations is not None and self.iterations >= self.maximum_iterations

    def finish(self, status: ProcessStatus, **kwargs: Any) -> ProcessResult:
        if self._result is not None:
            raise RuntimeError(f"{self.process}: result already set")
        self._result = ProcessResult(
            process=self.process,
            kind=self.kind,
            status=status,
            iterations=self.iterations,
            **kwargs,
        )
        return self._result
