"""
Agentic processes: collaboration and convergence engines, strategies, results.
"""

from synod.process.collaboration import CollaborationEngine
from synod.process.convergence import ConvergenceEngine
from synod.process.results import AgentOutcome, ProcessResult, ProcessRun, ProcessStatus
from synod.process.strategies import StrategyEvaluator, match_participant, roster

__all__ = [
    "AgentOutcome",
    "CollaborationEngine",
    "ConvergenceEngine",
    "ProcessResult",
    "ProcessRun",
    "ProcessStatus",
    "StrategyEvaluator",
    "match_participant",
    "roster",
]
