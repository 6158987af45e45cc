"""
Synod - runtime for declarative multi-agent manifests.

Resolves a manifest's kernels, functions, agents and processes into an
immutable graph, then runs collaboration (turn-taking) and convergence
(fan-out / synthesis) processes over it.
"""

__version__ = "0.1.0"

from synod.errors import SynodError
from synod.manifest import load_manifest, resolve_manifest
from synod.process.results import ProcessResult, ProcessStatus
from synod.runtime import Runtime

__all__ = [
    "ProcessResult",
    "ProcessStatus",
    "Runtime",
    "SynodError",
    "__version__",
    "load_manifest",
    "resolve_manifest",
]
