"""
Manifest layer: raw reference graph, resolution, and resolved component models.
"""

from synod.manifest.graph import ComponentKind, ComponentRef, ReferenceGraph
from synod.manifest.loader import ManifestLoadError, load_manifest
from synod.manifest.models import (
    CollaborationProcess,
    ConvergenceProcess,
    HostedAgent,
    KernelFunction,
    RemoteAgent,
    ResolvedGraph,
    ResolvedKernel,
)
from synod.manifest.resolver import Resolver, merge_definitions, resolve_manifest

__all__ = [
    "ComponentKind",
    "ComponentRef",
    "ReferenceGraph",
    "Resolver",
    "ResolvedGraph",
    "ResolvedKernel",
    "KernelFunction",
    "HostedAgent",
    "RemoteAgent",
    "CollaborationProcess",
    "ConvergenceProcess",
    "ManifestLoadError",
    "load_manifest",
    "merge_definitions",
    "resolve_manifest",
]
