"""
Reference Graph - raw component definitions plus their `use`/`extends` edges.

Definitions are stored exactly as they appear in the manifest, keyed by
kind and name. Nothing here dereferences anything; the Resolver does that.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from synod.errors import InvalidDefinition


class ComponentKind(str, Enum):
    """Kinds of top-level manifest components."""

    KERNEL = "kernel"
    FUNCTION = "function"
    AGENT = "agent"
    MEMORY = "memory"
    TOOLSET = "toolset"
    AUTHENTICATION = "authentication"
    PROCESS = "process"

    @property
    def section(self) -> str:
        return SECTIONS[self]


SECTIONS: dict[ComponentKind, str] = {
    ComponentKind.KERNEL: "kernels",
    ComponentKind.FUNCTION: "functions",
    ComponentKind.AGENT: "agents",
    ComponentKind.MEMORY: "memories",
    ComponentKind.TOOLSET: "toolsets",
    ComponentKind.AUTHENTICATION: "authentication",
    ComponentKind.PROCESS: "processes",
}

KIND_BY_SECTION: dict[str, ComponentKind] = {v: k for k, v in SECTIONS.items()}

# Order in which whole-graph resolution visits kinds (leaves first).
RESOLUTION_ORDER: tuple[ComponentKind, ...] = (
    ComponentKind.AUTHENTICATION,
    ComponentKind.TOOLSET,
    ComponentKind.KERNEL,
    ComponentKind.MEMORY,
    ComponentKind.FUNCTION,
    ComponentKind.AGENT,
    ComponentKind.PROCESS,
)


@dataclass(frozen=True, order=True)
class ComponentRef:
    """A named pointer to a top-level component."""

    kind: ComponentKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.section}.{self.name}"


@dataclass(frozen=True)
class RefField:
    """A property position that holds a reference to another component."""

    path: tuple[str, ...]
    kind: ComponentKind
    many: bool = False

    @property
    def dotted(self) -> str:
        return ".".join(self.path)


_AUTH = ComponentKind.AUTHENTICATION

REFERENCE_FIELDS: dict[ComponentKind, tuple[RefField, ...]] = {
    ComponentKind.AUTHENTICATION: (),
    ComponentKind.TOOLSET: (RefField(("authentication",), _AUTH),),
    ComponentKind.KERNEL: (
        RefField(("reasoning", "authentication"), _AUTH),
        RefField(("embedding", "authentication"), _AUTH),
        RefField(("toolsets",), ComponentKind.TOOLSET, many=True),
    ),
    ComponentKind.MEMORY: (
        RefField(("kernel",), ComponentKind.KERNEL),
        RefField(("authentication",), _AUTH),
    ),
    ComponentKind.FUNCTION: (RefField(("kernel",), ComponentKind.KERNEL),),
    ComponentKind.AGENT: (
        RefField(("kernel",), ComponentKind.KERNEL),
        RefField(("memory",), ComponentKind.MEMORY),
        RefField(("function",), ComponentKind.FUNCTION),
        RefField(("toolsets",), ComponentKind.TOOLSET, many=True),
        RefField(("remote", "authentication"), _AUTH),
    ),
    ComponentKind.PROCESS: (
        RefField(("collaboration", "agents"), ComponentKind.AGENT, many=True),
        RefField(("collaboration", "selection", "function"), ComponentKind.FUNCTION),
        RefField(("collaboration", "termination", "function"), ComponentKind.FUNCTION),
        RefField(("convergence", "agents"), ComponentKind.AGENT, many=True),
        RefField(("convergence", "decomposition", "function"), ComponentKind.FUNCTION),
        RefField(("convergence", "synthesis", "function"), ComponentKind.FUNCTION),
    ),
}

# Collections appended on `extends` (child items replace same-named parent items).
APPEND_COLLECTIONS = frozenset({"skills", "toolsets", "agents", "inputVariables", "tools"})

# Collections whose child value replaces the parent's wholesale.
OVERRIDE_ONLY = frozenset(
    {
        "entries",
        "collaboration.termination.agents",
    }
)


def get_path(data: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    """Walk nested mappings; returns None when any step is missing."""
    current: Any = data
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def reference_name(value: Any) -> str | None:
    """Name targeted by a reference value (`"x"` or `{use: "x"}`), else None."""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping) and "use" in value:
        target = value.get("use")
        return target if isinstance(target, str) else None
    return None


class ReferenceGraph:
    """
    Raw manifest components keyed by (kind, name).

    Built from an already-parsed manifest mapping whose top-level keys are
    the component sections (`kernels`, `agents`, ...).
    """

    def __init__(self, definitions: Mapping[ComponentKind, Mapping[str, Any]] | None = None):
        self._definitions: dict[ComponentKind, dict[str, dict[str, Any]]] = {
            kind: {} for kind in ComponentKind
        }
        for kind, items in (definitions or {}).items():
            for name, definition in items.items():
                self.add(ComponentRef(kind, name), definition)

    @classmethod
    def from_manifest(cls, manifest: Mapping[str, Any]) -> ReferenceGraph:
        graph = cls()
        for section, items in manifest.items():
            kind = KIND_BY_SECTION.get(section)
            if kind is None:
                raise InvalidDefinition(f"unknown manifest section {section!r}", section)
            if items is None:
                continue
            if not isinstance(items, Mapping):
                raise InvalidDefinition("section must be a mapping of name -> definition", section)
            for name, definition in items.items():
                graph.add(ComponentRef(kind, str(name)), definition)
        return graph

    def add(self, ref: ComponentRef, definition: Any) -> None:
        if definition is None:
            definition = {}
        if not isinstance(definition, Mapping):
            raise InvalidDefinition("definition must be a mapping", str(ref))
        self._definitions[ref.kind][ref.name] = dict(definition)

    def get(self, ref: ComponentRef) -> dict[str, Any] | None:
        return self._definitions[ref.kind].get(ref.name)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, ComponentRef) and ref.name in self._definitions[ref.kind]

    def names(self, kind: ComponentKind) -> list[str]:
        return sorted(self._definitions[kind])

    def refs(self) -> Iterator[ComponentRef]:
        """All component refs in resolution order, names sorted within a kind."""
        for kind in RESOLUTION_ORDER:
            for name in self.names(kind):
                yield ComponentRef(kind, name)

    def __len__(self) -> int:
        return sum(len(items) for items in self._definitions.values())

    def edges(self) -> list[tuple[ComponentRef, ComponentRef, str]]:
        """
        Directed edges (source, target, label) for every named reference.

        Labels are `use`, `extends`, or the dotted property path of a nested
        reference. Inline definitions contribute the edges they contain.
        """
        results: list[tuple[ComponentRef, ComponentRef, str]] = []
        for ref in self.refs():
            definition = self.get(ref) or {}
            for target, label in _definition_edges(ref.kind, definition):
                results.append((ref, target, label))
        return results

    def dependencies(self, ref: ComponentRef) -> list[ComponentRef]:
        definition = self.get(ref)
        if definition is None:
            return []
        seen: list[ComponentRef] = []
        for target, _label in _definition_edges(ref.kind, definition):
            if target not in seen:
                seen.append(target)
        return seen


def _definition_edges(
    kind: ComponentKind, definition: Mapping[str, Any]
) -> Iterator[tuple[ComponentRef, str]]:
    target = reference_name(definition) if "use" in definition else None
    if target is not None:
        yield ComponentRef(kind, target), "use"
        return
    parent = definition.get("extends")
    if isinstance(parent, str):
        yield ComponentRef(kind, parent), "extends"
    for field in REFERENCE_FIELDS[kind]:
        value = get_path(definition, field.path)
        values = value if field.many and isinstance(value, list) else [value]
        for item in values:
            if item is None:
                continue
            name = reference_name(item)
            if name is not None:
                yield ComponentRef(field.kind, name), field.dotted
            elif isinstance(item, Mapping):
                for nested, label in _definition_edges(field.kind, item):
                    yield nested, f"{field.dotted}.{label}"
