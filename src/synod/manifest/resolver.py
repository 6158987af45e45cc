"""
Resolver - turns a ReferenceGraph into a ResolvedGraph.

Resolution happens in two passes per component:

1. Expansion: flatten `use` (substitution) and `extends` (structural merge)
   into a single raw definition.
2. Materialization: replace every nested reference with its resolved
   component and validate the result into a typed model.

Both passes memoize per (kind, name) and keep an explicit visitation stack,
so diamond-shaped graphs resolve each node once and cycles are reported
instead of recursing forever.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from synod.errors import (
    ConflictingProperties,
    CyclicReferenceError,
    InvalidDefinition,
    MissingProperty,
    UnresolvedReference,
)
from synod.manifest.graph import (
    APPEND_COLLECTIONS,
    OVERRIDE_ONLY,
    REFERENCE_FIELDS,
    ComponentKind,
    ComponentRef,
    ReferenceGraph,
)
from synod.manifest.models import (
    AuthenticationPolicy,
    CollaborationProcess,
    ConvergenceProcess,
    FileMemory,
    HostedAgent,
    KernelFunction,
    KeyValueMemory,
    McpToolset,
    OpenApiToolset,
    RemoteAgent,
    ResolvedGraph,
    ResolvedKernel,
    StaticMemory,
    VectorMemory,
)

logger = structlog.get_logger()

_MODELS: dict[ComponentKind, type[BaseModel]] = {
    ComponentKind.AUTHENTICATION: AuthenticationPolicy,
    ComponentKind.KERNEL: ResolvedKernel,
    ComponentKind.FUNCTION: KernelFunction,
}

# Tagged variants: kind -> (tag property, tag value -> model)
_VARIANTS: dict[ComponentKind, tuple[str, dict[str, type[BaseModel]]]] = {
    ComponentKind.AGENT: ("mode", {"hosted": HostedAgent, "remote": RemoteAgent}),
    ComponentKind.MEMORY: (
        "kind",
        {
            "static": StaticMemory,
            "file": FileMemory,
            "keyValue": KeyValueMemory,
            "vector": VectorMemory,
        },
    ),
    ComponentKind.TOOLSET: ("kind", {"mcp": McpToolset, "openapi": OpenApiToolset}),
    ComponentKind.PROCESS: (
        "kind",
        {"collaboration": CollaborationProcess, "convergence": ConvergenceProcess},
    ),
}

_RESERVED = ("use", "extends")


# =============================================================================
# Structural merge
# =============================================================================


def _item_key(item: Any) -> Any:
    if isinstance(item, str):
        return ("ref", item)
    if isinstance(item, Mapping):
        if isinstance(item.get("use"), str):
            return ("ref", item["use"])
        if isinstance(item.get("name"), str):
            return ("name", item["name"])
    return None


def _merge_collection(parent: list[Any], child: list[Any]) -> list[Any]:
    """Append child items; a child item replaces a parent item with the same key."""
    child_by_key = {}
    for item in child:
        key = _item_key(item)
        if key is not None:
            child_by_key[key] = item

    result: list[Any] = []
    consumed: set[Any] = set()
    for item in parent:
        key = _item_key(item)
        if key is not None and key in child_by_key:
            result.append(child_by_key[key])
            consumed.add(key)
        else:
            result.append(item)
    for item in child:
        key = _item_key(item)
        if key is None or key not in consumed:
            result.append(item)
            if key is not None:
                consumed.add(key)
    return result


def _is_reference_value(value: Any) -> bool:
    return isinstance(value, str) or (isinstance(value, Mapping) and "use" in value)


def merge_definitions(
    parent: Mapping[str, Any], child: Mapping[str, Any], path: str = ""
) -> dict[str, Any]:
    """
    Structurally merge `child` over `parent`.

    - Scalars: child wins
    - Mappings: merged key by key, unless either side is a reference
      (`{use: ...}`), in which case the child replaces the parent
    - Append collections: parent items followed by new child items
    - Any other list (or an override-only path): child replaces parent
    """
    result: dict[str, Any] = copy.deepcopy(dict(parent))
    for key, value in child.items():
        key_path = f"{path}.{key}" if path else key
        existing = result.get(key)
        if (
            isinstance(existing, Mapping)
            and isinstance(value, Mapping)
            and not _is_reference_value(existing)
            and not _is_reference_value(value)
        ):
            result[key] = merge_definitions(existing, value, key_path)
        elif (
            isinstance(existing, list)
            and isinstance(value, list)
            and key in APPEND_COLLECTIONS
            and key_path not in OVERRIDE_ONLY
        ):
            result[key] = _merge_collection(existing, copy.deepcopy(value))
        else:
            result[key] = copy.deepcopy(value)
    return result


# =============================================================================
# Resolver
# =============================================================================


class Resolver:
    """
    Resolves components of a ReferenceGraph on demand.

    Usage:
        resolver = Resolver(ReferenceGraph.from_manifest(raw))
        agent = resolver.resolve(ComponentKind.AGENT, "GrammarBot")
        graph = resolver.resolve_all()
    """

    def __init__(self, graph: ReferenceGraph):
        self.graph = graph
        self._expanded: dict[ComponentRef, dict[str, Any]] = {}
        self._resolved: dict[ComponentRef, BaseModel] = {}
        self._expanding: list[ComponentRef] = []
        self._resolving: list[ComponentRef] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, kind: ComponentKind, name: str) -> Any:
        """Resolve one top-level component into its typed model."""
        return self._resolve_ref(ComponentRef(kind, name), path=str(ComponentRef(kind, name)))

    def resolve_all(self) -> ResolvedGraph:
        """Resolve every component of the graph."""
        sections: dict[ComponentKind, dict[str, Any]] = {kind: {} for kind in ComponentKind}
        for ref in self.graph.refs():
            sections[ref.kind][ref.name] = self._resolve_ref(ref, path=str(ref))

        logger.debug("Manifest resolved", components=len(self.graph))
        return ResolvedGraph(
            kernels=sections[ComponentKind.KERNEL],
            functions=sections[ComponentKind.FUNCTION],
            agents=sections[ComponentKind.AGENT],
            memories=sections[ComponentKind.MEMORY],
            toolsets=sections[ComponentKind.TOOLSET],
            authentication=sections[ComponentKind.AUTHENTICATION],
            processes=sections[ComponentKind.PROCESS],
        )

    # ------------------------------------------------------------------
    # Expansion (use / extends)
    # ------------------------------------------------------------------

    def _lookup(self, ref: ComponentRef, path: str) -> dict[str, Any]:
        definition = self.graph.get(ref)
        if definition is None:
            raise UnresolvedReference(f"no {ref.kind.value} named {ref.name!r}", path)
        return definition

    def _expand_ref(self, ref: ComponentRef, path: str) -> dict[str, Any]:
        """Expanded raw definition of a top-level component."""
        if ref in self._expanded:
            return self._expanded[ref]
        if ref in self._expanding:
            start = self._expanding.index(ref)
            cycle = [str(r) for r in self._expanding[start:]] + [str(ref)]
            raise CyclicReferenceError(cycle, path)

        self._expanding.append(ref)
        try:
            definition = self._lookup(ref, path)
            expanded = self._expand_definition(ref.kind, definition, str(ref))
        finally:
            self._expanding.pop()

        self._expanded[ref] = expanded
        return expanded

    def _expand_definition(
        self, kind: ComponentKind, definition: Mapping[str, Any], path: str
    ) -> dict[str, Any]:
        if "use" in definition:
            target = self._use_target(definition, path)
            return self._expand_ref(ComponentRef(kind, target), path)

        parent_name = definition.get("extends")
        if parent_name is None:
            return {k: copy.deepcopy(v) for k, v in definition.items()}
        if not isinstance(parent_name, str):
            raise InvalidDefinition("`extends` must name a component", path)

        parent = self._expand_ref(ComponentRef(kind, parent_name), f"{path}.extends")
        parent = {k: v for k, v in parent.items() if k != "name"}
        child = {k: v for k, v in definition.items() if k != "extends"}
        return merge_definitions(parent, child)

    @staticmethod
    def _use_target(definition: Mapping[str, Any], path: str) -> str:
        target = definition.get("use")
        if not isinstance(target, str) or not target:
            raise InvalidDefinition("`use` must name a component", path)
        others = sorted(k for k in definition if k != "use")
        if others:
            raise ConflictingProperties(
                f"`use` cannot be combined with: {', '.join(others)}", path
            )
        return target

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def _resolve_ref(self, ref: ComponentRef, path: str) -> Any:
        if ref in self._resolved:
            return self._resolved[ref]
        if ref in self._resolving:
            start = self._resolving.index(ref)
            cycle = [str(r) for r in self._resolving[start:]] + [str(ref)]
            raise CyclicReferenceError(cycle, path)

        definition = self._lookup(ref, path)
        if "use" in definition:
            # Substitution: the alias resolves to the very same component.
            target = ComponentRef(ref.kind, self._use_target(definition, str(ref)))
            self._resolving.append(ref)
            try:
                model = self._resolve_ref(target, f"{ref}.use")
            finally:
                self._resolving.pop()
            self._resolved[ref] = model
            return model

        self._resolving.append(ref)
        try:
            expanded = self._expand_ref(ref, path)
            model = self._materialize(ref.kind, ref.name, expanded, str(ref))
        finally:
            self._resolving.pop()

        self._resolved[ref] = model
        return model

    def _resolve_value(self, kind: ComponentKind, value: Any, name: str, path: str) -> Any:
        """Resolve a value found at a nested reference position."""
        if isinstance(value, str):
            return self._resolve_ref(ComponentRef(kind, value), path)
        if not isinstance(value, Mapping):
            raise InvalidDefinition(
                f"expected a {kind.value} reference or inline definition", path
            )
        if "use" in value:
            target = self._use_target(value, path)
            return self._resolve_ref(ComponentRef(kind, target), path)

        expanded = self._expand_definition(kind, value, path)
        inline_name = expanded.get("name") if isinstance(expanded.get("name"), str) else name
        return self._materialize(kind, inline_name, expanded, path)

    def _materialize(
        self, kind: ComponentKind, name: str, expanded: Mapping[str, Any], path: str
    ) -> Any:
        data = copy.deepcopy(dict(expanded))
        for key in _RESERVED:
            data.pop(key, None)

        for ref_field in REFERENCE_FIELDS[kind]:
            container = data
            for step in ref_field.path[:-1]:
                nested = container.get(step)
                if not isinstance(nested, dict):
                    container = None
                    break
                container = nested
            if container is None:
                continue
            leaf = ref_field.path[-1]
            value = container.get(leaf)
            if value is None:
                continue
            field_path = f"{path}.{ref_field.dotted}"
            if ref_field.many:
                if not isinstance(value, list):
                    raise InvalidDefinition("expected a list of references", field_path)
                container[leaf] = [
                    self._resolve_value(
                        ref_field.kind, item, f"{name}.{leaf}[{i}]", f"{field_path}[{i}]"
                    )
                    for i, item in enumerate(value)
                ]
            else:
                container[leaf] = self._resolve_value(
                    ref_field.kind, value, f"{name}.{leaf}", field_path
                )

        data["name"] = name
        data = _tag(kind, data, path)
        model_cls = _model_for(kind, data, path)
        try:
            return model_cls.model_validate(data)
        except ValidationError as exc:
            raise _definition_error(exc, path) from exc


def _tag(kind: ComponentKind, data: dict[str, Any], path: str) -> dict[str, Any]:
    """Fill the discriminator of tagged variants."""
    if kind is ComponentKind.AGENT:
        hosted_keys = {"instructions", "kernel", "function", "memory", "skills"}
        if "remote" in data:
            clashing = sorted(hosted_keys & set(data))
            if clashing:
                raise InvalidDefinition(
                    f"remote agent cannot also set hosted properties: {', '.join(clashing)}",
                    path,
                )
            data["mode"] = "remote"
        else:
            data["mode"] = "hosted"
    elif kind is ComponentKind.PROCESS:
        modes = [m for m in ("collaboration", "convergence") if m in data]
        if len(modes) != 1:
            raise InvalidDefinition(
                "process must declare exactly one of `collaboration` or `convergence`", path
            )
        mode = modes[0]
        body = data.pop(mode)
        if not isinstance(body, dict):
            raise InvalidDefinition(f"`{mode}` must be a mapping", path)
        data = {**body, **data, "kind": mode}
    elif kind in (ComponentKind.MEMORY, ComponentKind.TOOLSET) and "kind" not in data:
        raise MissingProperty("missing `kind`", path)
    return data


def _model_for(kind: ComponentKind, data: dict[str, Any], path: str) -> type[BaseModel]:
    if kind in _MODELS:
        return _MODELS[kind]
    tag_key, variants = _VARIANTS[kind]
    tag = data.get(tag_key)
    model_cls = variants.get(tag) if isinstance(tag, str) else None
    if model_cls is None:
        raise InvalidDefinition(
            f"unknown {kind.value} {tag_key} {tag!r} (expected one of {', '.join(variants)})",
            path,
        )
    return model_cls


def _definition_error(exc: ValidationError, path: str) -> InvalidDefinition | MissingProperty:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    where = f"{path}.{location}" if location else path
    if first.get("type") == "missing":
        return MissingProperty("missing required property", where)
    return InvalidDefinition(first.get("msg", str(exc)), where)


def resolve_manifest(raw: Mapping[str, Any] | ReferenceGraph) -> ResolvedGraph:
    """Resolve an already-parsed manifest mapping (or graph) into typed components."""
    graph = raw if isinstance(raw, ReferenceGraph) else ReferenceGraph.from_manifest(raw)
    return Resolver(graph).resolve_all()
