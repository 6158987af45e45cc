"""
Pydantic models for resolved manifest components.

Every model here describes a fully materialized component: no `use` or
`extends` survives resolution. Polymorphic components are tagged variants
discriminated by a literal field (`mode` for agents, `kind` for memories,
toolsets and processes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MAXIMUM_ITERATIONS = 99


class ComponentModel(BaseModel):
    """Base for all resolved components (immutable, camelCase manifest keys)."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# Authentication & Toolsets
# =============================================================================


class AuthenticationPolicy(ComponentModel):
    """How to acquire a credential for outbound calls."""

    name: str
    scheme: str = Field(..., description="apiKey, bearer, basic, oauth2, oidc, mtls, ...")
    env: str | None = Field(default=None, description="Env var holding the secret/token")
    username_env: str | None = None
    password_env: str | None = None
    header: str | None = Field(default=None, description="Header name for apiKey schemes")
    settings: dict[str, Any] = Field(default_factory=dict)


class McpToolset(ComponentModel):
    kind: Literal["mcp"]
    name: str
    description: str = ""
    endpoint: str | None = None
    command: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    authentication: AuthenticationPolicy | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_transport(self) -> McpToolset:
        if not self.endpoint and not self.command:
            raise ValueError("mcp toolset needs an `endpoint` or a `command`")
        return self


class OpenApiToolset(ComponentModel):
    kind: Literal["openapi"]
    name: str
    description: str = ""
    spec: str
    tools: list[str] = Field(default_factory=list)
    authentication: AuthenticationPolicy | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


Toolset = McpToolset | OpenApiToolset


# =============================================================================
# Kernels
# =============================================================================


class ReasoningSpec(ComponentModel):
    """Reasoning (completion) capability bound to a kernel."""

    provider: str
    model: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    authentication: AuthenticationPolicy | None = None


class EmbeddingSpec(ComponentModel):
    """Embedding capability bound to a kernel."""

    provider: str
    model: str | None = None
    dimensions: int | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    authentication: AuthenticationPolicy | None = None


class ResolvedKernel(ComponentModel):
    name: str
    description: str = ""
    reasoning: ReasoningSpec | None = None
    embedding: EmbeddingSpec | None = None
    toolsets: list[Toolset] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_capabilities(self) -> ResolvedKernel:
        if self.reasoning is None and self.embedding is None:
            raise ValueError("kernel declares neither `reasoning` nor `embedding`")
        return self


def _require_reasoning(kernel: ResolvedKernel | None, owner: str) -> None:
    if kernel is not None and kernel.reasoning is None:
        raise ValueError(f"{owner} requires kernel {kernel.name!r} to declare `reasoning`")


# =============================================================================
# Memories
# =============================================================================


class StaticMemory(ComponentModel):
    kind: Literal["static"]
    name: str
    description: str = ""
    entries: list[Any] = Field(default_factory=list)


class FileMemory(ComponentModel):
    kind: Literal["file"]
    name: str
    description: str = ""
    path: str
    format: Literal["lines", "text", "yaml", "json"] = "lines"


class KeyValueMemory(ComponentModel):
    kind: Literal["keyValue"]
    name: str
    description: str = ""
    provider: str
    namespace: str | None = None
    authentication: AuthenticationPolicy | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class VectorMemory(ComponentModel):
    kind: Literal["vector"]
    name: str
    description: str = ""
    provider: str
    kernel: ResolvedKernel
    collection: str
    top_k: int = Field(default=5, ge=1)
    authentication: AuthenticationPolicy | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_embedding(self) -> VectorMemory:
        if self.kernel.embedding is None:
            raise ValueError(
                f"vector memory requires kernel {self.kernel.name!r} to declare `embedding`"
            )
        return self


Memory = StaticMemory | FileMemory | KeyValueMemory | VectorMemory


# =============================================================================
# Kernel functions
# =============================================================================


class VariableSpec(ComponentModel):
    """Declared input variable of a kernel function."""

    name: str
    description: str = ""
    required: bool = False
    default: Any = None
    json_schema: dict[str, Any] | None = Field(default=None, alias="schema")
    allow_dangerous_content: bool = False


class OutputVariableSpec(ComponentModel):
    description: str = ""
    json_schema: dict[str, Any] | None = Field(default=None, alias="schema")


class KernelFunction(ComponentModel):
    """A template-backed reasoning unit."""

    name: str
    description: str = ""
    template: str
    kernel: ResolvedKernel
    input_variables: list[VariableSpec] = Field(default_factory=list)
    output_variable: OutputVariableSpec | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_function(self) -> KernelFunction:
        _require_reasoning(self.kernel, f"function {self.name!r}")
        names = [v.name for v in self.input_variables]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate input variables: {', '.join(duplicates)}")
        return self

    def variable(self, name: str) -> VariableSpec | None:
        for spec in self.input_variables:
            if spec.name == name:
                return spec
        return None


# =============================================================================
# Agents
# =============================================================================


class Skill(ComponentModel):
    name: str
    description: str = ""


class HostedAgent(ComponentModel):
    """Agent backed by a local kernel (optionally through a kernel function)."""

    mode: Literal["hosted"] = "hosted"
    name: str
    description: str = ""
    instructions: str = ""
    skills: list[Skill] = Field(default_factory=list)
    kernel: ResolvedKernel | None = None
    memory: Memory | None = None
    function: KernelFunction | None = None
    toolsets: list[Toolset] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)
    history_variable_name: str = "history"
    instructions_variable_name: str = "instructions"

    @field_validator("skills", mode="before")
    @classmethod
    def _normalize_skills(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"name": item} if isinstance(item, str) else item for item in value]

    @model_validator(mode="after")
    def _check_backing(self) -> HostedAgent:
        if self.kernel is None and self.function is None:
            raise ValueError("hosted agent needs a `kernel` or a `function`")
        if self.function is None:
            _require_reasoning(self.kernel, f"agent {self.name!r}")
        return self


class RemoteChannelSpec(ComponentModel):
    endpoint: str
    name: str | None = None
    authentication: AuthenticationPolicy | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)


class RemoteAgent(ComponentModel):
    """Agent reached over an A2A channel."""

    mode: Literal["remote"] = "remote"
    name: str
    description: str = ""
    remote: RemoteChannelSpec


ResolvedAgent = HostedAgent | RemoteAgent


# =============================================================================
# Strategies & processes
# =============================================================================


def _check_bound_names(strategy: Any, *fields: str) -> None:
    """
    Variable names set explicitly on a strategy must be declared by its function.

    Defaulted names stay optional: a function may leave out e.g. the history.
    """
    function: KernelFunction = strategy.function
    for field_name in fields:
        if field_name not in strategy.model_fields_set:
            continue
        name = getattr(strategy, field_name)
        if function.variable(name) is None:
            raise ValueError(
                f"{to_camel(field_name)} {name!r} is not an input variable "
                f"of function {function.name!r}"
            )


class SelectionStrategy(ComponentModel):
    function: KernelFunction
    agents_variable_name: str = "agents"
    history_variable_name: str = "history"

    @model_validator(mode="after")
    def _check_names(self) -> SelectionStrategy:
        _check_bound_names(self, "agents_variable_name", "history_variable_name")
        return self


class TerminationStrategy(ComponentModel):
    function: KernelFunction
    agent_variable_name: str = "agent"
    history_variable_name: str = "history"
    agents: list[str] = Field(default_factory=list, description="Allow-list of agent names")

    @model_validator(mode="after")
    def _check_names(self) -> TerminationStrategy:
        _check_bound_names(self, "agent_variable_name", "history_variable_name")
        return self


class DecompositionStrategy(ComponentModel):
    function: KernelFunction
    prompt_variable_name: str = "prompt"
    agents_variable_name: str = "agents"

    @model_validator(mode="after")
    def _check_names(self) -> DecompositionStrategy:
        _check_bound_names(self, "prompt_variable_name", "agents_variable_name")
        return self


class SynthesisStrategy(ComponentModel):
    function: KernelFunction
    inputs_variable_name: str = "inputs"

    @model_validator(mode="after")
    def _check_names(self) -> SynthesisStrategy:
        _check_bound_names(self, "inputs_variable_name")
        return self


def _check_participants(agents: list[Any]) -> list[str]:
    if not agents:
        raise ValueError("process declares no agents")
    names = [agent.name for agent in agents]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"duplicate participants: {', '.join(duplicates)}")
    return names


class CollaborationProcess(ComponentModel):
    """Sequential turn-taking process."""

    kind: Literal["collaboration"] = "collaboration"
    name: str
    description: str = ""
    agents: list[ResolvedAgent]
    initial_agent: str | None = None
    maximum_iterations: int | None = Field(default=None, ge=1)
    selection: SelectionStrategy | None = None
    termination: TerminationStrategy | None = None

    @model_validator(mode="after")
    def _check_process(self) -> CollaborationProcess:
        names = _check_participants(self.agents)
        if self.initial_agent is not None and self.initial_agent not in names:
            raise ValueError(f"initialAgent {self.initial_agent!r} is not a participant")
        if self.termination is not None:
            unknown = [n for n in self.termination.agents if n not in names]
            if unknown:
                raise ValueError(f"termination agents are not participants: {', '.join(unknown)}")
        return self

    @property
    def agent_names(self) -> list[str]:
        return [agent.name for agent in self.agents]


class ConvergenceProcess(ComponentModel):
    """Parallel decompose / fan-out / synthesize process."""

    kind: Literal["convergence"] = "convergence"
    name: str
    description: str = ""
    agents: list[ResolvedAgent]
    decomposition: DecompositionStrategy | None = None
    synthesis: SynthesisStrategy

    @model_validator(mode="after")
    def _check_process(self) -> ConvergenceProcess:
        _check_participants(self.agents)
        return self

    @property
    def agent_names(self) -> list[str]:
        return [agent.name for agent in self.agents]


Process = CollaborationProcess | ConvergenceProcess


# =============================================================================
# Resolved graph
# =============================================================================


@dataclass(frozen=True)
class ResolvedGraph:
    """Fully materialized manifest, keyed by component name per kind."""

    kernels: dict[str, ResolvedKernel] = field(default_factory=dict)
    functions: dict[str, KernelFunction] = field(default_factory=dict)
    agents: dict[str, HostedAgent | RemoteAgent] = field(default_factory=dict)
    memories: dict[str, StaticMemory | FileMemory | KeyValueMemory | VectorMemory] = field(
        default_factory=dict
    )
    toolsets: dict[str, McpToolset | OpenApiToolset] = field(default_factory=dict)
    authentication: dict[str, AuthenticationPolicy] = field(default_factory=dict)
    processes: dict[str, CollaborationProcess | ConvergenceProcess] = field(default_factory=dict)

    def process(self, name: str) -> CollaborationProcess | ConvergenceProcess:
        try:
            return self.processes[name]
        except KeyError:
            raise KeyError(f"unknown process {name!r}") from None

    def agent(self, name: str) -> HostedAgent | RemoteAgent:
        try:
            return self.agents[name]
        except KeyError:
            raise KeyError(f"unknown agent {name!r}") from None

    def to_dict(self) -> dict[str, Any]:
        """Serialize with manifest (camelCase) keys."""
        sections = {
            "kernels": self.kernels,
            "functions": self.functions,
            "agents": self.agents,
            "memories": self.memories,
            "toolsets": self.toolsets,
            "authentication": self.authentication,
            "processes": self.processes,
        }
        return {
            section: {
                name: model.model_dump(mode="json", by_alias=True, exclude_none=True)
                for name, model in items.items()
            }
            for section, items in sections.items()
            if items
        }
