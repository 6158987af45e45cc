"""
Error taxonomy for the Synod runtime.

Four families, matching where a failure is caught:
- DefinitionError: the manifest itself is wrong (fatal at resolution)
- BindingError: a single function invocation was called incorrectly
- ProviderError / RemoteAgentError: an external call failed
- ProcessError: a run terminated without producing an answer
"""

from __future__ import annotations


class SynodError(Exception):
    """Base class for all runtime errors."""

    retryable: bool = False


# =============================================================================
# Definition errors
# =============================================================================


class DefinitionError(SynodError):
    """A manifest component could not be resolved."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class UnresolvedReference(DefinitionError):
    """A `use`/`extends` reference names a component that does not exist."""


class CyclicReferenceError(DefinitionError):
    """A reference chain revisits a component already being resolved."""

    def __init__(self, cycle: list[str], path: str | None = None):
        self.cycle = list(cycle)
        super().__init__("cyclic reference: " + " -> ".join(cycle), path)


class ConflictingProperties(DefinitionError):
    """A definition sets `use` together with other properties."""


class MissingProperty(DefinitionError):
    """A required property is absent from a resolved definition."""


class InvalidDefinition(DefinitionError):
    """A resolved definition has the wrong shape."""


# =============================================================================
# Binding errors
# =============================================================================


class BindingError(SynodError):
    """A kernel function invocation could not be bound or validated."""

    def __init__(self, message: str, function: str | None = None):
        self.function = function
        super().__init__(f"{function}: {message}" if function else message)


class MissingVariable(BindingError):
    """A required input variable has no value and no default."""


class UnknownVariable(BindingError):
    """A bound variable is not declared by the function."""


class InvalidVariable(BindingError):
    """A bound value does not satisfy the variable's declared schema."""


class UnboundPlaceholder(BindingError):
    """The template references a placeholder with no declared variable."""


class OutputSchemaViolation(BindingError):
    """The provider response did not match the declared output schema."""

    def __init__(self, message: str, function: str | None = None, raw: str | None = None):
        self.raw = raw
        super().__init__(message, function)


# =============================================================================
# Provider / transport errors
# =============================================================================


class ProviderError(SynodError):
    """A provider capability call (reasoning, embedding, memory, toolset) failed."""

    def __init__(self, message: str, provider: str | None = None, retryable: bool | None = None):
        self.provider = provider
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class ProviderUnavailable(ProviderError):
    retryable = True


class ProviderTimeout(ProviderError):
    retryable = True


class ProviderRejected(ProviderError):
    """The provider refused the request (e.g. content policy)."""


class CredentialError(ProviderError):
    """A credential could not be acquired for an authentication policy."""


class RemoteAgentError(SynodError):
    """A remote agent channel call failed."""

    def __init__(self, message: str, endpoint: str | None = None, retryable: bool | None = None):
        self.endpoint = endpoint
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)


class RemoteAgentUnavailable(RemoteAgentError):
    retryable = True


class RemoteAgentTimeout(RemoteAgentError):
    retryable = True


# =============================================================================
# Process errors
# =============================================================================


class ProcessError(SynodError):
    """A process run terminated without an answer."""


class SelectionOutOfRange(ProcessError):
    """The selection strategy named an agent that is not a participant."""

    def __init__(self, selected: str, participants: list[str]):
        self.selected = selected
        self.participants = list(participants)
        super().__init__(
            f"selection strategy chose {selected!r}, expected one of {', '.join(participants)}"
        )


class ConvergenceExhausted(ProcessError):
    """Every agent in a convergence fan-out failed."""

    def __init__(self, failures: dict[str, str]):
        self.failures = dict(failures)
        super().__init__(f"all {len(failures)} agents failed")


class Cancelled(ProcessError):
    """The run was cancelled or ran past its deadline."""
