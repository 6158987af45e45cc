"""
Kernel Invoker - bind, render, complete and parse one kernel function call.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

import structlog

from synod.context import RunContext
from synod.errors import OutputSchemaViolation
from synod.kernel.binding import Sanitizer, bind_variables, strip_control_characters
from synod.kernel.output import corrective_prompt, parse_output
from synod.kernel.templates import render
from synod.manifest.models import KernelFunction, ResolvedKernel
from synod.providers.base import Credential, ReasoningProvider
from synod.providers.registry import CapabilityRegistry

logger = structlog.get_logger()


def merged_settings(kernel: ResolvedKernel, *overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Kernel reasoning settings overlaid with function/agent settings."""
    settings: dict[str, Any] = {}
    if kernel.reasoning is not None:
        if kernel.reasoning.model:
            settings["model"] = kernel.reasoning.model
        settings.update(kernel.reasoning.settings)
    for override in overrides:
        settings.update(override)
    return settings


async def complete(
    provider: ReasoningProvider,
    prompt: str,
    settings: Mapping[str, Any],
    context: RunContext,
    credential: Credential | None = None,
    **log_context: Any,
) -> str:
    """One reasoning completion with timeout, cancellation and a single retry."""
    return await context.call_provider(
        lambda: provider.complete(prompt, settings, credential), provider.name, **log_context
    )


class KernelInvoker:
    """
    Invokes kernel functions against their kernel's reasoning capability.

    Stateless apart from the capability registry, so one instance serves
    concurrent invocations.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        sanitizer: Sanitizer | None = strip_control_characters,
        output_retry: bool = True,
    ) -> None:
        self.registry = registry
        self.sanitizer = sanitizer
        self.output_retry = output_retry

    async def invoke(
        self,
        function: KernelFunction,
        bindings: Mapping[str, Any] | None = None,
        context: RunContext | None = None,
        kernel: ResolvedKernel | None = None,
    ) -> Any:
        """
        Invoke a kernel function.

        Args:
            function: Resolved kernel function
            bindings: Variable name -> value
            context: Run context (a default unbounded one if omitted)
            kernel: Kernel overriding the function's own

        Returns:
            Raw text, or the parsed value when an output schema is declared

        Raises:
            BindingError: Bindings or output do not match the declaration
            ProviderError: The reasoning capability failed
            Cancelled: The run was cancelled mid-call
        """
        context = context or RunContext()
        kernel = kernel or function.kernel
        values = bind_variables(function, bindings or {}, self.sanitizer)
        prompt = render(function.template, values, function.name)

        provider = self.registry.reasoning(kernel)
        credential = self.registry.reasoning_credential(kernel)
        settings = merged_settings(kernel, function.settings)
        schema = function.output_variable.json_schema if function.output_variable else None

        start = time.monotonic()
        raw = await complete(
            provider, prompt, settings, context, credential, function=function.name
        )
        try:
            value = parse_output(raw, schema, function.name)
        except OutputSchemaViolation as e:
            if not self.output_retry or schema is None:
                raise
            logger.info(
                "Output did not match schema, asking for a correction",
                function=function.name,
                error=str(e),
            )
            retry_prompt = corrective_prompt(prompt, raw, e, schema)
            raw = await complete(
                provider, retry_prompt, settings, context, credential, function=function.name
            )
            value = parse_output(raw, schema, function.name)

        logger.debug(
            "Kernel function invoked",
            function=function.name,
            kernel=kernel.name,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return value
