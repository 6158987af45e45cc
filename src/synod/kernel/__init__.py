"""
Kernel layer: templates, variable binding, output parsing and invocation.
"""

from synod.kernel.binding import Sanitizer, bind_variables, strip_control_characters
from synod.kernel.invoker import KernelInvoker, complete, merged_settings
from synod.kernel.output import coerce_boolean, parse_output, strip_fences
from synod.kernel.templates import placeholders, render, to_text

__all__ = [
    "KernelInvoker",
    "Sanitizer",
    "bind_variables",
    "coerce_boolean",
    "complete",
    "merged_settings",
    "parse_output",
    "placeholders",
    "render",
    "strip_control_characters",
    "strip_fences",
    "to_text",
]
