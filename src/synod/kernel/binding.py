"""
Variable binding and validation for kernel function calls.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

import jsonschema

from synod.errors import InvalidVariable, MissingVariable, UnknownVariable
from synod.manifest.models import KernelFunction, VariableSpec

# (variable spec, value) -> sanitized value
Sanitizer = Callable[[VariableSpec, Any], Any]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def strip_control_characters(spec: VariableSpec, value: Any) -> Any:
    """Default sanitizer: drops non-printing control characters from text."""
    if isinstance(value, str):
        return _CONTROL_CHARS.sub("", value)
    return value


def bind_variables(
    function: KernelFunction,
    bindings: Mapping[str, Any],
    sanitizer: Sanitizer | None = strip_control_characters,
) -> dict[str, Any]:
    """
    Validate bindings against the function's declared input variables.

    Returns a value for every declared variable: the bound value, else the
    default, else None (rendered as empty text) for optional variables.

    Raises:
        UnknownVariable: A bound name is not declared
        MissingVariable: A required variable has no value and no default
        InvalidVariable: A value violates the variable's JSON schema
    """
    unknown = sorted(set(bindings) - {spec.name for spec in function.input_variables})
    if unknown:
        raise UnknownVariable(f"undeclared variable(s): {', '.join(unknown)}", function.name)

    values: dict[str, Any] = {}
    for spec in function.input_variables:
        if spec.name in bindings:
            value = bindings[spec.name]
        elif spec.default is not None:
            value = spec.default
        elif spec.required:
            raise MissingVariable(f"required variable {spec.name!r} is not bound", function.name)
        else:
            values[spec.name] = None
            continue

        if spec.json_schema is not None:
            try:
                jsonschema.validate(value, spec.json_schema)
            except jsonschema.ValidationError as e:
                raise InvalidVariable(
                    f"variable {spec.name!r}: {e.message}", function.name
                ) from e
            except jsonschema.SchemaError as e:
                raise InvalidVariable(
                    f"variable {spec.name!r} declares an invalid schema: {e.message}",
                    function.name,
                ) from e

        if spec.allow_dangerous_content and sanitizer is not None:
            value = sanitizer(spec, value)
        values[spec.name] = value
    return values
