"""
Parse raw completions against a declared output schema.

Models wrap JSON in code fences, answer "Yes." for a boolean, or quote a
bare string; scalars are coerced before schema validation.
"""

from __future__ import annotations

import json
import re
from typing import Any

import jsonschema

from synod.errors import OutputSchemaViolation

_FENCE = re.compile(r"^\s*```[\w-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)
_TRUE = frozenset({"true", "yes", "y", "1"})
_FALSE = frozenset({"false", "no", "n", "0"})


def strip_fences(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text.strip()


def _schema_type(schema: dict[str, Any]) -> str | None:
    declared = schema.get("type")
    if isinstance(declared, list):
        declared = next((t for t in declared if t != "null"), None)
    return declared


def coerce_boolean(value: Any) -> bool:
    """
    Interpret a completion as a boolean.

    Raises:
        ValueError: The value is not recognizably true or false
    """
    if isinstance(value, bool):
        return value
    text = strip_fences(str(value)).strip().strip("\"'").rstrip(".!").strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"not a boolean: {str(value)[:80]!r}")


def _coerce_number(text: str, integer: bool) -> int | float:
    cleaned = text.strip().strip("\"'").rstrip(".")
    number = float(cleaned)
    if integer:
        if not number.is_integer():
            raise ValueError(f"not an integer: {cleaned!r}")
        return int(number)
    return int(number) if re.fullmatch(r"-?\d+", cleaned) else number


def _decode_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    # Fall back to the outermost object or array embedded in prose.
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise ValueError("response is not valid JSON")


def coerce(raw: str, schema: dict[str, Any]) -> Any:
    """Decode a raw completion into the JSON type the schema declares."""
    text = strip_fences(raw)
    kind = _schema_type(schema)
    if kind == "boolean":
        return coerce_boolean(text)
    if kind in ("number", "integer"):
        return _coerce_number(text, integer=kind == "integer")
    if kind == "string":
        if len(text) >= 2 and text[0] == text[-1] == '"':
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text
        return text
    return _decode_json(text)


def parse_output(raw: str, schema: dict[str, Any] | None, function: str | None = None) -> Any:
    """
    Parse and validate a completion.

    Without a schema the raw text is returned unchanged.

    Raises:
        OutputSchemaViolation: The response cannot be coerced or fails validation
    """
    if schema is None:
        return raw
    try:
        value = coerce(raw, schema)
    except ValueError as e:
        raise OutputSchemaViolation(str(e), function, raw) from e
    try:
        jsonschema.validate(value, schema)
    except jsonschema.ValidationError as e:
        raise OutputSchemaViolation(e.message, function, raw) from e
    return value


def corrective_prompt(
    prompt: str, raw: str, error: OutputSchemaViolation, schema: dict[str, Any]
) -> str:
    """Follow-up prompt asking the model to fix a non-conforming answer."""
    return (
        f"{prompt}\n\n"
        f"Your previous answer was:\n{raw}\n\n"
        f"It did not match the required output format ({error}). "
        "Answer again with only a value matching this JSON schema:\n"
        f"{json.dumps(schema, sort_keys=True)}"
    )
