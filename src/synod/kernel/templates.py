"""
Prompt templates with `{{name}}` placeholders.

Rendering is a single pass: substituted values are never re-scanned, so a
value containing `{{...}}` is emitted literally.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from synod.errors import UnboundPlaceholder

PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.-]*)\s*\}\}")


def placeholders(template: str) -> list[str]:
    """Placeholder names in order of first appearance."""
    seen: list[str] = []
    for match in PLACEHOLDER.finditer(template):
        name = match.group(1)
        if name not in seen:
            seen.append(name)
    return seen


def to_text(value: Any) -> str:
    """Textual form of a bound value: strings verbatim, everything else as JSON."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def render(template: str, values: Mapping[str, Any], function: str | None = None) -> str:
    """
    Substitute every placeholder with the textual form of its value.

    Raises:
        UnboundPlaceholder: A placeholder names a variable absent from `values`
    """
    unbound = [name for name in placeholders(template) if name not in values]
    if unbound:
        raise UnboundPlaceholder(
            f"template references undeclared variable(s): {', '.join(unbound)}", function
        )
    return PLACEHOLDER.sub(lambda m: to_text(values[m.group(1)]), template)
