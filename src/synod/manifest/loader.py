"""
Manifest loading from YAML or JSON files.

Supports:
  include: relative/or/absolute/path.yaml
  include: [base.yaml, shared.yaml]

Included manifests are merged first (in order); the including document
overrides them section by section, component by component.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from synod.manifest.graph import KIND_BY_SECTION

logger = structlog.get_logger()


class ManifestLoadError(RuntimeError):
    pass


def _merge_sections(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge manifests section by section; same-named components are replaced wholesale."""
    result: dict[str, Any] = dict(base)
    for section, items in override.items():
        existing = result.get(section)
        if isinstance(existing, dict) and isinstance(items, dict):
            result[section] = {**existing, **items}
        else:
            result[section] = items
    return result


def _read_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ManifestLoadError(f"Manifest not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ManifestLoadError(f"Failed to parse manifest: {path}") from exc
    if not isinstance(raw, dict):
        raise ManifestLoadError(f"Expected a mapping at top-level: {path}")
    return dict(raw)


def _load_with_includes(path: Path, *, seen: set[Path]) -> dict[str, Any]:
    resolved = path.resolve()
    if resolved in seen:
        raise ManifestLoadError(f"Manifest include cycle detected at {resolved}")
    seen = seen | {resolved}

    data = _read_document(resolved)
    include_value = data.pop("include", None)
    includes: list[str] = []
    if isinstance(include_value, str) and include_value.strip():
        includes = [include_value]
    elif isinstance(include_value, list):
        includes = [str(x) for x in include_value if str(x).strip()]
    elif include_value is not None:
        raise ManifestLoadError(f"`include` must be a path or list of paths: {path}")

    base: dict[str, Any] = {}
    for include in includes:
        include_path = Path(include)
        if not include_path.is_absolute():
            include_path = resolved.parent / include_path
        base = _merge_sections(base, _load_with_includes(include_path, seen=seen))

    return _merge_sections(base, data)


def load_manifest(path: str | Path) -> dict[str, Any]:
    """Load a manifest file (following includes) into a plain mapping."""
    path = Path(path)
    manifest = _load_with_includes(path, seen=set())

    unknown = sorted(k for k in manifest if k not in KIND_BY_SECTION)
    if unknown:
        raise ManifestLoadError(
            f"Unknown manifest sections in {path}: {', '.join(unknown)}"
        )

    logger.debug(
        "Manifest loaded",
        path=str(path),
        sections={k: len(v or {}) for k, v in manifest.items()},
    )
    return manifest
