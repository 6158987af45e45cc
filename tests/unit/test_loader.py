"""
Tests for manifest file loading.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from synod.manifest.loader import ManifestLoadError, load_manifest


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestLoadManifest:
    def test_yaml(self, tmp_path: Path):
        path = _write(
            tmp_path / "agents.yaml",
            """
kernels:
  default:
    reasoning:
      provider: static
agents:
  Writer:
    kernel: default
""",
        )
        manifest = load_manifest(path)
        assert manifest["agents"]["Writer"] == {"kernel": "default"}

    def test_json(self, tmp_path: Path):
        path = _write(
            tmp_path / "agents.json",
            json.dumps({"kernels": {"default": {"reasoning": {"provider": "static"}}}}),
        )
        assert "default" in load_manifest(path)["kernels"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ManifestLoadError, match="not found"):
            load_manifest(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write(tmp_path / "bad.yaml", "kernels: [unclosed\n")
        with pytest.raises(ManifestLoadError, match="Failed to parse"):
            load_manifest(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path):
        path = _write(tmp_path / "list.yaml", "- a\n- b\n")
        with pytest.raises(ManifestLoadError, match="mapping"):
            load_manifest(path)

    def test_unknown_section(self, tmp_path: Path):
        path = _write(tmp_path / "agents.yaml", "widgets: {}\n")
        with pytest.raises(ManifestLoadError, match="widgets"):
            load_manifest(path)

    def test_empty_file_is_empty_manifest(self, tmp_path: Path):
        path = _write(tmp_path / "empty.yaml", "")
        assert load_manifest(path) == {}


class TestIncludes:
    def test_include_merges_sections(self, tmp_path: Path):
        _write(
            tmp_path / "shared" / "kernels.yaml",
            """
kernels:
  default:
    reasoning: {provider: static}
  fast:
    reasoning: {provider: static, model: small}
""",
        )
        path = _write(
            tmp_path / "agents.yaml",
            """
include: shared/kernels.yaml
kernels:
  fast:
    reasoning: {provider: static, model: tiny}
agents:
  Writer: {kernel: fast}
""",
        )
        manifest = load_manifest(path)

        assert set(manifest["kernels"]) == {"default", "fast"}
        # Same-named components are replaced, not merged.
        assert manifest["kernels"]["fast"] == {"reasoning": {"provider": "static", "model": "tiny"}}
        assert "include" not in manifest

    def test_include_list_in_order(self, tmp_path: Path):
        _write(tmp_path / "a.yaml", "agents:\n  X: {instructions: from-a}\n")
        _write(tmp_path / "b.yaml", "agents:\n  X: {instructions: from-b}\n")
        path = _write(tmp_path / "main.yaml", "include: [a.yaml, b.yaml]\n")

        assert load_manifest(path)["agents"]["X"] == {"instructions": "from-b"}

    def test_include_cycle(self, tmp_path: Path):
        _write(tmp_path / "a.yaml", "include: b.yaml\n")
        path = _write(tmp_path / "b.yaml", "include: a.yaml\n")

        with pytest.raises(ManifestLoadError, match="cycle"):
            load_manifest(path)

    def test_diamond_include_is_not_a_cycle(self, tmp_path: Path):
        _write(tmp_path / "base.yaml", "kernels:\n  default: {reasoning: {provider: static}}\n")
        _write(tmp_path / "left.yaml", "include: base.yaml\n")
        _write(tmp_path / "right.yaml", "include: base.yaml\n")
        path = _write(tmp_path / "main.yaml", "include: [left.yaml, right.yaml]\n")

        assert "default" in load_manifest(path)["kernels"]

    def test_include_must_be_path_or_list(self, tmp_path: Path):
        path = _write(tmp_path / "main.yaml", "include: {a: 1}\n")
        with pytest.raises(ManifestLoadError, match="include"):
            load_manifest(path)
