"""
Built-in capabilities that need no external service.

- StaticReasoningProvider: canned responses (dry runs, demos, tests)
- StaticMemoryProvider / FileMemoryProvider: in-manifest or on-disk entries
"""

from __future__ import annotations

import itertools
import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from synod.errors import ProviderUnavailable
from synod.providers.base import Credential, MemoryEntry, MemoryProvider, ReasoningProvider

_WORD = re.compile(r"[a-z0-9]+")


class StaticReasoningProvider(ReasoningProvider):
    """
    Returns configured responses in order, cycling when exhausted.

    With no responses configured it echoes the last non-empty prompt line.
    """

    name = "static"

    def __init__(self, responses: list[str] | None = None):
        self.responses = list(responses or [])
        self._cycle = itertools.cycle(self.responses) if self.responses else None
        self.prompts: list[str] = []

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> StaticReasoningProvider:
        responses = settings.get("responses")
        if responses is None and "response" in settings:
            responses = [settings["response"]]
        if responses is not None and not isinstance(responses, list):
            raise ProviderUnavailable("static provider `responses` must be a list", cls.name)
        return cls([str(r) for r in responses or []])

    async def complete(
        self, prompt: str, settings: Mapping[str, Any], credential: Credential | None = None
    ) -> str:
        self.prompts.append(prompt)
        if self._cycle is not None:
            return next(self._cycle)
        lines = [line for line in prompt.splitlines() if line.strip()]
        return lines[-1].strip() if lines else ""


def _entry_text(entry: Any) -> tuple[str, dict[str, Any]]:
    if isinstance(entry, Mapping):
        content = entry.get("content", entry.get("text"))
        metadata = {k: v for k, v in entry.items() if k not in ("content", "text")}
        if content is None:
            return json.dumps(dict(entry), sort_keys=True), {}
        return str(content), metadata
    return str(entry), {}


def _rank(entries: list[MemoryEntry], criteria: Mapping[str, Any]) -> list[MemoryEntry]:
    limit = int(criteria.get("limit") or len(entries) or 1)
    query_words = set(_WORD.findall(str(criteria.get("query") or "").lower()))
    if not query_words:
        return entries[:limit]

    scored: list[tuple[float, int, MemoryEntry]] = []
    for index, entry in enumerate(entries):
        words = set(_WORD.findall(entry.content.lower()))
        overlap = len(words & query_words) / len(query_words)
        scored.append((overlap, index, entry))
    # Highest overlap first; declaration order breaks ties.
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [
        MemoryEntry(content=e.content, score=score, metadata=e.metadata)
        for score, _i, e in scored[:limit]
    ]


class StaticMemoryProvider(MemoryProvider):
    name = "static"

    def __init__(self, entries: list[Any]):
        self.entries = []
        for raw in entries:
            content, metadata = _entry_text(raw)
            self.entries.append(MemoryEntry(content=content, metadata=metadata))

    async def query(
        self, criteria: Mapping[str, Any], credential: Credential | None = None
    ) -> list[MemoryEntry]:
        return _rank(self.entries, criteria)


class FileMemoryProvider(MemoryProvider):
    """Entries read from a file (`lines`, `text`, `yaml` or `json`)."""

    name = "file"

    def __init__(self, path: Path, format: str = "lines"):
        self.path = Path(path)
        self.format = format
        self._entries: list[MemoryEntry] | None = None

    def _load(self) -> list[MemoryEntry]:
        if self._entries is not None:
            return self._entries
        if not self.path.exists():
            raise ProviderUnavailable(f"memory file not found: {self.path}", self.name)
        text = self.path.read_text(encoding="utf-8")
        if self.format == "lines":
            raw: list[Any] = [line for line in text.splitlines() if line.strip()]
        elif self.format == "text":
            raw = [text]
        else:
            data = json.loads(text) if self.format == "json" else yaml.safe_load(text)
            if isinstance(data, Mapping):
                data = data.get("entries", [data])
            if data is None:
                raw = []
            elif isinstance(data, list):
                raw = data
            else:
                raw = [data]
        self._entries = [MemoryEntry(content=c, metadata=m) for c, m in map(_entry_text, raw)]
        return self._entries

    async def query(
        self, criteria: Mapping[str, Any], credential: Credential | None = None
    ) -> list[MemoryEntry]:
        return _rank(self._load(), criteria)
