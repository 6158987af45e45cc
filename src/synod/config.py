"""
Runtime Configuration - settings for process execution.

Loaded from YAML config file with environment variable override support.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from synod.manifest.models import DEFAULT_MAXIMUM_ITERATIONS

ENV_PREFIX = "SYNOD_"

# env var suffix -> (field name, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Any]] = {
    "MAX_CONCURRENCY": ("max_concurrency", int),
    "INVOCATION_TIMEOUT": ("invocation_timeout_seconds", float),
    "RUN_TIMEOUT": ("run_timeout_seconds", float),
    "RETRY_BACKOFF": ("retry_backoff_seconds", float),
    "LOG_LEVEL": ("log_level", str),
    "LOG_FORMAT": ("log_format", str),
}


def _load_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return dict(data) if isinstance(data, dict) else {}


@dataclass
class RuntimeConfig:
    """Execution settings shared by every process run of a Runtime."""

    # Bounded pool for concurrent agent/kernel invocations
    max_concurrency: int = 8

    # Timeouts: per invocation, and an optional budget for a whole run
    invocation_timeout_seconds: float = 120.0
    run_timeout_seconds: float | None = None

    # Single retry for transient provider/transport failures
    retry_backoff_seconds: float = 1.0

    default_maximum_iterations: int = DEFAULT_MAXIMUM_ITERATIONS

    # Retry once with a corrective prompt when output misses its schema
    output_retry: bool = True

    log_level: str = "INFO"
    log_format: str = "console"  # console, json

    config_path: Path | None = None

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.invocation_timeout_seconds <= 0:
            raise ValueError("invocation_timeout_seconds must be > 0")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be > 0")
        if self.default_maximum_iterations < 1:
            raise ValueError("default_maximum_iterations must be >= 1")
        if self.log_format not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {self.log_format!r}")

    @classmethod
    def load(
        cls, config_path: Path | None = None, env: dict[str, str] | None = None
    ) -> RuntimeConfig:
        """Load configuration from YAML file (optional), then apply env overrides."""
        data: dict[str, Any] = {}
        if config_path is not None:
            config_path = Path(config_path)
            if config_path.exists():
                data = _load_yaml(config_path)

        env = dict(os.environ if env is None else env)
        for suffix, (name, parser) in _ENV_OVERRIDES.items():
            value = env.get(ENV_PREFIX + suffix)
            if value is None or value == "":
                continue
            try:
                data[name] = parser(value)
            except ValueError as exc:
                raise ValueError(f"Invalid {ENV_PREFIX}{suffix}={value!r}") from exc

        config = cls.from_dict(data)
        config.config_path = config_path
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RuntimeConfig:
        """Create config from dictionary (unknown keys are ignored)."""
        data = dict(data or {})

        # Support the nested documented layout as well as flat keys.
        runtime_data = data.get("runtime")
        if isinstance(runtime_data, dict):
            data = {**runtime_data, **{k: v for k, v in data.items() if k != "runtime"}}
        logging_data = data.get("logging")
        if isinstance(logging_data, dict):
            data.setdefault("log_level", logging_data.get("level", "INFO"))
            data.setdefault("log_format", logging_data.get("format", "console"))

        allowed = {f.name for f in fields(cls)} - {"config_path"}
        kwargs = {k: v for k, v in data.items() if k in allowed}
        if "log_level" in kwargs:
            kwargs["log_level"] = str(kwargs["log_level"]).upper()
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Serialize config to dictionary."""
        return {
            "max_concurrency": self.max_concurrency,
            "invocation_timeout_seconds": self.invocation_timeout_seconds,
            "run_timeout_seconds": self.run_timeout_seconds,
            "retry_backoff_seconds": self.retry_backoff_seconds,
            "default_maximum_iterations": self.default_maximum_iterations,
            "output_retry": self.output_retry,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }
