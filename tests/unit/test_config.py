"""
Tests for runtime configuration loading.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from synod.config import RuntimeConfig


class TestRuntimeConfig:
    def test_defaults(self):
        config = RuntimeConfig()
        assert config.max_concurrency == 8
        assert config.invocation_timeout_seconds == 120.0
        assert config.run_timeout_seconds is None
        assert config.default_maximum_iterations == 99
        assert config.output_retry is True
        assert config.log_format == "console"

    def test_from_dict_ignores_unknown_keys(self):
        config = RuntimeConfig.from_dict({"max_concurrency": 2, "colour": "blue"})
        assert config.max_concurrency == 2

    def test_from_dict_nested_layout(self):
        config = RuntimeConfig.from_dict(
            {
                "runtime": {"max_concurrency": 3, "run_timeout_seconds": 30},
                "logging": {"level": "debug", "format": "json"},
            }
        )
        assert config.max_concurrency == 3
        assert config.run_timeout_seconds == 30
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"

    def test_validation(self):
        with pytest.raises(ValueError, match="max_concurrency"):
            RuntimeConfig(max_concurrency=0)
        with pytest.raises(ValueError, match="log_format"):
            RuntimeConfig(log_format="xml")

    def test_load_file_then_env(self, tmp_path: Path):
        path = tmp_path / "synod.yaml"
        path.write_text("runtime:\n  max_concurrency: 4\n  invocation_timeout_seconds: 10\n")

        config = RuntimeConfig.load(
            path, env={"SYNOD_MAX_CONCURRENCY": "16", "SYNOD_LOG_LEVEL": "warning"}
        )

        assert config.max_concurrency == 16
        assert config.invocation_timeout_seconds == 10
        assert config.log_level == "WARNING"
        assert config.config_path == path

    def test_load_missing_file_uses_defaults(self, tmp_path: Path):
        config = RuntimeConfig.load(tmp_path / "absent.yaml", env={})
        assert config.to_dict() == RuntimeConfig().to_dict()

    def test_bad_env_value(self):
        with pytest.raises(ValueError, match="SYNOD_RUN_TIMEOUT"):
            RuntimeConfig.load(env={"SYNOD_RUN_TIMEOUT": "soon"})

    def test_to_dict_round_trips(self):
        config = RuntimeConfig(max_concurrency=5, log_format="json")
        assert RuntimeConfig.from_dict(config.to_dict()) == config
