"""Tests for config_loader module.

- AAA pattern (Arrange-Act-Assert)
- Descriptive test names: test_unit_scenario_expectedBehavior
- Test isolation (no shared mutable state)
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from data_connector.core.config_loader import (
    EngineConfig,
    get_project_root,
    load_engine_config,
    load_logging_config,
)


@pytest.fixture
def write_config(tmp_path):
    """Factory writing a YAML config file under a temporary config/ directory."""

    def _write(name: str, data: dict) -> Path:
        config_dir = tmp_path / "config"
        config_dir.mkdir(exist_ok=True)
        config_file = config_dir / name
        config_file.write_text(yaml.dump(data))
        return config_file

    return _write


class TestLoadEngineConfig:
    """Test suite for engine configuration loading."""

    def test_load_engine_config_loads_from_yaml_file(self, write_config):
        # Arrange
        config_file = write_config("engine.yaml", {"sample_cap": 500, "confidence_floor": 0.6})

        # Act
        result = load_engine_config(config_path=config_file)

        # Assert
        assert result.sample_cap == 500
        assert result.confidence_floor == 0.6
        assert result.min_match_rate == EngineConfig().min_match_rate

    def test_load_engine_config_missing_file_uses_defaults(self, tmp_path):
        # Act
        result = load_engine_config(config_path=tmp_path / "missing.yaml")

        # Assert
        assert result == EngineConfig()

    def test_load_engine_config_env_var_overrides_yaml(self, write_config):
        """Environment variable -> YAML -> default precedence."""
        # Arrange
        config_file = write_config("engine.yaml", {"sample_cap": 500, "min_match_rate": 0.4})

        # Act
        with patch.dict(
            os.environ,
            {"DATA_CONNECTOR_SAMPLE_CAP": "750", "DATA_CONNECTOR_MIN_MATCH_RATE": "0.9"},
            clear=False,
        ):
            result = load_engine_config(config_path=config_file)

        # Assert
        assert result.sample_cap == 750
        assert result.min_match_rate == 0.9

    def test_load_engine_config_type_coercion_string_to_number(self, write_config):
        # Arrange
        config_file = write_config("engine.yaml", {"explosion_factor": "12.5", "batch_size": "250.0"})

        # Act
        result = load_engine_config(config_path=config_file)

        # Assert
        assert result.explosion_factor == 12.5
        assert result.batch_size == 250

    def test_load_engine_config_critical_config_type_coercion_failure_raises_valueerror(self, write_config):
        # Arrange
        config_file = write_config("engine.yaml", {"near_unique_ratio": "very high"})

        # Act & Assert
        with pytest.raises(ValueError, match="Type coercion failed for critical config"):
            load_engine_config(config_path=config_file)

    def test_load_engine_config_critical_env_var_failure_raises_valueerror(self, tmp_path):
        # Act & Assert
        with patch.dict(os.environ, {"DATA_CONNECTOR_SAMPLE_CAP": "lots"}, clear=False):
            with pytest.raises(ValueError, match="Type coercion failed for critical config"):
                load_engine_config(config_path=tmp_path / "missing.yaml")

    def test_load_engine_config_non_critical_failure_keeps_default(self, write_config):
        # Arrange
        config_file = write_config("engine.yaml", {"batch_size": "big"})

        # Act
        result = load_engine_config(config_path=config_file)

        # Assert
        assert result.batch_size == EngineConfig().batch_size

    def test_load_engine_config_unknown_keys_are_ignored(self, write_config):
        # Arrange
        config_file = write_config("engine.yaml", {"not_a_setting": 1, "sample_cap": 10})

        # Act
        result = load_engine_config(config_path=config_file)

        # Assert
        assert result.sample_cap == 10
        assert not hasattr(result, "not_a_setting")

    def test_load_engine_config_invalid_yaml_raises_valueerror(self, tmp_path):
        # Arrange
        config_file = tmp_path / "engine.yaml"
        config_file.write_text("sample_cap: [unclosed")

        # Act & Assert
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_engine_config(config_path=config_file)

    def test_load_engine_config_project_file_matches_defaults(self):
        """The shipped config/engine.yaml mirrors the dataclass defaults."""
        # Act
        result = load_engine_config(config_path=get_project_root() / "config" / "engine.yaml")

        # Assert
        assert result == EngineConfig()


class TestLoadLoggingConfig:
    """Test suite for logging configuration loading."""

    def test_load_logging_config_merges_module_levels(self, write_config):
        # Arrange
        config_file = write_config(
            "logging.yaml",
            {"root_level": "DEBUG", "module_levels": {"data_connector.core.join_engine": "WARNING"}},
        )

        # Act
        result = load_logging_config(config_path=config_file)

        # Assert
        assert result["root_level"] == "DEBUG"
        assert result["module_levels"]["data_connector.core.join_engine"] == "WARNING"
        assert "data_connector.core.relationship_detector" in result["module_levels"]

    def test_load_logging_config_missing_file_uses_defaults(self, tmp_path):
        # Act
        result = load_logging_config(config_path=tmp_path / "missing.yaml")

        # Assert
        assert result["root_level"] == "INFO"
        assert result["reduce_noise"] == {"polars": "WARNING"}


class TestConfigLoaderProjectRoot:
    """Test suite for project root detection."""

    def test_get_project_root_returns_correct_path(self):
        # Act
        project_root = get_project_root()

        # Assert
        assert project_root.is_dir()
        assert (project_root / "config").is_dir()
