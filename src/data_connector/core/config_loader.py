"""Centralized configuration loader for YAML-based configuration.

This module provides functions to load configuration from YAML files with:
- Environment variable overrides (env var → YAML → defaults)
- Type coercion (string to float, bool, int)
- Schema validation using dataclasses
- Graceful degradation (missing files use defaults)
"""

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import yaml  # type: ignore

logger = logging.getLogger(__name__)

ENV_PREFIX = "DATA_CONNECTOR_"


def get_project_root() -> Path:
    """
    Get project root directory.

    Uses pattern: config_loader.py → core/ → data_connector/ → src/ → project_root

    Validates that the config/ directory exists to ensure correct project root detection.

    Returns:
        Path to project root directory

    Raises:
        ValueError: If config/ directory is not found at the detected project root
    """
    current_file = Path(__file__)
    project_root = current_file.parent.parent.parent.parent

    config_dir = project_root / "config"
    if not config_dir.is_dir():
        raise ValueError(
            f"Project root detection failed: config/ directory not found at {config_dir}. "
            f"Detected project root: {project_root}. "
            f"If project structure has changed, update get_project_root() in config_loader.py"
        )

    return project_root


def _coerce_type(value: Any, target_type: type) -> Any:
    """
    Coerce value to target type.

    Handles:
    - String "30.0" → float 30.0
    - String "true"/"false" → bool True/False (case-insensitive)
    - String "123" → int 123

    Raises:
        ValueError: If coercion fails
    """
    if value is None:
        return None

    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value

    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    if target_type is float:
        return float(value)

    if target_type is int:
        if isinstance(value, str):
            return int(float(value))  # Handle "30.0" → 30
        return int(value)

    if target_type is str:
        return str(value)

    return value


def _get_env_var(key: str, default: Any = None) -> str | None:
    return os.getenv(key, default)


def _is_critical_config(key: str) -> bool:
    """
    Check if a config key is critical (should raise ValueError on type coercion failure).

    Thresholds, ratios and size caps change detection outcomes silently if
    they fall back to defaults, so a bad value must fail loudly.
    """
    critical_patterns = [
        "threshold",
        "ratio",
        "confidence",
        "score",
        "cap",
        "factor",
        "min_",
        "max_",
    ]
    return any(pattern in key.lower() for pattern in critical_patterns)


def _apply_env_overrides(config: dict[str, Any], prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Apply environment variable overrides to config.

    Any env var named ``<prefix><CONFIG_KEY>`` (config key upper-cased)
    overrides the corresponding entry, coerced to the type of the current value.
    """
    result = config.copy()

    for config_key, current in config.items():
        env_key = f"{prefix}{config_key.upper()}"
        env_value = _get_env_var(env_key)
        if env_value is None:
            continue
        target_type = type(current)
        try:
            result[config_key] = _coerce_type(env_value, target_type)
        except (ValueError, TypeError) as e:
            if _is_critical_config(config_key):
                raise ValueError(
                    f"Type coercion failed for critical config {env_key}={env_value}: "
                    f"expected {target_type.__name__}. Error: {e}"
                ) from e
            logger.warning(f"Failed to coerce env var {env_key}={env_value} to {target_type.__name__}: {e}")

    return result


@dataclass
class EngineConfig:
    """
    Tunable thresholds for detection, classification, validation and joins.

    Attributes:
        sample_cap: Max rows sampled per dataset when fingerprinting
        near_unique_ratio: Cardinality ratio at or above which a column is treated as a key
        min_name_similarity: Name pre-filter for non key-like column pairs
        min_confidence: Minimum candidate confidence kept by the detector
        max_candidates_per_pair: Top-N candidates retained per dataset pair
        auto_join_min_score: Match score required for auto-join recommendation
        auto_join_min_matches: Absolute matching-value floor for auto-join recommendation
        confidence_floor: Minimum relationship confidence for a schema graph edge
        min_match_rate: Validator acceptance threshold
        high_orphan_ratio: Orphan share above which the validator warns
        explosion_factor: Join-size multiple (vs. larger input) treated as a cartesian explosion
        dimension_max_cardinality_ratio: Max cardinality ratio for value-based common dimensions
        dimension_min_value_overlap: Min value-set overlap for value-based common dimensions
        batch_size: Default rows/columns per batch in chunked stages
    """

    sample_cap: int = 2_000
    near_unique_ratio: float = 0.95
    min_name_similarity: float = 0.5
    min_confidence: float = 0.3
    max_candidates_per_pair: int = 3
    auto_join_min_score: float = 0.7
    auto_join_min_matches: int = 3
    confidence_floor: float = 0.5
    min_match_rate: float = 0.5
    high_orphan_ratio: float = 0.3
    explosion_factor: float = 10.0
    dimension_max_cardinality_ratio: float = 0.5
    dimension_min_value_overlap: float = 0.5
    batch_size: int = 5_000

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """Build from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """
    Load engine config from YAML with env var overrides.

    Precedence: Environment variable → YAML value → Default value

    Args:
        config_path: Optional path to config file. If None, uses config/engine.yaml
            under the project root (defaults are used when no project root exists).

    Returns:
        EngineConfig

    Raises:
        ValueError: If YAML is invalid or a critical value cannot be coerced
    """
    defaults = EngineConfig().to_dict()

    if config_path is None:
        try:
            config_path = get_project_root() / "config" / "engine.yaml"
        except ValueError:
            logger.debug("No project config directory, using engine defaults")
            config_path = None

    config = defaults.copy()
    if config_path is not None and config_path.exists():
        try:
            with open(config_path) as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

        for key, value in yaml_data.items():
            if key not in defaults:
                logger.warning(f"Unknown engine config key '{key}' in {config_path}, ignoring")
                continue
            target_type = type(defaults[key])
            try:
                config[key] = _coerce_type(value, target_type)
            except (ValueError, TypeError) as e:
                if _is_critical_config(key):
                    raise ValueError(
                        f"Type coercion failed for critical config {key}={value}: "
                        f"expected {target_type.__name__}, got {type(value).__name__}. "
                        f"Error: {e}"
                    ) from e
                logger.warning(
                    f"Failed to coerce YAML value {key}={value} to {target_type.__name__}: {e}, using default"
                )
    elif config_path is not None:
        logger.debug(f"Config file not found at {config_path}, using defaults")

    config = _apply_env_overrides(config)
    return EngineConfig.from_dict(config)


@dataclass
class LoggingConfigDefaults:
    """Default values for logging configuration."""

    root_level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    module_levels: dict[str, str] | None = None
    reduce_noise: dict[str, str] | None = None

    def __post_init__(self) -> None:
        """Initialize default dict values."""
        if self.module_levels is None:
            self.module_levels = {
                "data_connector.core.relationship_detector": "INFO",
                "data_connector.core.schema_classifier": "INFO",
                "data_connector.core.join_engine": "INFO",
            }
        if self.reduce_noise is None:
            self.reduce_noise = {
                "polars": "WARNING",
            }

    def to_dict(self) -> dict[str, Any]:
        """Convert dataclass to dictionary."""
        return {
            "root_level": self.root_level,
            "format": self.format,
            "module_levels": self.module_levels.copy() if self.module_levels else {},
            "reduce_noise": self.reduce_noise.copy() if self.reduce_noise else {},
        }


def load_logging_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load logging config from YAML.

    Returns:
        dict with keys:
        - root_level: str
        - format: str
        - module_levels: dict[str, str]
        - reduce_noise: dict[str, str]

    Raises:
        ValueError: If YAML is invalid
    """
    defaults = LoggingConfigDefaults().to_dict()

    if config_path is None:
        try:
            config_path = get_project_root() / "config" / "logging.yaml"
        except ValueError:
            return defaults

    config = defaults.copy()
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

        for key, value in yaml_data.items():
            if key not in defaults:
                continue
            if key in ("module_levels", "reduce_noise"):
                if isinstance(value, dict):
                    config[key].update(value)
            else:
                config[key] = value
    else:
        logger.debug(f"Config file not found at {config_path}, using defaults")

    return config
