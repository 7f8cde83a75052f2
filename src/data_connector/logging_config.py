"""
Centralized logging configuration.

Configure once in the host application's entry point, not per module.
Engine modules log with structlog event-style calls; after configuration
those events are routed through the standard library so per-module levels
from config/logging.yaml apply.
"""

import logging
import sys
from pathlib import Path

import structlog

from data_connector.core.config_loader import load_logging_config


def configure_logging(level: int | None = None, config_path: Path | None = None) -> None:
    """
    Configure Python logging for the engine.

    Truly idempotent: safe to call multiple times without side effects.
    Checks if root logger already has handlers before configuring.

    Args:
        level: Root level override (defaults to root_level from logging config)
        config_path: Optional logging YAML path
    """
    root_logger = logging.getLogger()

    # Only configure if no handlers exist (truly idempotent)
    if root_logger.handlers:
        return

    config = load_logging_config(config_path)
    root_level = level if level is not None else logging.getLevelName(config["root_level"])

    logging.basicConfig(
        level=root_level,
        format=config["format"],
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for logger_name, logger_level in config["module_levels"].items():
        logging.getLogger(logger_name).setLevel(logger_level)

    for logger_name, logger_level in config["reduce_noise"].items():
        logging.getLogger(logger_name).setLevel(logger_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
