"""
Logging configuration.

We use a YAML logging config (`src/tourrewards/config/logging.yaml`) and then apply
runtime overrides from settings (e.g., `TOURREWARDS_LOG_LEVEL`).
"""

from __future__ import annotations

import copy
import logging.config

from tourrewards.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    # The loaded config is cached; never mutate the shared copy.
    config = copy.deepcopy(get_logging_config())

    level = (level or get_settings().app.log_level).upper()
    config.setdefault("root", {})["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)
