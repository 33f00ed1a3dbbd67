"""
Logging configuration.

We use a YAML logging config (`src/barmap/config/logging.yaml`) and then apply
runtime overrides from settings (e.g., `BARMAP_LOG_LEVEL`).
"""

from __future__ import annotations

import logging.config

from barmap.config.settings import Settings, get_logging_config, get_settings


def configure_logging(settings: Settings | None = None) -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    settings = settings or get_settings()
    config = dict(get_logging_config())

    level = settings.app.log_level.upper()
    config["root"] = {**config.get("root", {}), "level": level}
    config["handlers"] = {
        name: ({**handler, "level": level} if isinstance(handler, dict) and "level" in handler else handler)
        for name, handler in config.get("handlers", {}).items()
    }

    logging.config.dictConfig(config)
