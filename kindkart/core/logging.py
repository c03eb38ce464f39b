"""Logging utilities."""
from __future__ import annotations

import logging.config
from pathlib import Path

SECURITY_LOGGER_NAME = "kindkart.security"


def configure_logging() -> None:
    """Configure logging from the YAML configuration file if present."""
    config_path = Path(__file__).resolve().parent / "../.." / "configs" / "logging.yaml"
    if config_path.exists():
        import yaml  # type: ignore[import-untyped]

        with config_path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=logging.INFO)


def get_security_logger() -> logging.Logger:
    """Logger reserved for integrity events such as forged payment signatures."""
    return logging.getLogger(SECURITY_LOGGER_NAME)


__all__ = ["SECURITY_LOGGER_NAME", "configure_logging", "get_security_logger"]
