"""
Sync configuration management utilities.

This module loads client sync settings from a YAML configuration file
at the project root.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SyncConfig:
    """Configuration for message sync."""

    log_level: str = "INFO"
    skip_optimistic_user_messages: bool = True  # Live delivery only; history never skips
    model: str | None = None
    provider: str | None = None


def get_config_path() -> Path:
    """
    Get the path to the sync configuration file.

    Looks for agentsync.yaml in the current working directory (project root).
    """
    return Path(os.getcwd()) / "agentsync.yaml"


def load_sync_config(path: Path | None = None) -> SyncConfig:
    """
    Load sync settings from YAML file.

    Args:
        path: Config file to read. Defaults to agentsync.yaml in the
            working directory.

    Returns:
        SyncConfig with file values applied over the defaults

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If a field has the wrong type or an unknown log level
        RuntimeError: If the file cannot be read or parsed
    """
    config_path = path or get_config_path()
    logger.debug(f"Loading config from: {config_path}")

    if not config_path.exists():
        raise FileNotFoundError(
            f"agentsync.yaml not found at {config_path}. "
            "Copy agentsync.yaml.example to agentsync.yaml and adjust it."
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(f"{config_path} must contain a mapping at top level")

        config = SyncConfig()

        log_level = raw.get("log_level", config.log_level)
        if not isinstance(log_level, str) or log_level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level {log_level!r} in {config_path}. "
                f"Expected one of: {', '.join(_LOG_LEVELS)}"
            )
        config.log_level = log_level.upper()

        skip = raw.get("skip_optimistic_user_messages", config.skip_optimistic_user_messages)
        if not isinstance(skip, bool):
            raise ValueError(
                f"skip_optimistic_user_messages must be true or false in {config_path}"
            )
        config.skip_optimistic_user_messages = skip

        for key in ("model", "provider"):
            value = raw.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"{key} must be a string in {config_path}")
            setattr(config, key, value)

        return config
    except ValueError:
        raise
    except Exception as e:
        raise RuntimeError(f"Error loading sync config: {e}")
