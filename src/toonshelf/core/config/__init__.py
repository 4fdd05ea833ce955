"""Configuration loading with a process-wide singleton.

Usage:
    from toonshelf.core.config import get_config, load_config

    load_config(Path("toonshelf.yaml"))
    config = get_config()
    config.reconcile.max_concurrency

Environment:
    TOONSHELF_AUTH_TOKEN overrides storage.auth_token when set.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from toonshelf.core.config.models import Config, LoggingConfig, ReconcileConfig, StorageConfig
from toonshelf.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "toonshelf.yaml"
AUTH_TOKEN_ENV = "TOONSHELF_AUTH_TOKEN"

__all__ = [
    "Config",
    "StorageConfig",
    "ReconcileConfig",
    "LoggingConfig",
    "DEFAULT_CONFIG_FILENAME",
    "load_config",
    "get_config",
    "_reset_config",
]

_config: Config | None = None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")
    return data


def load_config(source: Path | dict[str, Any] | None = None) -> Config:
    """Load, validate and install the process configuration.

    Args:
        source: Path to a YAML file, an already-parsed mapping, or None for
            defaults.

    Returns:
        The validated Config, also returned by get_config() afterwards.

    Raises:
        ConfigError: If the file cannot be read or fails validation.

    """
    global _config

    if source is None:
        data: dict[str, Any] = {}
    elif isinstance(source, Path):
        data = _read_yaml(source)
    else:
        data = dict(source)

    token = os.environ.get(AUTH_TOKEN_ENV)
    if token:
        storage = dict(data.get("storage") or {})
        storage["auth_token"] = token
        data["storage"] = storage

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    _config = config
    logger.debug("Loaded config: backend=%s", config.storage.backend)
    return config


def get_config() -> Config:
    """Return the loaded configuration.

    Raises:
        ConfigError: If load_config() has not been called.

    """
    if _config is None:
        raise ConfigError("Config not loaded. Call load_config() first.")
    return _config


def _reset_config() -> None:
    """Forget the loaded configuration (tests only)."""
    global _config
    _config = None
