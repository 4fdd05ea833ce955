"""Shared CLI helpers: exit codes, console, logging and config bootstrap."""

import logging
from pathlib import Path

from rich.console import Console

from toonshelf.core.config import DEFAULT_CONFIG_FILENAME, Config, load_config

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2

console = Console()

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str, *, verbose: bool = False) -> None:
    """Configure the root logger once for a CLI invocation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format=_LOG_FORMAT,
        force=True,
    )


def load_cli_config(path: Path | None) -> Config:
    """Load the config named on the command line.

    Without --config, ./toonshelf.yaml is used when present, otherwise
    defaults apply.

    Raises:
        ConfigError: If an explicitly named file is missing or invalid.

    """
    if path is not None:
        return load_config(path)
    default = Path(DEFAULT_CONFIG_FILENAME)
    if default.is_file():
        return load_config(default)
    return load_config(None)
