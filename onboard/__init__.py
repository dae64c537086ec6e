"""Onboard: check and install a project's developer prerequisites."""

import logging

from .config import (
    ConfigError,
    Item,
    ItemKind,
    OnboardConfig,
    load_config,
    load_config_source,
    validate_config,
)
from .execution import CommandResult, OutputBus, ProcessExecutor

__version__ = "0.1.0"


def setup_logging(debug: bool = False) -> None:
    """Configure root logging for the CLI.

    Debug mode logs everything with timestamps; otherwise only warnings and
    errors are shown.
    """
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            force=True,
        )
    else:
        logging.basicConfig(
            level=logging.WARNING, format="%(levelname)s: %(message)s", force=True
        )


__all__ = [
    "__version__",
    "setup_logging",
    "ConfigError",
    "Item",
    "ItemKind",
    "OnboardConfig",
    "load_config",
    "load_config_source",
    "validate_config",
    "CommandResult",
    "OutputBus",
    "ProcessExecutor",
]
