"""Configuration path helpers for onboard."""

import os
from pathlib import Path

CONFIG_ENV_VAR = "ONBOARD_CONFIG"


def get_config_dir() -> Path:
    """Return XDG-compliant config directory: ~/.config/onboard"""
    return Path.home() / ".config" / "onboard"


def get_history_path() -> Path:
    """Return path to the recently-loaded config history file."""
    return get_config_dir() / "history.json"


def get_bundled_config_path() -> Path:
    """Return path to the packaged default config (read-only fallback)"""
    return Path(__file__).parent / "data" / "default.onboard"


def get_env_config_source() -> str | None:
    """Return the config source named by ONBOARD_CONFIG, if set and non-empty."""
    value = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return value or None
