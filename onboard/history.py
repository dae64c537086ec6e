"""Recently loaded config sources, persisted as JSON."""

import json
import logging
from pathlib import Path

from .paths import get_history_path

MAX_HISTORY_ENTRIES = 10

_logging = logging.getLogger(__name__)


def load_history(path: Path | None = None) -> list[str]:
    """Return recent config sources, most recent first.

    A missing or unreadable history file yields an empty list.
    """
    path = path or get_history_path()
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        _logging.warning(f"Ignoring unreadable history file {path}: {e}")
        return []
    if not isinstance(data, list):
        _logging.warning(f"Ignoring malformed history file {path}")
        return []
    return [entry for entry in data if isinstance(entry, str)][:MAX_HISTORY_ENTRIES]


def save_history(entries: list[str], path: Path | None = None) -> None:
    path = path or get_history_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(entries[:MAX_HISTORY_ENTRIES], indent=2) + "\n", encoding="utf-8"
    )


def add_to_history(source: str, path: Path | None = None) -> list[str]:
    """Move ``source`` to the top of the history, dropping the oldest overflow."""
    entries = [entry for entry in load_history(path) if entry != source]
    entries.insert(0, source)
    entries = entries[:MAX_HISTORY_ENTRIES]
    save_history(entries, path)
    return entries


def clear_history(path: Path | None = None) -> None:
    path = path or get_history_path()
    if path.exists():
        path.unlink()


def most_recent(path: Path | None = None) -> str | None:
    entries = load_history(path)
    return entries[0] if entries else None


__all__ = [
    "MAX_HISTORY_ENTRIES",
    "load_history",
    "save_history",
    "add_to_history",
    "clear_history",
    "most_recent",
]
