"""Per-item state, terminal output and activity log.

The store is written only by the orchestrator. Observers register with
:meth:`StateStore.subscribe` and are told which item id changed; they read
everything else through the accessors.
"""

import logging
from collections import deque
from typing import Callable, Iterable

from ..config import Item
from .models import (
    Action,
    ActivityKind,
    ActivityLogEntry,
    ItemState,
    ItemStatus,
    TerminalLine,
)

MAX_TERMINAL_LINES = 200
MAX_ACTIVITY_ENTRIES = 50

_logging = logging.getLogger(__name__)

ChangeCallback = Callable[[str], None]


class TerminalBuffer:
    """Last ``MAX_TERMINAL_LINES`` output lines for one correlation id."""

    def __init__(self, max_lines: int = MAX_TERMINAL_LINES) -> None:
        self._lines: deque[TerminalLine] = deque(maxlen=max_lines)

    def append(self, data: str, stream: str = "stdout") -> None:
        for line in data.split("\n"):
            line = line.rstrip("\r")
            if line:
                self._lines.append(TerminalLine(line, stream))

    def clear(self) -> None:
        self._lines.clear()

    @property
    def lines(self) -> list[TerminalLine]:
        return list(self._lines)

    @property
    def last_line(self) -> TerminalLine | None:
        return self._lines[-1] if self._lines else None

    def text(self) -> str:
        return "\n".join(line.text for line in self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class ActivityLog:
    """Bounded activity history, most recent first."""

    def __init__(self, max_entries: int = MAX_ACTIVITY_ENTRIES) -> None:
        self._entries: deque[ActivityLogEntry] = deque(maxlen=max_entries)

    def record(
        self, action: ActivityKind, item_name: str, version: str | None = None
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(action=action, item_name=item_name, version=version)
        # appendleft on a full deque evicts from the right, i.e. the oldest
        self._entries.appendleft(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> list[ActivityLogEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class StateStore:
    def __init__(self) -> None:
        self._states: dict[str, ItemState] = {}
        self._terminals: dict[str, TerminalBuffer] = {}
        self.activity = ActivityLog()
        self._subscribers: list[ChangeCallback] = []

    def register(self, items: Iterable[Item]) -> None:
        """Replace all state with a fresh ``UNCHECKED`` entry per item."""
        self._states = {item.id: ItemState() for item in items}
        self._terminals = {}
        self.activity.clear()
        for item_id in self._states:
            self._notify(item_id)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, item_id: str) -> None:
        for callback in list(self._subscribers):
            try:
                callback(item_id)
            except Exception:
                _logging.exception(f"State subscriber failed for {item_id}")

    def __contains__(self, item_id: str) -> bool:
        return item_id in self._states

    def get(self, item_id: str) -> ItemState | None:
        return self._states.get(item_id)

    @property
    def states(self) -> dict[str, ItemState]:
        return dict(self._states)

    def _require(self, item_id: str) -> ItemState:
        state = self._states.get(item_id)
        if state is None:
            raise KeyError(f"Unknown item id: {item_id}")
        return state

    def set_status(
        self, item_id: str, status: ItemStatus, action: Action | None = None
    ) -> None:
        state = self._require(item_id)
        state.status = status
        state.action = action if status is ItemStatus.INSTALLING else None
        self._notify(item_id)

    def set_installed(
        self, item_id: str, installed: bool, version: str | None = None
    ) -> None:
        """Record a finished check; a missing item loses its version info."""
        state = self._require(item_id)
        state.status = ItemStatus.CHECKED
        state.action = None
        state.installed = installed
        if installed:
            if version is not None:
                state.version = version
        else:
            state.version = None
            state.latest_version = None
            state.has_update = False
        self._notify(item_id)

    def merge_enrichment(
        self,
        item_id: str,
        version: str | None,
        latest_version: str | None,
        has_update: bool,
    ) -> None:
        state = self._require(item_id)
        state.version = version
        state.latest_version = latest_version
        state.has_update = has_update
        self._notify(item_id)

    def set_error(self, item_id: str, detail: str | None) -> None:
        state = self._require(item_id)
        state.error_detail = detail
        self._notify(item_id)

    def reset(self, item_id: str) -> None:
        self._require(item_id)
        self._states[item_id] = ItemState()
        self._notify(item_id)

    def terminal(self, correlation_id: str) -> TerminalBuffer:
        if correlation_id not in self._terminals:
            self._terminals[correlation_id] = TerminalBuffer()
        return self._terminals[correlation_id]

    def clear_terminal(self, correlation_id: str) -> None:
        if correlation_id in self._terminals:
            self._terminals[correlation_id].clear()

    def append_output(self, correlation_id: str, data: str, stream: str) -> None:
        self.terminal(correlation_id).append(data, stream)

    def log_activity(
        self, action: ActivityKind, item_name: str, version: str | None = None
    ) -> ActivityLogEntry:
        entry = self.activity.record(action, item_name, version)
        _logging.info(entry.message)
        return entry


__all__ = [
    "MAX_TERMINAL_LINES",
    "MAX_ACTIVITY_ENTRIES",
    "TerminalBuffer",
    "ActivityLog",
    "StateStore",
]
