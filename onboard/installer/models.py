"""Data models for the installation engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ItemStatus(Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    CHECKED = "checked"
    INSTALLING = "installing"


class Action(Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"
    UPGRADE = "upgrade"

    @property
    def progressive(self) -> str:
        return {
            Action.INSTALL: "Installing",
            Action.UNINSTALL: "Uninstalling",
            Action.UPGRADE: "Upgrading",
        }[self]


class ActivityKind(Enum):
    INSTALLED = "installed"
    UNINSTALLED = "uninstalled"
    UPGRADED = "upgraded"
    FAILED = "failed"


class Outcome(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    SKIPPED = "skipped"


@dataclass
class ItemState:
    status: ItemStatus = ItemStatus.UNCHECKED
    installed: bool = False
    version: str | None = None
    latest_version: str | None = None
    has_update: bool = False
    error_detail: str | None = None
    action: Action | None = None

    @property
    def busy(self) -> bool:
        return self.status in (ItemStatus.CHECKING, ItemStatus.INSTALLING)


@dataclass(frozen=True)
class TerminalLine:
    text: str
    stream: str


@dataclass(frozen=True)
class ActivityLogEntry:
    action: ActivityKind
    item_name: str
    version: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def message(self) -> str:
        if self.action is ActivityKind.INSTALLED:
            suffix = f" v{self.version}" if self.version else ""
            return f"Installed {self.item_name}{suffix}"
        if self.action is ActivityKind.UNINSTALLED:
            return f"Uninstalled {self.item_name}"
        if self.action is ActivityKind.UPGRADED:
            suffix = f" to v{self.version}" if self.version else ""
            return f"Upgraded {self.item_name}{suffix}"
        # FAILED entries carry "<verb> <name>" as their item_name
        return f"Failed to {self.item_name}"


@dataclass
class ActionResult:
    item_id: str
    action: Action
    outcome: Outcome
    message: str
    detail: str | None = None
    version: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.SUCCEEDED, Outcome.SKIPPED)


__all__ = [
    "ItemStatus",
    "Action",
    "ActivityKind",
    "Outcome",
    "ItemState",
    "TerminalLine",
    "ActivityLogEntry",
    "ActionResult",
]
