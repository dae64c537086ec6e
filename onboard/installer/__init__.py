"""Installation engine: state, dependency ordering and item lifecycle."""

from .dependencies import find_unresolved, is_eligible, plan_batch, resolve_order
from .models import (
    Action,
    ActionResult,
    ActivityKind,
    ActivityLogEntry,
    ItemState,
    ItemStatus,
    Outcome,
    TerminalLine,
)
from .orchestrator import CONFIRMATION_PHRASE, Orchestrator, confirms_removal
from .packages import (
    PackageRef,
    derive_uninstall_command,
    derive_upgrade_command,
    parse_install_command,
)
from .store import (
    MAX_ACTIVITY_ENTRIES,
    MAX_TERMINAL_LINES,
    ActivityLog,
    StateStore,
    TerminalBuffer,
)
from .versions import VersionInfo, get_version_info, is_newer

__all__ = [
    "ItemStatus",
    "Action",
    "ActivityKind",
    "Outcome",
    "ItemState",
    "TerminalLine",
    "ActivityLogEntry",
    "ActionResult",
    "MAX_TERMINAL_LINES",
    "MAX_ACTIVITY_ENTRIES",
    "TerminalBuffer",
    "ActivityLog",
    "StateStore",
    "is_eligible",
    "find_unresolved",
    "resolve_order",
    "plan_batch",
    "PackageRef",
    "parse_install_command",
    "derive_uninstall_command",
    "derive_upgrade_command",
    "VersionInfo",
    "get_version_info",
    "is_newer",
    "CONFIRMATION_PHRASE",
    "confirms_removal",
    "Orchestrator",
]
