"""TUI utilities for the onboard CLI.

- items: colored item status, results and activity log (click.secho)
- prompts: questionary prompts, guarded by a TTY check
"""

from .items import (
    display_activity_log,
    display_item_table,
    display_result,
    display_terminal_tail,
    format_item_line,
    status_badge,
)
from .prompts import (
    ScanSelection,
    confirm_uninstall_interactive,
    select_scan_items_interactive,
)

__all__ = [
    "status_badge",
    "format_item_line",
    "display_item_table",
    "display_result",
    "display_activity_log",
    "display_terminal_tail",
    "ScanSelection",
    "confirm_uninstall_interactive",
    "select_scan_items_interactive",
]
