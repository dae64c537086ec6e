"""Item status display functions for TUI."""

import click

from ..config import Item
from ..installer import (
    ActionResult,
    ActivityLogEntry,
    ItemState,
    ItemStatus,
    Orchestrator,
    Outcome,
    TerminalBuffer,
)

OUTCOME_ICONS = {
    Outcome.SUCCEEDED: "✅",
    Outcome.FAILED: "❌",
    Outcome.CANCELLED: "⏹️",
    Outcome.REJECTED: "⚠️",
    Outcome.SKIPPED: "⏭️",
}

OUTCOME_COLORS = {
    Outcome.SUCCEEDED: "green",
    Outcome.FAILED: "red",
    Outcome.CANCELLED: "yellow",
    Outcome.REJECTED: "yellow",
    Outcome.SKIPPED: None,
}


def status_badge(state: ItemState, unresolved: str | None = None) -> tuple[str, str | None]:
    """Return the badge label and click color for an item state."""
    if state.status is ItemStatus.INSTALLING and state.action:
        return state.action.progressive.lower(), "cyan"
    if state.status is ItemStatus.CHECKING:
        return "checking", "cyan"
    if state.status is ItemStatus.UNCHECKED:
        return "unchecked", None
    if state.installed:
        if state.has_update:
            return "update", "yellow"
        return "installed", "green"
    if unresolved:
        return "unresolved", "red"
    return "missing", "red"


def format_item_line(
    item: Item,
    state: ItemState,
    name_width: int = 10,
    eligible: bool = True,
    unresolved: str | None = None,
) -> str:
    """Format a single item status line.

    Example output:
        ✅ git        installed   v2.44.0
        🔄 node       update      v20.1.0 → v22.3.0
        ❌ bun        missing     (needs homebrew)
    """
    label, _ = status_badge(state, unresolved)
    icon = {
        "installed": "✅",
        "update": "🔄",
        "missing": "❌",
        "unresolved": "⛔",
    }.get(label, "⚪")
    name = item.name.ljust(name_width)

    if state.installed:
        detail = f"v{state.version}" if state.version else ""
        if state.has_update and state.latest_version:
            detail = f"{detail or 'installed'} → v{state.latest_version}"
    elif unresolved:
        detail = f"({unresolved})"
    elif not eligible and item.depends_on:
        detail = f"(needs {item.depends_on})"
    else:
        detail = ""

    return f"{icon} {name}  {label:<11} {detail}".rstrip()


def display_item_table(title: str, items: list[Item], orchestrator: Orchestrator) -> None:
    click.echo("")
    click.secho(f"  {title}", bold=True)
    click.secho("  " + "-" * len(title), dim=True)

    if not items:
        click.secho("  (none)", dim=True)
        return

    unresolved = orchestrator.unresolved
    name_width = max(len(item.name) for item in items)
    for item in items:
        state = orchestrator.state(item.id)
        reason = unresolved.get(item.id)
        line = format_item_line(
            item,
            state,
            name_width,
            eligible=orchestrator.is_eligible(item.id),
            unresolved=reason,
        )
        _, color = status_badge(state, reason)
        click.secho(f"  {line}", fg=color)
        if state.error_detail:
            last = state.error_detail.strip().splitlines()[-1]
            click.secho(f"      {last}", dim=True)


def display_result(result: ActionResult) -> None:
    icon = OUTCOME_ICONS[result.outcome]
    click.secho(f"{icon} {result.message}", fg=OUTCOME_COLORS[result.outcome])
    if result.detail and result.outcome is Outcome.FAILED:
        for line in result.detail.splitlines()[-5:]:
            click.secho(f"   {line}", dim=True)


def display_activity_log(entries: list[ActivityLogEntry], limit: int = 10) -> None:
    if not entries:
        return
    click.echo("")
    click.secho("  Activity", bold=True)
    for entry in entries[:limit]:
        stamp = entry.timestamp.strftime("%H:%M:%S")
        click.echo(f"  {stamp}  {entry.message}")


def display_terminal_tail(buffer: TerminalBuffer, lines: int = 20) -> None:
    for line in buffer.lines[-lines:]:
        color = "red" if line.stream == "stderr" else None
        click.secho(f"  │ {line.text}", fg=color, dim=color is None)


__all__ = [
    "status_badge",
    "format_item_line",
    "display_item_table",
    "display_result",
    "display_activity_log",
    "display_terminal_tail",
]
