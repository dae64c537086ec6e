"""Interactive prompts: uninstall confirmation and scan selection."""

import sys

from ..installer import CONFIRMATION_PHRASE
from ..scanner import KNOWN_APPS, KNOWN_TOOLS, ScanResult

ScanSelection = tuple[list[str], list[str]] | None


async def confirm_uninstall_interactive(item_name: str) -> str | None:
    """Ask the user to type the confirmation phrase before removing an item.

    Returns:
        The text typed, or None if the user cancels.

    Raises:
        RuntimeError: If not running in a TTY
    """
    if not sys.stdin.isatty():
        raise RuntimeError("Uninstall confirmation requires a TTY")

    import questionary

    try:
        return await questionary.text(
            f"Type '{CONFIRMATION_PHRASE}' to uninstall {item_name}:"
        ).ask_async()
    except KeyboardInterrupt:
        return None


def select_scan_items_interactive(result: ScanResult) -> ScanSelection:
    """Checkbox of detected tools and apps, all pre-checked.

    Returns:
        Tuple of (dependency_ids, app_ids) selected, or None if the user cancels.

    Raises:
        RuntimeError: If not running in a TTY
    """
    if not sys.stdin.isatty():
        raise RuntimeError("Interactive scan selection requires a TTY")

    import questionary
    from prompt_toolkit.styles import Style

    style = Style(
        [
            ("qmark", "fg:ansigreen bold"),
            ("highlighted", "bold"),
            ("instruction", "fg:ansibrightblack"),
        ]
    )

    choices = []
    for item_id in result.dependency_ids:
        name = KNOWN_TOOLS[item_id]["name"]
        choices.append(
            questionary.Choice(title=f"{name} (tool)", value=("tool", item_id), checked=True)
        )
    for item_id in result.app_ids:
        name = KNOWN_APPS[item_id]["name"]
        choices.append(
            questionary.Choice(title=f"{name} (app)", value=("app", item_id), checked=True)
        )

    if not choices:
        return ([], [])

    try:
        selected = questionary.checkbox(
            "Select what this project needs:",
            choices=choices,
            instruction="Space to toggle, Enter to confirm",
            style=style,
        ).ask()
    except KeyboardInterrupt:
        return None

    if selected is None:
        return None

    dependency_ids = [item_id for kind, item_id in selected if kind == "tool"]
    app_ids = [item_id for kind, item_id in selected if kind == "app"]
    return (dependency_ids, app_ids)


__all__ = [
    "ScanSelection",
    "confirm_uninstall_interactive",
    "select_scan_items_interactive",
]
