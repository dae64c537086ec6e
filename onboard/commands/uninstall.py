"""Uninstall command implementation."""

import asyncio
import sys

import click

from ..config import ConfigError
from ..errors import format_error
from ..installer import CONFIRMATION_PHRASE
from ..tui import confirm_uninstall_interactive, display_activity_log, display_result
from .utils import cancel_on_interrupt, follow_progress, open_orchestrator, require_items


@click.command()
@click.argument("item_id")
@click.option(
    "--yes-i-mean-it",
    "confirmation",
    metavar="PHRASE",
    help=f"Confirm without a prompt by passing '{CONFIRMATION_PHRASE}'",
)
@click.pass_context
def uninstall(ctx, item_id: str, confirmation: str | None):
    """Uninstall a Homebrew-managed item."""
    try:
        ok = asyncio.run(run_uninstall(ctx.obj, item_id, confirmation))
    except ConfigError as e:
        click.echo(format_error(str(e)), err=True)
        sys.exit(1)
    if not ok:
        sys.exit(1)


async def run_uninstall(obj: dict, item_id: str, confirmation: str | None) -> bool:
    orchestrator = await open_orchestrator(obj)
    (item,) = require_items(orchestrator, [item_id])

    installed = await orchestrator.check_one(item.id, wait_for_enrichment=True)
    if not installed:
        click.echo(f"{item.name} is not installed.")
        orchestrator.close()
        return False

    if confirmation is None:
        try:
            confirmation = await confirm_uninstall_interactive(item.name)
        except RuntimeError:
            click.echo(
                format_error(
                    f"refusing to uninstall without confirmation; "
                    f"pass --yes-i-mean-it {CONFIRMATION_PHRASE}"
                ),
                err=True,
            )
            orchestrator.close()
            return False
        if confirmation is None:
            click.echo("Uninstall cancelled.")
            orchestrator.close()
            return False

    unsubscribe = follow_progress(orchestrator)
    try:
        with cancel_on_interrupt(orchestrator):
            result = await orchestrator.uninstall(item.id, confirmation)
    finally:
        unsubscribe()

    click.echo("")
    display_result(result)
    display_activity_log(orchestrator.store.activity.entries)
    orchestrator.close()
    return result.ok
