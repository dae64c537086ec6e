"""Upgrade command implementation."""

import asyncio
import sys

import click

from ..config import ConfigError
from ..errors import format_error
from ..installer import ActionResult, Outcome
from ..tui import display_activity_log, display_result
from .utils import cancel_on_interrupt, follow_progress, open_orchestrator, require_items


@click.command()
@click.argument("items", nargs=-1)
@click.option("--all", "upgrade_all", is_flag=True, help="Upgrade every item with an update")
@click.pass_context
def upgrade(ctx, items, upgrade_all):
    """Upgrade Homebrew-managed items to their latest version."""
    if items and upgrade_all:
        raise click.UsageError("Pass item ids or --all, not both")
    if not items and not upgrade_all:
        raise click.UsageError("Pass at least one item id, or --all")

    try:
        ok = asyncio.run(run_upgrade(ctx.obj, list(items), upgrade_all))
    except ConfigError as e:
        click.echo(format_error(str(e)), err=True)
        sys.exit(1)
    if not ok:
        sys.exit(1)


async def run_upgrade(obj: dict, item_ids: list[str], upgrade_all: bool) -> bool:
    orchestrator = await open_orchestrator(obj)
    targets = require_items(orchestrator, item_ids)

    click.echo("Checking for updates...")
    await orchestrator.check_all()
    await orchestrator.wait_for_enrichment()

    unsubscribe = follow_progress(orchestrator)
    results: list[ActionResult] = []
    try:
        with cancel_on_interrupt(orchestrator):
            if upgrade_all:
                results = await orchestrator.upgrade_all_available()
            else:
                for item in targets:
                    result = await orchestrator.upgrade(item.id)
                    results.append(result)
                    if result.outcome is Outcome.CANCELLED:
                        break
    finally:
        unsubscribe()

    click.echo("")
    if not results:
        click.secho("Everything is up to date.", fg="green")
    for result in results:
        display_result(result)

    display_activity_log(orchestrator.store.activity.entries)
    orchestrator.close()
    return all(result.ok for result in results)
