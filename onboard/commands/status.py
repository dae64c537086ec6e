"""Status command implementation."""

import asyncio
import sys

import click

from ..config import ConfigError, ItemKind
from ..errors import format_error
from ..tui import display_item_table
from .utils import open_orchestrator


@click.command()
@click.pass_context
def status(ctx):
    """Check which tools and apps are installed."""
    try:
        asyncio.run(run_status(ctx.obj))
    except ConfigError as e:
        click.echo(format_error(str(e)), err=True)
        sys.exit(1)


async def run_status(obj: dict):
    orchestrator = await open_orchestrator(obj)
    config = orchestrator.config

    click.echo(f"Checking {len(config.items)} item(s)...")
    await orchestrator.check_all()
    await orchestrator.wait_for_enrichment()

    click.echo("")
    click.secho(config.name, bold=True)
    if config.description:
        click.echo(config.description)

    display_item_table("Tools", config.of_kind(ItemKind.TOOL), orchestrator)
    display_item_table("Apps", config.of_kind(ItemKind.APP), orchestrator)

    states = [orchestrator.state(item.id) for item in config.items]
    installed = sum(1 for s in states if s.installed)
    updates = sum(1 for s in states if s.installed and s.has_update)
    total = len(states)

    click.echo("")
    if installed == total:
        click.secho(f"  [{installed}/{total}] Everything is installed", fg="green")
    else:
        click.secho(
            f"  [{installed}/{total}] {total - installed} item(s) missing",
            fg="yellow",
        )
    if updates:
        click.secho(f"  {updates} update(s) available", fg="yellow")
    unresolved = orchestrator.unresolved
    if unresolved:
        click.secho(
            f"  {len(unresolved)} item(s) have unresolved dependencies", fg="red"
        )

    orchestrator.close()
