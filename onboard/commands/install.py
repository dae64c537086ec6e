"""Install command implementation."""

import asyncio
import logging
import sys

import click

from ..config import ConfigError, ItemKind
from ..errors import format_error
from ..installer import ActionResult, Outcome
from ..tui import display_activity_log, display_result, display_terminal_tail
from .utils import cancel_on_interrupt, follow_progress, open_orchestrator, require_items

_logging = logging.getLogger(__name__)


@click.command()
@click.argument("items", nargs=-1)
@click.option("--all", "install_all", is_flag=True, help="Install every missing item")
@click.option("--tools", "kind", flag_value=ItemKind.TOOL.value, help="With --all, only tools")
@click.option("--apps", "kind", flag_value=ItemKind.APP.value, help="With --all, only apps")
@click.option("--dry-run", is_flag=True, help="Show what would be installed")
@click.option("--quiet", "-q", is_flag=True, help="Hide live command output")
@click.pass_context
def install(ctx, items, install_all, kind, dry_run, quiet):
    """Install items by id, or every missing item with --all."""
    if items and install_all:
        raise click.UsageError("Pass item ids or --all, not both")
    if not items and not install_all:
        raise click.UsageError("Pass at least one item id, or --all")
    if kind and not install_all:
        raise click.UsageError("--tools and --apps only apply with --all")

    item_kind = ItemKind(kind) if kind else None
    try:
        ok = asyncio.run(
            run_install(ctx.obj, list(items), install_all, item_kind, dry_run, quiet)
        )
    except ConfigError as e:
        click.echo(format_error(str(e)), err=True)
        sys.exit(1)
    if not ok:
        sys.exit(1)


async def run_install(
    obj: dict,
    item_ids: list[str],
    install_all: bool,
    kind: ItemKind | None,
    dry_run: bool,
    quiet: bool,
) -> bool:
    orchestrator = await open_orchestrator(obj)
    targets = require_items(orchestrator, item_ids)

    await orchestrator.check_all()

    if dry_run:
        if install_all:
            planned = orchestrator.plan_install_all(kind)
        else:
            planned = [t for t in targets if not orchestrator.state(t.id).installed]
        if planned:
            click.echo("Would install, in order:")
            for index, item in enumerate(planned, 1):
                click.echo(f"  {index}. {item.name} ({item.id})")
        else:
            click.echo("Nothing to install.")
        for item_id, reason in orchestrator.unresolved.items():
            click.secho(f"  ⛔ {item_id}: {reason}", fg="red")
        await orchestrator.wait_for_enrichment()
        orchestrator.close()
        return True

    unsubscribe = follow_progress(orchestrator, show_output=not quiet)
    results: list[ActionResult] = []
    try:
        with cancel_on_interrupt(orchestrator):
            if install_all:
                results = await orchestrator.install_all_eligible(kind)
            else:
                for item in targets:
                    result = await orchestrator.install(item.id)
                    results.append(result)
                    if result.outcome is Outcome.CANCELLED:
                        break
    finally:
        unsubscribe()

    await orchestrator.wait_for_enrichment()

    click.echo("")
    if not results:
        click.echo("Nothing to install.")
    for result in results:
        display_result(result)
        if quiet and result.outcome is Outcome.FAILED:
            item = orchestrator.item(result.item_id)
            display_terminal_tail(orchestrator.store.terminal(item.correlation_id))

    display_activity_log(orchestrator.store.activity.entries)
    orchestrator.close()
    return all(result.ok for result in results)
