"""History command implementation."""

import click

from ..history import clear_history, load_history


@click.command()
@click.option("--clear", is_flag=True, help="Forget all recently loaded configs")
def history(clear: bool):
    """List recently loaded config sources, most recent first."""
    if clear:
        clear_history()
        click.echo("Config history cleared.")
        return

    entries = load_history()
    if not entries:
        click.echo("No configs loaded yet.")
        return

    for index, source in enumerate(entries, 1):
        click.echo(f"{index:>2}. {source}")
