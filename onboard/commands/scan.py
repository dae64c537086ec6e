"""Scan command implementation."""

import logging
import sys
from pathlib import Path

import click

from ..config import ConfigError
from ..errors import format_error
from ..scanner import build_document, default_output_path, scan_project, write_document
from ..tui import select_scan_items_interactive

_logging = logging.getLogger(__name__)


@click.command()
@click.argument(
    "path",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Where to write the document (default: <name>.onboard in PATH)",
)
@click.option("--yes", "-y", is_flag=True, help="Accept everything detected without prompting")
@click.option("--name", help="Project name (default: directory name)")
@click.option("--description", default="", help="One-line project description")
def scan(path: Path, output: Path | None, yes: bool, name: str | None, description: str):
    """Detect a project's stack and write an .onboard document for it."""
    result = scan_project(path)
    name = name or result.root.name

    if result.manifests:
        click.echo(f"Found {len(result.manifests)} manifest(s) in {result.root}:")
        for manifest in result.manifests:
            click.echo(f"  {manifest}")
    else:
        click.echo("No known manifests found; writing the foundation tools only.")

    dependency_ids, app_ids = result.dependency_ids, result.app_ids
    if not yes and not result.empty:
        try:
            selection = select_scan_items_interactive(result)
        except RuntimeError:
            click.echo(
                format_error("interactive selection requires a TTY; pass --yes"),
                err=True,
            )
            sys.exit(1)
        if selection is None:
            click.echo("Scan cancelled.")
            return
        dependency_ids, app_ids = selection

    document = build_document(name, dependency_ids, app_ids, description)
    destination = output or default_output_path(result.root, name)

    try:
        write_document(document, destination)
    except ConfigError as e:
        click.echo(format_error(str(e)), err=True)
        sys.exit(1)

    count = len(document["dependencies"]) + len(document["apps"])
    click.secho(f"✅ Wrote {count} item(s) to {destination}", fg="green")
    click.echo(f"Run 'onboard --config {destination} status' to check this machine.")
