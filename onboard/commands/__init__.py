"""CLI command definitions for onboard."""

import click

from .. import __version__, setup_logging
from .history import history
from .install import install
from .scan import scan
from .status import status
from .uninstall import uninstall
from .upgrade import upgrade


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug output for troubleshooting")
@click.option(
    "--config",
    "config_source",
    metavar="SOURCE",
    help="Config file path, http(s) URL, or 'bundled'",
)
@click.version_option(__version__, prog_name="onboard")
@click.pass_context
def cli(ctx, debug, config_source):
    """Check and install a project's developer tools and apps."""
    setup_logging(debug)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config"] = config_source


cli.add_command(status)
cli.add_command(install)
cli.add_command(uninstall)
cli.add_command(upgrade)
cli.add_command(history)
cli.add_command(scan)

__all__ = ["cli"]


if __name__ == "__main__":
    cli()
