from onboard.commands import cli

cli()
