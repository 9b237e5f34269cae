"""Main CLI entry point for the Slack CLI bridge."""

import click

from slack_cli_bridge.cli.commands.commands import commands
from slack_cli_bridge.cli.commands.logs import logs
from slack_cli_bridge.cli.commands.run import run
from slack_cli_bridge.cli.commands.serve import serve


@click.group()
def cli():
    """Slack CLI bridge - run local CLI tools and report their output to Slack."""
    pass


# Register commands
cli.add_command(run)
cli.add_command(serve)
cli.add_command(logs)
cli.add_command(commands)


if __name__ == "__main__":
    cli()
