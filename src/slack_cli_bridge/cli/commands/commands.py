"""Commands command for the Slack CLI bridge."""

from pathlib import Path

import click

from slack_cli_bridge.utils.config import ConfigError, load_config


@click.command()
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding commands.yaml (default: ./config)",
)
def commands(config_dir):
    """List the configured command prefixes."""
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        raise click.ClickException(str(e))

    if not config.commands:
        click.echo("No commands configured.")
        return

    for command in config.commands:
        flags = []
        if command.envelope:
            flags.append("envelope")
        if command.supports_continuation:
            flags.append("continuation")
        if not command.timeout:
            flags.append("no-timeout")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(
            f"{command.prefix}: {command.binary} ({command.mode.value}){suffix}"
            f"{' - ' + command.description if command.description else ''}"
        )
