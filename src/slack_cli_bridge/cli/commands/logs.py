"""Logs commands for the Slack CLI bridge."""

from pathlib import Path

import click

from slack_cli_bridge.constants import DEFAULT_TAIL_LINES, LOG_DIR, LOG_LIST_LIMIT
from slack_cli_bridge.services.log_service import LogService, format_summary_line

log_dir_option = click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="BRIDGE_LOG_DIR",
    default=LOG_DIR,
    show_default=True,
    help="Base log directory",
)


@click.group()
def logs():
    """Inspect session logs."""
    pass


@logs.command(name="list")
@log_dir_option
@click.option("--limit", default=LOG_LIST_LIMIT, show_default=True, help="Number of logs to show")
def list_logs(log_dir, limit):
    """List the most recent session logs, newest last."""
    service = LogService(log_dir)
    paths = service.list_logs()[-limit:]
    if not paths:
        click.echo("No session logs found.")
        return
    for path in paths:
        click.echo(format_summary_line(service.summarize(path)))


@logs.command()
@log_dir_option
@click.option("-n", "--lines", default=DEFAULT_TAIL_LINES, show_default=True, help="Lines to print")
@click.argument("session_id", required=False)
def tail(log_dir, lines, session_id):
    """Print the last lines of a session log (default: newest)."""
    text = LogService(log_dir).tail(lines, session_id)
    if text is None:
        raise click.ClickException("No session logs found.")
    click.echo(text)


@logs.command()
@log_dir_option
@click.argument("session_id")
def show(log_dir, session_id):
    """Print a session log with its summary."""
    service = LogService(log_dir)
    path = service.resolve(session_id)
    if path is None:
        raise click.ClickException(f"Log not found: {session_id}")
    click.echo(format_summary_line(service.summarize(path)))
    click.echo(path.read_text(encoding="utf-8", errors="replace"))
