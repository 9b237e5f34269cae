"""Run command for the Slack CLI bridge."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import click

from slack_cli_bridge.clients.console import ConsoleReporter
from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.clients.slack import SlackReporter
from slack_cli_bridge.constants import TIMEOUT_EXIT_CODE
from slack_cli_bridge.models.command import CommandConfig
from slack_cli_bridge.models.session import SpawnOptions
from slack_cli_bridge.services.session_service import SessionManager
from slack_cli_bridge.utils.config import AppConfig, ConfigError, load_config
from slack_cli_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Conventional exit status of timeout(1)
TIMEOUT_CLI_EXIT_CODE = 124
CONSOLE_CHANNEL = "console"


def build_reporter(config: AppConfig, console: bool) -> Reporter:
    if console:
        return ConsoleReporter()
    if not config.slack.bot_token:
        raise click.ClickException("SLACK_BOT_TOKEN is not set (use --console for local output)")
    return SlackReporter(config.slack.bot_token)


async def run_session(
    config: AppConfig,
    reporter: Reporter,
    cmd_config: CommandConfig,
    command: str,
    channel_id: str,
    thread_ts: Optional[str] = None,
    cwd: Optional[str] = None,
) -> int:
    """Spawn one session, wait for it to finish and return its exit code."""
    manager = SessionManager(config, reporter)
    try:
        if not thread_ts:
            # A root message gives the session a thread to reply in
            thread_ts = await reporter.post_message(channel_id, f"`{cmd_config.prefix}:` {command}")

        session = await manager.spawn(
            SpawnOptions(
                channel_id=channel_id,
                thread_ts=thread_ts,
                command=command,
                config=cmd_config,
                cwd=cwd,
            )
        )
        if session is None:
            return 1

        try:
            await session.done.wait()
        except asyncio.CancelledError:
            logger.info("Interrupted, stopping session")
            await manager.shutdown()
            raise
        return session.exit_code
    finally:
        await reporter.aclose()


@click.command()
@click.argument("prefix")
@click.argument("text", nargs=-1, required=True)
@click.option("--channel", help="Slack channel id (default: SLACK_DEFAULT_CHANNEL)")
@click.option("--thread", "thread_ts", help="Reply inside this thread instead of starting one")
@click.option("--console", is_flag=True, help="Print output to the terminal instead of Slack")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding commands.yaml (default: ./config)",
)
@click.option("--cwd", help="Working directory for the command (default: current directory)")
@click.pass_context
def run(ctx, prefix, text, channel, thread_ts, console, config_dir, cwd):
    """Run a configured command and stream its output to a thread."""
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        raise click.ClickException(str(e))
    setup_logging(config.log_level)

    cmd_config = config.find_command(prefix)
    if cmd_config is None:
        available = ", ".join(c.prefix for c in config.commands) or "none"
        raise click.ClickException(f"Unknown command prefix '{prefix}'. Available: {available}")

    channel_id = channel or config.slack.default_channel or (CONSOLE_CHANNEL if console else None)
    if not channel_id:
        raise click.ClickException("No channel given (use --channel or SLACK_DEFAULT_CHANNEL)")

    reporter = build_reporter(config, console)
    working_directory = os.path.realpath(cwd or os.getcwd())

    try:
        exit_code = asyncio.run(
            run_session(
                config, reporter, cmd_config, " ".join(text), channel_id, thread_ts, working_directory
            )
        )
    except KeyboardInterrupt:
        raise click.ClickException("Interrupted")

    if exit_code == TIMEOUT_EXIT_CODE:
        click.echo("Session timed out", err=True)
        ctx.exit(TIMEOUT_CLI_EXIT_CODE)
    ctx.exit(exit_code)
