"""Serve command: listen for Slack messages and run triggered commands."""

import asyncio
import logging
import os
from pathlib import Path
from typing import List, Optional

import click
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.web.async_client import AsyncWebClient

from slack_cli_bridge.clients.slack import SlackReporter
from slack_cli_bridge.clients.slack_listener import SlackListener
from slack_cli_bridge.services.dispatch_service import MessageDispatcher
from slack_cli_bridge.services.log_service import LogService
from slack_cli_bridge.services.session_service import SessionManager
from slack_cli_bridge.utils.config import AppConfig, ConfigError, load_config
from slack_cli_bridge.utils.logging import setup_logging

logger = logging.getLogger(__name__)

RESTART_NOTICE = "🔄 Slack CLI bridge restarted and listening."


async def serve_forever(config: AppConfig, listen_channels: List[str], cwd: Optional[str] = None) -> None:
    """Connect over Socket Mode and dispatch messages until cancelled."""
    logs = LogService(config.log_dir)
    removed = logs.remove_older_than(config.log_retention_days)
    if removed:
        logger.info(f"Removed {removed} session logs older than {config.log_retention_days} days")

    web_client = AsyncWebClient(token=config.slack.bot_token)
    reporter = SlackReporter(client=web_client)
    sessions = SessionManager(config, reporter)
    dispatcher = MessageDispatcher(config, reporter, sessions, logs, cwd=cwd)

    socket_client = SocketModeClient(app_token=config.slack.app_token, web_client=web_client)
    SlackListener(dispatcher, reporter, listen_channels).attach(socket_client)

    try:
        await socket_client.connect()
        logger.info(
            f"Connected via Socket Mode | channels={len(listen_channels)} "
            f"commands={len(config.commands)}"
        )
        for channel_id in listen_channels:
            try:
                await reporter.post_message(channel_id, RESTART_NOTICE)
            except Exception as e:
                logger.warning(f"Could not post restart notice to {channel_id}: {e}")

        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down")
        await sessions.shutdown()
        await socket_client.close()


@click.command()
@click.option(
    "--channel",
    "channels",
    multiple=True,
    help="Channel id to listen in; repeatable (default: SLACK_LISTEN_CHANNELS)",
)
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding commands.yaml (default: ./config)",
)
@click.option("--cwd", help="Working directory for commands (default: current directory)")
def serve(channels, config_dir, cwd):
    """Listen for Slack messages over Socket Mode and run triggered commands."""
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        raise click.ClickException(str(e))
    setup_logging(config.log_level)

    if not config.slack.bot_token or not config.slack.app_token:
        raise click.ClickException("SLACK_BOT_TOKEN and SLACK_APP_TOKEN must both be set")

    listen_channels = list(channels) or config.slack.listen_channels
    if not listen_channels:
        raise click.ClickException("No channels to listen in (use --channel or SLACK_LISTEN_CHANNELS)")

    working_directory = os.path.realpath(cwd or os.getcwd())
    try:
        asyncio.run(serve_forever(config, listen_channels, working_directory))
    except KeyboardInterrupt:
        click.echo("Stopped", err=True)
