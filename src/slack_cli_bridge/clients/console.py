"""Terminal reporter for running commands without a Slack workspace."""

import itertools
from typing import Optional

import click

from slack_cli_bridge.clients.reporter import Reporter


class ConsoleReporter(Reporter):
    """Echoes every outbound message to the terminal.

    Message timestamps are sequential fake ts values, so edits can be shown
    against the message they replace.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)

    def _next_ts(self) -> str:
        return f"console.{next(self._counter):06d}"

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> str:
        ts = self._next_ts()
        click.echo(click.style(f"[{channel_id} {ts}]", fg="cyan") + f" {text}")
        return ts

    async def update_message(self, channel_id: str, ts: str, text: str) -> None:
        click.echo(click.style(f"[{channel_id} {ts} edited]", fg="yellow") + f" {text}")

    async def upload_file(
        self, channel_id: str, content: str, filename: str, thread_ts: Optional[str] = None
    ) -> None:
        click.echo(click.style(f"[{channel_id} upload {filename}]", fg="magenta"))
        click.echo(content)
