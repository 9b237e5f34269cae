"""Buffered full-output streaming into a Slack thread."""

import asyncio
import contextlib
import logging
from typing import Optional

from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import OUTPUT_FLUSH_INTERVAL, OUTPUT_MAX_CHARS_PER_MESSAGE
from slack_cli_bridge.streaming.ansi import strip_ansi
from slack_cli_bridge.utils.formatting import code_block

logger = logging.getLogger(__name__)

RUNNING_PLACEHOLDER = "⏳ Running…"
CONTINUED_PLACEHOLDER = "⏳ …"


def exit_status_line(exit_code: int) -> str:
    status = "✅" if exit_code == 0 else "❌"
    return f"{status} Exited with code {exit_code}"


class FullOutputStreamer:
    """Streams all process output to Slack via periodic message edits.

    Posts a placeholder on start, then every ``flush_interval`` seconds edits
    it with the accumulated output. Once the buffer exceeds
    ``max_chars_per_message`` the current message is finalised with exactly
    that many characters and a new placeholder becomes the target. Only one
    split happens per tick, so a burst larger than the ceiling drains over
    several ticks.
    """

    def __init__(
        self,
        reporter: Reporter,
        channel_id: str,
        thread_ts: str,
        flush_interval: float = OUTPUT_FLUSH_INTERVAL,
        max_chars_per_message: int = OUTPUT_MAX_CHARS_PER_MESSAGE,
    ):
        self._reporter = reporter
        self._channel_id = channel_id
        self._thread_ts = thread_ts
        self._flush_interval = flush_interval
        self._max_chars = max_chars_per_message
        self._buffer = ""
        self._current_ts: Optional[str] = None
        self._flush_task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def current_ts(self) -> Optional[str]:
        return self._current_ts

    async def start(self) -> None:
        """Post the placeholder message and begin the flush loop."""
        try:
            self._current_ts = await self._reporter.post_message(
                self._channel_id, RUNNING_PLACEHOLDER, self._thread_ts
            )
        except Exception as e:
            # The first tick with content posts a fresh message instead
            logger.error(f"Failed to post output placeholder: {e}")
        self._flush_task = asyncio.create_task(self._flush_loop())

    def push(self, chunk: str) -> None:
        if self._stopped:
            return
        self._buffer += strip_ansi(chunk)

    async def flush(self) -> None:
        """Push buffered output to Slack, splitting once if over the ceiling."""
        if not self._buffer or self._stopped:
            return

        try:
            if len(self._buffer) > self._max_chars:
                chunk = self._buffer[: self._max_chars]
                await self._write_current(code_block(chunk))
                # Drop the slice only once it is safely in a message
                self._buffer = self._buffer[self._max_chars :]
                self._current_ts = None
                self._current_ts = await self._reporter.post_message(
                    self._channel_id, CONTINUED_PLACEHOLDER, self._thread_ts
                )
            else:
                await self._write_current(code_block(self._buffer))
        except Exception as e:
            logger.error(f"Output flush failed; will retry next cycle: {e}")

    async def finish(self, exit_code: int) -> None:
        """Stop the flush loop and write the remaining output plus exit status."""
        self._stopped = True
        if self._flush_task is not None:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task
            self._flush_task = None

        remaining = self._buffer.strip()
        output = f"{code_block(remaining)}\n" if remaining else ""
        try:
            await self._write_current(f"{output}{exit_status_line(exit_code)}")
        finally:
            self._buffer = ""

    async def _write_current(self, text: str) -> None:
        if self._current_ts is None:
            self._current_ts = await self._reporter.post_message(
                self._channel_id, text, self._thread_ts
            )
        else:
            await self._reporter.update_message(self._channel_id, self._current_ts, text)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._flush_interval)
            await self.flush()
