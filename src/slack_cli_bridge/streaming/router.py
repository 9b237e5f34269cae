"""Per-session output routing.

Every chunk takes two tracks:
  Track 1 - LogWriter: always receives the raw chunk
  Track 2 - Slack: either the EnvelopeParser (only marked envelopes are
            posted) or the FullOutputStreamer (everything is streamed),
            selected once by the session's envelope flag
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict

from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import (
    ENVELOPE_UNCLOSED_TIMEOUT,
    LOG_DIR,
    OUTPUT_FLUSH_INTERVAL,
    OUTPUT_MAX_CHARS_PER_MESSAGE,
)
from slack_cli_bridge.models.envelope import EnvelopeMessage, EnvelopeType
from slack_cli_bridge.streaming.envelope_parser import EnvelopeParser
from slack_cli_bridge.streaming.full_streamer import FullOutputStreamer
from slack_cli_bridge.streaming.log_writer import LogWriter
from slack_cli_bridge.utils.formatting import markdown_to_slack

logger = logging.getLogger(__name__)

ENVELOPE_PREFIXES = {
    EnvelopeType.PROGRESS: "🔄 ",
    EnvelopeType.QUESTION: "🤔 ",
    EnvelopeType.WARNING: "⚠️ ",
    EnvelopeType.DONE: "✅ ",
    EnvelopeType.ERROR: "❌ ",
}
INCOMPLETE_SUFFIX = " ⚠️ *(incomplete)*"


class RouterConfig(BaseModel):
    """Immutable routing settings for one session."""

    model_config = ConfigDict(frozen=True)

    envelope: bool = False
    activation_delay: float = 0.0
    unclosed_timeout: float = ENVELOPE_UNCLOSED_TIMEOUT
    flush_interval: float = OUTPUT_FLUSH_INTERVAL
    max_chars_per_message: int = OUTPUT_MAX_CHARS_PER_MESSAGE


def format_envelope(message: EnvelopeMessage) -> str:
    prefix = ENVELOPE_PREFIXES.get(message.type, "") if message.type else ""
    suffix = INCOMPLETE_SUFFIX if message.incomplete else ""
    return f"{prefix}{markdown_to_slack(message.text)}{suffix}"


class OutputRouter:
    """Owns the log writer and exactly one of parser or streamer for a session."""

    def __init__(
        self,
        session_id: str,
        channel_id: str,
        thread_ts: str,
        reporter: Reporter,
        config: RouterConfig,
        log_dir: Path = LOG_DIR,
    ):
        self._channel_id = channel_id
        self._thread_ts = thread_ts
        self._reporter = reporter
        self.config = config
        self.log_writer = LogWriter(session_id, log_dir)
        self.parser: Optional[EnvelopeParser] = None
        self.streamer: Optional[FullOutputStreamer] = None
        # Tail of the chain of envelope posts; each post awaits the previous one
        self._last_post: Optional[asyncio.Task] = None
        # Set when finish() starts; later chunks from a dying process are dropped
        self._finished = False

        if config.envelope:
            self.parser = EnvelopeParser(
                activation_delay=config.activation_delay,
                unclosed_timeout=config.unclosed_timeout,
            )
            self.parser.on_envelope(self._on_envelope)
        else:
            self.streamer = FullOutputStreamer(
                reporter,
                channel_id,
                thread_ts,
                flush_interval=config.flush_interval,
                max_chars_per_message=config.max_chars_per_message,
            )

    @property
    def log_path(self) -> Path:
        return self.log_writer.log_path

    @property
    def finished(self) -> bool:
        return self._finished

    async def start(self) -> None:
        """Open the log, then start the streamer in full-output mode."""
        self.log_writer.open()
        if self.streamer is not None:
            await self.streamer.start()

    def push(self, chunk: str) -> None:
        if self._finished:
            logger.debug(f"Router finished, dropping {len(chunk)} chars")
            return
        self.log_writer.write(chunk)
        if self.parser is not None:
            self.parser.push(chunk)
        if self.streamer is not None:
            self.streamer.push(chunk)

    async def finish(self, exit_code: int) -> None:
        """Flush partial envelopes, post the exit status and close the log.

        Each step runs even if an earlier one fails, so the log file is
        always closed.
        """
        logger.debug(f"OutputRouter.finish() called with exit_code={exit_code}")
        self._finished = True
        try:
            if self.parser is not None:
                self.parser.flush()
                await self._drain_posts()
        except Exception as e:
            logger.error(f"Envelope flush failed: {e}")

        try:
            if self.streamer is not None:
                await self.streamer.finish(exit_code)
        except Exception as e:
            logger.error(f"Streamer finish failed: {e}")

        try:
            self.log_writer.close(exit_code)
        except Exception as e:
            logger.error(f"Log close failed for {self.log_path}: {e}")

    def _on_envelope(self, message: EnvelopeMessage) -> None:
        previous = self._last_post
        self._last_post = asyncio.get_running_loop().create_task(
            self._post_envelope(message, previous)
        )

    async def _post_envelope(
        self, message: EnvelopeMessage, previous: Optional[asyncio.Task]
    ) -> None:
        if previous is not None:
            await asyncio.wait([previous])
        try:
            await self._reporter.post_message(
                self._channel_id, format_envelope(message), self._thread_ts
            )
        except Exception as e:
            logger.error(f"Failed to post envelope to Slack: {e}")

    async def _drain_posts(self) -> None:
        if self._last_post is not None:
            await asyncio.wait([self._last_post])
