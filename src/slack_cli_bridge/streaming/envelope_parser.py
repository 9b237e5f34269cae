"""Streaming parser for <<<SLACK>>>...<<<END_SLACK>>> envelopes."""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from slack_cli_bridge.constants import ENVELOPE_UNCLOSED_TIMEOUT
from slack_cli_bridge.models.envelope import EnvelopeMessage, EnvelopeType
from slack_cli_bridge.streaming.ansi import strip_control
from slack_cli_bridge.streaming.markers import (
    find_close_marker,
    find_open_marker,
    resolve_type,
    trim_scan_tail,
)

logger = logging.getLogger(__name__)

EnvelopeListener = Callable[[EnvelopeMessage], None]


class ParserState(str, Enum):
    SCANNING = "scanning"
    CAPTURING = "capturing"


class EnvelopeParser:
    """Stateful stream parser that extracts envelopes from process output.

    Chunks may split markers at any position. Listeners registered with
    ``on_envelope`` receive each message synchronously, in marker order.

    Two timers guard the stream:
      - activation: chunks are dropped until ``activation_delay`` seconds have
        passed, so a PTY echo of the injected prompt is never parsed
      - unclosed: an envelope without a close marker is force-emitted as
        incomplete after ``unclosed_timeout`` seconds
    """

    def __init__(
        self,
        activation_delay: float = 0.0,
        unclosed_timeout: float = ENVELOPE_UNCLOSED_TIMEOUT,
    ):
        self._unclosed_timeout = unclosed_timeout
        self._listeners: List[EnvelopeListener] = []
        self._state = ParserState.SCANNING
        self._scan_buffer = ""
        self._capture_buffer = ""
        self._current_type: Optional[EnvelopeType] = None
        self._unclosed_timer: Optional[asyncio.TimerHandle] = None
        self._activation_timer: Optional[asyncio.TimerHandle] = None
        self._activated = activation_delay <= 0
        # Set by flush(); output arriving after the stream ended is dropped
        self._closed = False
        if not self._activated:
            loop = asyncio.get_running_loop()
            self._activation_timer = loop.call_later(activation_delay, self._activate)

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def activated(self) -> bool:
        return self._activated

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def scan_buffer(self) -> str:
        return self._scan_buffer

    @property
    def capture_buffer(self) -> str:
        return self._capture_buffer

    def on_envelope(self, listener: EnvelopeListener) -> None:
        self._listeners.append(listener)

    def push(self, chunk: str) -> None:
        """Feed one output chunk. Chunks must arrive in order, exactly once."""
        if self._closed:
            logger.debug(f"Parser closed, dropping {len(chunk)} chars")
            return
        if not self._activated:
            logger.debug(f"Parser not activated, dropping {len(chunk)} chars")
            return

        if self._state == ParserState.SCANNING:
            self._scan_buffer += chunk
            self._scan_open()
        else:
            self._capture_buffer += chunk
            self._try_close()

    def flush(self) -> None:
        """Stop all timers, emit any in-progress capture as incomplete and close.

        A flushed parser ignores every later chunk.
        """
        self._closed = True
        if self._activation_timer is not None:
            self._activation_timer.cancel()
            self._activation_timer = None
        self._cancel_unclosed_timer()

        if self._state == ParserState.CAPTURING:
            text = strip_control(self._capture_buffer).strip()
            if text:
                logger.warning("Flushing incomplete envelope on process exit")
                self._emit(EnvelopeMessage(type=self._current_type, text=text, incomplete=True))
        self._reset()

    def _activate(self) -> None:
        self._activation_timer = None
        self._activated = True
        logger.debug("Envelope parser activated")

    def _scan_open(self) -> None:
        match = find_open_marker(self._scan_buffer)
        if match is None:
            self._scan_buffer = trim_scan_tail(self._scan_buffer)
            return

        self._current_type = resolve_type(match.type_tag)
        self._capture_buffer = self._scan_buffer[match.end :]
        self._scan_buffer = ""
        self._state = ParserState.CAPTURING
        logger.debug(f"Envelope open marker found, type={self._current_type}")

        self._cancel_unclosed_timer()
        loop = asyncio.get_running_loop()
        self._unclosed_timer = loop.call_later(self._unclosed_timeout, self._flush_partial)

        # Both markers may arrive in the same chunk
        self._try_close()

    def _try_close(self) -> None:
        match = find_close_marker(self._capture_buffer)
        if match is None:
            return

        self._cancel_unclosed_timer()
        text = strip_control(self._capture_buffer[: match.start]).strip()
        remainder = self._capture_buffer[match.end :]

        self._emit(EnvelopeMessage(type=self._current_type, text=text))
        logger.debug(f"Envelope closed, type={self._current_type}, {len(text)} chars")

        # Text after the close marker may hold the next open marker
        self._state = ParserState.SCANNING
        self._capture_buffer = ""
        self._current_type = None
        self._scan_buffer = remainder
        if remainder:
            self._scan_open()

    def _flush_partial(self) -> None:
        self._unclosed_timer = None
        logger.warning(
            f"Unclosed envelope timeout; flushing {len(self._capture_buffer)} chars"
        )
        text = strip_control(self._capture_buffer).strip()
        if text:
            self._emit(EnvelopeMessage(type=self._current_type, text=text, incomplete=True))
        self._state = ParserState.SCANNING
        self._capture_buffer = ""
        self._current_type = None

    def _cancel_unclosed_timer(self) -> None:
        if self._unclosed_timer is not None:
            self._unclosed_timer.cancel()
            self._unclosed_timer = None

    def _emit(self, message: EnvelopeMessage) -> None:
        for listener in self._listeners:
            listener(message)

    def _reset(self) -> None:
        self._state = ParserState.SCANNING
        self._scan_buffer = ""
        self._capture_buffer = ""
        self._current_type = None
