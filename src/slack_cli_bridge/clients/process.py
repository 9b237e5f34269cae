"""Subprocess handles for CLI sessions.

Two backends share one callback-based interface:
  - PipeHandle: asyncio subprocess with piped stdio, used for one-shot commands
  - PtyHandle: pexpect pseudo-terminal, used for interactive TUIs that change
    behaviour when stdout is not a terminal

All callbacks run on the event loop, in the order the output was read.
"""

import asyncio
import codecs
import logging
import os
import signal
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

import pexpect

from slack_cli_bridge.constants import PTY_COLS, PTY_ROWS, PTY_TERM, READ_CHUNK_SIZE
from slack_cli_bridge.models.command import SessionMode

logger = logging.getLogger(__name__)

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


class SpawnError(Exception):
    """Raised when a binary cannot be found or executed."""

    pass


def normalize_exit_code(returncode: Optional[int], signal_number: Optional[int] = None) -> int:
    """Map a process result onto a non-negative exit code (128 + N for signal N)."""
    if returncode is not None and returncode >= 0:
        return returncode
    if returncode is not None:
        return 128 - returncode
    if signal_number:
        return 128 + signal_number
    return 1


class ProcessHandle(ABC):
    """Unified handle for a running subprocess."""

    def __init__(self) -> None:
        self._data_callbacks: List[DataCallback] = []
        self._exit_callbacks: List[ExitCallback] = []

    def on_data(self, callback: DataCallback) -> None:
        self._data_callbacks.append(callback)

    def on_exit(self, callback: ExitCallback) -> None:
        self._exit_callbacks.append(callback)

    @abstractmethod
    def write(self, text: str) -> None:
        """Write text to the process's input."""
        pass

    @abstractmethod
    def kill(self) -> None:
        """Request termination. Best-effort; exit is reported via on_exit."""
        pass

    def _emit_data(self, text: str) -> None:
        for callback in self._data_callbacks:
            callback(text)

    def _emit_exit(self, exit_code: int) -> None:
        for callback in self._exit_callbacks:
            callback(exit_code)


class PipeHandle(ProcessHandle):
    """Wraps an asyncio subprocess; stdout and stderr are merged into one stream."""

    def __init__(self, process: asyncio.subprocess.Process):
        super().__init__()
        self._process = process
        self._watch_task = asyncio.create_task(self._watch())

    @property
    def pid(self) -> int:
        return self._process.pid

    def write(self, text: str) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            logger.debug(f"stdin of pid {self.pid} is closed, dropping input")
            return
        stdin.write(text.encode("utf-8"))

    def kill(self) -> None:
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    async def _pump(self, stream: Optional[asyncio.StreamReader]) -> None:
        if stream is None:
            return
        # Multi-byte characters may straddle reads
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await stream.read(READ_CHUNK_SIZE)
            if not data:
                tail = decoder.decode(b"", final=True)
                if tail:
                    self._emit_data(tail)
                return
            text = decoder.decode(data)
            if text:
                self._emit_data(text)

    async def _watch(self) -> None:
        await asyncio.gather(self._pump(self._process.stdout), self._pump(self._process.stderr))
        returncode = await self._process.wait()
        self._emit_exit(normalize_exit_code(returncode))


class PtyHandle(ProcessHandle):
    """Wraps a pexpect child; its PTY fd is watched with loop.add_reader."""

    def __init__(self, child: pexpect.spawn):
        super().__init__()
        self._child = child
        self._fd = child.child_fd
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._loop.add_reader(self._fd, self._on_readable)

    @property
    def pid(self) -> int:
        return self._child.pid

    def write(self, text: str) -> None:
        if self._closed:
            return
        self._child.send(text)

    def kill(self) -> None:
        if self._closed:
            return
        try:
            self._child.kill(signal.SIGTERM)
        except OSError:
            pass

    def _on_readable(self) -> None:
        try:
            data = self._child.read_nonblocking(READ_CHUNK_SIZE, timeout=0)
        except pexpect.TIMEOUT:
            return
        except pexpect.EOF:
            self._close()
            return
        if data:
            self._emit_data(data)

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.remove_reader(self._fd)
        self._child.close()
        self._emit_exit(
            normalize_exit_code(self._child.exitstatus, self._child.signalstatus)
        )


def _child_env(mode: SessionMode) -> Dict[str, str]:
    env = dict(os.environ)
    if mode == SessionMode.ONE_SHOT:
        # Python-based CLIs otherwise buffer or mis-encode piped output
        env["PYTHONIOENCODING"] = "utf-8"
        env["PYTHONUNBUFFERED"] = "1"
    else:
        env["TERM"] = PTY_TERM
    return env


async def spawn_process(
    binary: str,
    args: List[str],
    mode: SessionMode,
    cwd: Optional[str] = None,
) -> ProcessHandle:
    """Start a subprocess appropriate for the mode.

    Raises:
        SpawnError: If the binary cannot be found or executed
    """
    cwd = cwd or os.getcwd()
    env = _child_env(mode)

    if mode == SessionMode.ONE_SHOT:
        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                *args,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"{binary}: {e}") from e

        # Some CLIs block until stdin is closed
        if process.stdin is not None:
            try:
                process.stdin.write(b"\n")
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                pass
            process.stdin.close()
        return PipeHandle(process)

    try:
        child = pexpect.spawn(
            binary,
            args,
            cwd=cwd,
            env=env,
            encoding="utf-8",
            codec_errors="replace",
            dimensions=(PTY_ROWS, PTY_COLS),
        )
    except (pexpect.ExceptionPexpect, OSError) as e:
        raise SpawnError(f"{binary}: {e}") from e
    return PtyHandle(child)
