"""Shared fakes for bridge tests."""

import itertools
from typing import List, Optional, Tuple

import pytest

from slack_cli_bridge.clients.process import ProcessHandle
from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.models.command import CommandConfig, SessionMode
from slack_cli_bridge.utils.config import AppConfig, BehaviorSettings, EnvelopeSettings


class RecordingReporter(Reporter):
    """Reporter that records every call; failures can be queued per method."""

    def __init__(self):
        self.calls: List[Tuple] = []
        self.fail_posts = 0
        self.fail_updates = 0
        self._counter = itertools.count(1)

    @property
    def posts(self) -> List[Tuple]:
        return [c[1:] for c in self.calls if c[0] == "post"]

    @property
    def updates(self) -> List[Tuple]:
        return [c[1:] for c in self.calls if c[0] == "update"]

    @property
    def uploads(self) -> List[Tuple]:
        return [c[1:] for c in self.calls if c[0] == "upload"]

    def texts(self) -> List[str]:
        return [c[1] for c in self.posts] + [c[2] for c in self.updates]

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> str:
        if self.fail_posts:
            self.fail_posts -= 1
            raise RuntimeError("post failed")
        ts = f"ts.{next(self._counter)}"
        self.calls.append(("post", channel_id, text, thread_ts, ts))
        return ts

    async def update_message(self, channel_id: str, ts: str, text: str) -> None:
        if self.fail_updates:
            self.fail_updates -= 1
            raise RuntimeError("update failed")
        self.calls.append(("update", channel_id, ts, text))

    async def upload_file(
        self, channel_id: str, content: str, filename: str, thread_ts: Optional[str] = None
    ) -> None:
        self.calls.append(("upload", channel_id, content, filename, thread_ts))


class FakeProcessHandle(ProcessHandle):
    """Process handle driven by the test: emit output and exit on demand."""

    def __init__(self, exit_on_kill: bool = False):
        super().__init__()
        self.written: List[str] = []
        self.kill_count = 0
        self.exit_on_kill = exit_on_kill

    def write(self, text: str) -> None:
        self.written.append(text)

    def kill(self) -> None:
        self.kill_count += 1
        if self.exit_on_kill:
            self._emit_exit(143)

    def output(self, text: str) -> None:
        self._emit_data(text)

    def exit(self, exit_code: int) -> None:
        self._emit_exit(exit_code)


class FakeSpawner:
    """Async stand-in for spawn_process recording every invocation."""

    def __init__(self, exit_on_kill: bool = False):
        self.calls: List[Tuple[str, List[str], SessionMode, Optional[str]]] = []
        self.handles: List[FakeProcessHandle] = []
        self.exit_on_kill = exit_on_kill

    async def __call__(self, binary, args, mode, cwd=None):
        self.calls.append((binary, list(args), mode, cwd))
        handle = FakeProcessHandle(exit_on_kill=self.exit_on_kill)
        self.handles.append(handle)
        return handle

    @property
    def last_args(self) -> List[str]:
        return self.calls[-1][1]


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def spawner():
    return FakeSpawner(exit_on_kill=True)


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        behavior=BehaviorSettings(
            session_timeout_minutes=30,
            output_flush_interval=60.0,
            output_max_chars_per_message=3500,
        ),
        envelope=EnvelopeSettings(prompt_text="", activation_delay=0.0, unclosed_timeout=30.0),
        log_dir=tmp_path / "logs",
        commands=[
            CommandConfig(prefix="run", binary="/bin/bash", args=["-c"], description="Shell"),
            CommandConfig(
                prefix="kimi",
                binary="kimi",
                envelope=True,
                prompt_flag="-c",
                session_flag="-S",
                description="Kimi",
            ),
            CommandConfig(
                prefix="claude",
                binary="claude",
                envelope=True,
                prompt_flag="-p",
                session_id_flag="--session-id",
                resume_flag="--resume",
                description="Claude",
            ),
            CommandConfig(
                prefix="repl",
                binary="python3",
                mode=SessionMode.INTERACTIVE,
                description="Python REPL",
            ),
        ],
    )
