import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from slack_cli_bridge.models.command import CommandConfig


class SessionStatus(str, Enum):
    """Session lifecycle status."""

    RUNNING = "running"
    EXITED = "exited"
    TIMED_OUT = "timed_out"


class SpawnOptions(BaseModel):
    """Everything needed to start one CLI session."""

    channel_id: str
    thread_ts: str
    command: str
    config: CommandConfig
    cwd: Optional[str] = None
    continuation_id: Optional[str] = None
    is_continuation: bool = False


class ThreadBinding(BaseModel):
    """Continuation record that outlives the process it was created for."""

    prefix: str
    continuation_id: str
    channel_id: str


class Session(BaseModel):
    """Runtime state of a single CLI session."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., description="Session id, also the log file base name")
    channel_id: str
    thread_ts: str = Field(..., description="Thread key and reply target")
    command: str
    config: CommandConfig
    status: SessionStatus = SessionStatus.RUNNING
    started_at: datetime = Field(default_factory=datetime.now)
    exit_code: Optional[int] = None
    message_ts: Optional[str] = Field(None, description="ts of the start notification")

    process: Any = None
    router: Any = None
    timeout_handle: Optional[asyncio.TimerHandle] = None
    input_handle: Optional[asyncio.TimerHandle] = None

    finalising: bool = False
    ready: asyncio.Event = Field(default_factory=asyncio.Event)
    done: asyncio.Event = Field(default_factory=asyncio.Event)

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self.started_at).total_seconds()
