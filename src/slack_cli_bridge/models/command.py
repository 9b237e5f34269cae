from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SessionMode(str, Enum):
    """How a command's subprocess is driven."""

    INTERACTIVE = "interactive"
    ONE_SHOT = "one-shot"


class CommandConfig(BaseModel):
    """CLI command configuration loaded from commands.yaml."""

    prefix: str = Field(..., description="Trigger prefix, matched as '<prefix>:'")
    binary: str = Field(..., description="Executable path or name")
    args: List[str] = Field(default_factory=list, description="Fixed leading arguments")
    mode: SessionMode = SessionMode.ONE_SHOT
    envelope: bool = Field(False, description="Only post <<<SLACK>>> envelopes to chat")
    description: str = ""
    timeout: bool = Field(True, description="False disables the session timeout")
    prompt_flag: Optional[str] = Field(None, description="Flag preceding the prompt text, e.g. -p")
    session_flag: Optional[str] = Field(
        None, description="Single flag used to both create and resume a session, e.g. -S"
    )
    session_id_flag: Optional[str] = Field(
        None, description="Flag creating a session with a UUID id, e.g. --session-id"
    )
    resume_flag: Optional[str] = Field(None, description="Flag resuming a session, e.g. --resume")

    @property
    def supports_continuation(self) -> bool:
        return bool(self.session_flag or self.session_id_flag)
