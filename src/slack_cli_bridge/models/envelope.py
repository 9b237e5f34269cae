from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class EnvelopeType(str, Enum):
    """Closed set of envelope type tags."""

    PROGRESS = "progress"
    QUESTION = "question"
    WARNING = "warning"
    DONE = "done"
    ERROR = "error"


class EnvelopeMessage(BaseModel):
    """Message extracted from a <<<SLACK>>>...<<<END_SLACK>>> envelope."""

    model_config = ConfigDict(frozen=True)

    type: Optional[EnvelopeType] = None
    text: str
    # True when flushed without a close marker (process exit or timeout)
    incomplete: bool = False
