"""Session and continuation id helpers."""

import secrets
import string
import uuid
from datetime import datetime
from typing import Optional

from slack_cli_bridge.constants import CONTINUATION_ID_PREFIX
from slack_cli_bridge.models.command import CommandConfig

SESSION_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_session_id(now: Optional[datetime] = None) -> str:
    """Generate a sortable session id: session_YYYYMMDD_HHMMSS_xxxxxx."""
    now = now or datetime.now()
    suffix = "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(6))
    return f"session_{now:%Y%m%d_%H%M%S}_{suffix}"


def thread_continuation_name(channel_id: str, thread_ts: str) -> str:
    return f"{CONTINUATION_ID_PREFIX}-{channel_id}-{thread_ts}"


def continuation_id_for(channel_id: str, thread_ts: str, config: CommandConfig) -> str:
    """Deterministic continuation id for a thread.

    CLIs taking a free-form session name (session_flag) get the plain
    "slack-<channel>-<thread>" string; CLIs that require a UUID
    (session_id_flag) get a UUIDv5 derived from it.
    """
    name = thread_continuation_name(channel_id, thread_ts)
    if config.session_id_flag:
        return str(uuid.uuid5(uuid.NAMESPACE_DNS, name))
    return name
