"""Unit tests for session and continuation ids."""

import re
import uuid
from datetime import datetime

from slack_cli_bridge.models.command import CommandConfig
from slack_cli_bridge.utils.session import (
    continuation_id_for,
    generate_session_id,
    thread_continuation_name,
)


class TestGenerateSessionId:
    def test_format(self):
        session_id = generate_session_id(datetime(2024, 5, 1, 9, 8, 7))

        assert re.fullmatch(r"session_20240501_090807_[a-z0-9]{6}", session_id)

    def test_unique(self):
        assert len({generate_session_id() for _ in range(50)}) == 50


class TestContinuationIds:
    def test_thread_name(self):
        assert thread_continuation_name("C1", "171.5") == "slack-C1-171.5"

    def test_session_flag_uses_plain_name(self):
        config = CommandConfig(prefix="kimi", binary="kimi", session_flag="-S")

        assert continuation_id_for("C1", "171.5", config) == "slack-C1-171.5"

    def test_session_id_flag_uses_uuid(self):
        config = CommandConfig(prefix="claude", binary="claude", session_id_flag="--session-id")

        value = continuation_id_for("C1", "171.5", config)

        assert uuid.UUID(value).version == 5
        assert value == continuation_id_for("C1", "171.5", config)
        assert value != continuation_id_for("C1", "171.6", config)
