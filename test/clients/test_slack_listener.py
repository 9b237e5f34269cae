"""Unit tests for the Socket Mode listener."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from slack_sdk.socket_mode.request import SocketModeRequest

from slack_cli_bridge.clients.slack_listener import SlackListener, to_incoming_message
from slack_cli_bridge.services.dispatch_service import MessageDispatcher
from slack_cli_bridge.services.log_service import LogService
from slack_cli_bridge.services.session_service import SessionManager


def fake_socket_client():
    return SimpleNamespace(socket_mode_request_listeners=[], send_socket_mode_response=AsyncMock())


def message_request(text, ts="300.1", channel="C1", envelope_id="env-1", **extra):
    event = {"type": "message", "channel": channel, "user": "U1", "text": text, "ts": ts}
    event.update(extra)
    return SocketModeRequest(type="events_api", envelope_id=envelope_id, payload={"event": event})


def close_request(thread_ts, channel="C1", message_ts="ts.2"):
    payload = {
        "type": "block_actions",
        "channel": {"id": channel},
        "message": {"ts": message_ts},
        "actions": [{"action_id": "close_session", "value": thread_ts}],
    }
    return SocketModeRequest(type="interactive", envelope_id="env-2", payload=payload)


@pytest.fixture
def sessions(app_config, reporter, spawner):
    return SessionManager(app_config, reporter, spawner=spawner)


@pytest.fixture
def listener(app_config, reporter, sessions):
    dispatcher = MessageDispatcher(app_config, reporter, sessions, LogService(app_config.log_dir))
    return SlackListener(dispatcher, reporter, ["C1"])


class TestToIncomingMessage:
    def test_plain_message(self):
        msg = to_incoming_message(
            {"channel": "C1", "user": "U1", "text": "run: ls", "ts": "1.1", "thread_ts": "0.9"},
            ["C1"],
        )

        assert msg.channel_id == "C1"
        assert msg.text == "run: ls"
        assert msg.thread_ts == "0.9"

    @pytest.mark.parametrize(
        "event",
        [
            {"channel": "C1", "user": "U1", "text": "x", "ts": "1.1", "subtype": "bot_message"},
            {"channel": "C1", "user": "U1", "text": "x", "ts": "1.1", "subtype": "channel_join"},
            {"channel": "C1", "user": "U1", "text": "x", "ts": "1.1", "bot_id": "B1"},
            {"channel": "C9", "user": "U1", "text": "x", "ts": "1.1"},
            {"channel": "C1", "text": "x", "ts": "1.1"},
        ],
    )
    def test_ignored_events(self, event):
        assert to_incoming_message(event, ["C1"]) is None


class TestHandleRequest:
    def test_attach_registers_listener(self, listener):
        client = fake_socket_client()

        listener.attach(client)

        assert client.socket_mode_request_listeners == [listener.handle_request]

    @pytest.mark.asyncio
    async def test_message_acked_and_dispatched(self, listener, sessions, spawner):
        client = fake_socket_client()

        await listener.handle_request(client, message_request("run: echo hi"))

        response = client.send_socket_mode_response.await_args.args[0]
        assert response.envelope_id == "env-1"
        assert spawner.calls[0][1] == ["-c", "echo hi"]
        spawner.handles[0].exit(0)
        await asyncio.wait_for(sessions.get_session("300.1").done.wait(), 2)

    @pytest.mark.asyncio
    async def test_thread_reply_reaches_interactive_session(self, listener, sessions, spawner):
        client = fake_socket_client()
        await listener.handle_request(client, message_request("repl: print(1)"))

        await listener.handle_request(client, message_request("print(2)", ts="300.2", thread_ts="300.1"))

        assert spawner.handles[0].written == ["print(2)\n"]
        spawner.handles[0].exit(0)
        await asyncio.wait_for(sessions.get_session("300.1").done.wait(), 2)

    @pytest.mark.asyncio
    async def test_other_channel_ignored(self, listener, reporter, spawner):
        client = fake_socket_client()

        await listener.handle_request(client, message_request("run: ls", channel="C9"))

        client.send_socket_mode_response.assert_awaited_once()
        assert spawner.calls == []
        assert reporter.calls == []

    @pytest.mark.asyncio
    async def test_dispatch_error_is_contained(self, listener):
        client = fake_socket_client()
        listener._dispatcher.handle_message = AsyncMock(side_effect=RuntimeError("boom"))

        await listener.handle_request(client, message_request("run: ls"))

        client.send_socket_mode_response.assert_awaited_once()


class TestCloseAction:
    @pytest.mark.asyncio
    async def test_close_stops_session_and_unbinds(self, listener, sessions, spawner, reporter):
        client = fake_socket_client()
        await listener.handle_request(client, message_request("kimi: hello"))
        session = sessions.get_session("300.1")

        await listener.handle_request(client, close_request("300.1"))
        await asyncio.wait_for(session.done.wait(), 2)

        assert spawner.handles[0].kill_count == 1
        assert sessions.get_thread_binding("C1", "300.1") is None
        closed = [u for u in reporter.updates if u[1] == "ts.2" and "closed by user" in u[2]]
        assert len(closed) == 1

    @pytest.mark.asyncio
    async def test_close_unknown_thread_is_noop(self, listener, reporter):
        client = fake_socket_client()

        await listener.handle_request(client, close_request("999.9"))

        assert reporter.calls == []

    @pytest.mark.asyncio
    async def test_other_actions_ignored(self, listener, reporter):
        client = fake_socket_client()
        request = SocketModeRequest(
            type="interactive",
            envelope_id="env-3",
            payload={"type": "block_actions", "actions": [{"action_id": "other", "value": "1"}]},
        )

        await listener.handle_request(client, request)

        assert reporter.calls == []
