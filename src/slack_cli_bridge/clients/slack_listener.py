"""Inbound Slack traffic over Socket Mode.

Message events in the listen channels become IncomingMessage objects for the
dispatcher. The Close Session button (a block_actions interaction) stops the
thread's session and forgets its continuation binding.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse

from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import CLOSE_SESSION_ACTION
from slack_cli_bridge.services.dispatch_service import IncomingMessage, MessageDispatcher

logger = logging.getLogger(__name__)


def to_incoming_message(event: Dict[str, Any], listen_channels: List[str]) -> Optional[IncomingMessage]:
    """Convert a message event, or None when it must be ignored.

    Ignored: subtypes (bot_message, channel_join, edits, ...), bot posts,
    channels outside the listen list and events without a user.
    """
    if event.get("subtype"):
        logger.debug(f"Ignoring message with subtype: {event.get('subtype')}")
        return None
    if event.get("bot_id"):
        return None

    channel_id = event.get("channel")
    if not channel_id or channel_id not in listen_channels:
        logger.debug(f"Channel not in listen list: {channel_id}")
        return None

    user_id = event.get("user")
    if not user_id:
        logger.debug("No user id in message")
        return None

    return IncomingMessage(
        channel_id=channel_id,
        user_id=user_id,
        text=event.get("text") or "",
        thread_ts=event.get("thread_ts"),
        ts=event["ts"],
    )


class SlackListener:
    def __init__(self, dispatcher: MessageDispatcher, reporter: Reporter, listen_channels: List[str]):
        self._dispatcher = dispatcher
        self._reporter = reporter
        self.listen_channels = list(listen_channels)

    def attach(self, client: SocketModeClient) -> None:
        client.socket_mode_request_listeners.append(self.handle_request)

    async def handle_request(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        # Ack first; unacknowledged envelopes are redelivered
        await client.send_socket_mode_response(SocketModeResponse(envelope_id=req.envelope_id))

        try:
            if req.type == "events_api":
                event = (req.payload or {}).get("event") or {}
                if event.get("type") == "message":
                    await self.handle_message_event(event)
            elif req.type == "interactive":
                await self.handle_interaction(req.payload or {})
            else:
                logger.debug(f"Ignoring Socket Mode request type: {req.type}")
        except Exception as e:
            logger.error(f"Failed to handle Socket Mode {req.type} request: {e}")

    async def handle_message_event(self, event: Dict[str, Any]) -> None:
        msg = to_incoming_message(event, self.listen_channels)
        if msg is None:
            return
        await self._dispatcher.handle_message(msg)

    async def handle_interaction(self, payload: Dict[str, Any]) -> None:
        if payload.get("type") != "block_actions":
            return
        channel_id = (payload.get("channel") or {}).get("id")
        message_ts = (payload.get("message") or {}).get("ts")

        for action in payload.get("actions") or []:
            if action.get("action_id") != CLOSE_SESSION_ACTION:
                continue
            thread_ts = action.get("value")
            if not channel_id or not thread_ts:
                logger.warning(f"Close action without channel or thread: {action}")
                continue

            logger.info(f"Close session button clicked for thread {thread_ts}")
            if not self._dispatcher.close_thread(channel_id, thread_ts):
                logger.warning(f"No active session or binding for thread {thread_ts}")
                continue

            if message_ts:
                try:
                    await self._reporter.update_message(
                        channel_id,
                        message_ts,
                        f"🚀 Session closed by user at {datetime.now():%H:%M:%S}",
                    )
                except Exception as e:
                    logger.error(f"Failed to update message after closing session: {e}")
