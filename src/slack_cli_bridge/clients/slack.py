"""Slack Web API reporter over slack_sdk's AsyncWebClient."""

import logging
from typing import Any, Dict, List, Optional

from slack_sdk.web.async_client import AsyncWebClient

from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import SLACK_API_TIMEOUT

logger = logging.getLogger(__name__)


def button_blocks(
    text: str, button_text: str, action_id: str, value: str
) -> List[Dict[str, Any]]:
    """Block Kit layout: a mrkdwn section followed by one danger button."""
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": button_text},
                    "action_id": action_id,
                    "value": value,
                    "style": "danger",
                }
            ],
        },
    ]


class SlackReporter(Reporter):
    """Thin wrapper over the Slack Web API methods the bridge needs.

    Errors are not caught here: slack_sdk raises ``SlackApiError`` for
    ok=false answers and the caller decides whether to log or propagate.
    """

    def __init__(self, bot_token: Optional[str] = None, client: Optional[AsyncWebClient] = None):
        self.client = client or AsyncWebClient(token=bot_token, timeout=SLACK_API_TIMEOUT)

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> str:
        response = await self.client.chat_postMessage(
            channel=channel_id, text=text, thread_ts=thread_ts
        )
        return response["ts"]

    async def update_message(self, channel_id: str, ts: str, text: str) -> None:
        await self.client.chat_update(channel=channel_id, ts=ts, text=text)

    async def post_message_with_button(
        self,
        channel_id: str,
        text: str,
        button_text: str,
        action_id: str,
        value: str,
        thread_ts: Optional[str] = None,
    ) -> str:
        response = await self.client.chat_postMessage(
            channel=channel_id,
            text=text,
            thread_ts=thread_ts,
            blocks=button_blocks(text, button_text, action_id, value),
        )
        return response["ts"]

    async def update_message_with_button(
        self,
        channel_id: str,
        ts: str,
        text: str,
        button_text: str,
        action_id: str,
        value: str,
    ) -> None:
        await self.client.chat_update(
            channel=channel_id,
            ts=ts,
            text=text,
            blocks=button_blocks(text, button_text, action_id, value),
        )

    async def upload_file(
        self, channel_id: str, content: str, filename: str, thread_ts: Optional[str] = None
    ) -> None:
        await self.client.files_upload_v2(
            channel=channel_id,
            content=content,
            filename=filename,
            title=filename,
            thread_ts=thread_ts,
        )
        logger.info(f"Uploaded {filename} ({len(content)} chars) to {channel_id}")
