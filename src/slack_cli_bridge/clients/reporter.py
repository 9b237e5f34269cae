"""Outbound reporting interface."""

from abc import ABC, abstractmethod
from typing import Optional


class Reporter(ABC):
    """Posts, edits and uploads messages in a chat destination.

    Callers own failure handling: every method may raise, and the streaming
    layer logs rather than propagates those errors.
    """

    @abstractmethod
    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> str:
        """Post a message, as a thread reply when thread_ts is given. Returns its ts."""
        pass

    @abstractmethod
    async def update_message(self, channel_id: str, ts: str, text: str) -> None:
        """Replace the text of an existing message."""
        pass

    async def post_message_with_button(
        self,
        channel_id: str,
        text: str,
        button_text: str,
        action_id: str,
        value: str,
        thread_ts: Optional[str] = None,
    ) -> str:
        """Post a message carrying one action button. Plain text where unsupported."""
        return await self.post_message(channel_id, text, thread_ts)

    async def update_message_with_button(
        self,
        channel_id: str,
        ts: str,
        text: str,
        button_text: str,
        action_id: str,
        value: str,
    ) -> None:
        """Replace a message's text and keep its action button."""
        await self.update_message(channel_id, ts, text)

    @abstractmethod
    async def upload_file(
        self, channel_id: str, content: str, filename: str, thread_ts: Optional[str] = None
    ) -> None:
        """Upload text content as a file."""
        pass

    async def aclose(self) -> None:
        """Release underlying connections."""
        pass
