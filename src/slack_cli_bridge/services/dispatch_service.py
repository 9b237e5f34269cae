"""Routing of inbound chat messages to sessions and control commands.

Decision order for each message:
  1. thread with a continuation binding and nothing running -> resume the CLI
  2. thread with a running session -> forward as stdin
  3. control command (/status, /stop, /logs, /help) or CLI trigger (prefix:)
"""

import logging
from typing import List, Optional

from pydantic import BaseModel

from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import DEFAULT_TAIL_LINES
from slack_cli_bridge.models.command import CommandConfig
from slack_cli_bridge.models.session import SpawnOptions
from slack_cli_bridge.services.log_service import (
    TRUNCATION_NOTICE,
    LogService,
    format_log_list,
)
from slack_cli_bridge.services.session_service import SessionManager
from slack_cli_bridge.utils.command_filter import check_command
from slack_cli_bridge.utils.config import AppConfig
from slack_cli_bridge.utils.formatting import code_block

logger = logging.getLogger(__name__)

CONTROL_COMMANDS = ("/status", "/stop", "/logs", "/help")


class IncomingMessage(BaseModel):
    """A chat message as delivered by the inbound listener."""

    channel_id: str
    user_id: str
    text: str
    thread_ts: Optional[str] = None
    ts: str


class ParsedCommand(BaseModel):
    is_control: bool
    prefix: str
    args: str = ""


def parse_command(text: str, commands: List[CommandConfig]) -> Optional[ParsedCommand]:
    """Match control commands first, then configured ``<prefix>:`` triggers."""
    for control in CONTROL_COMMANDS:
        if text == control or text.startswith(control + " "):
            return ParsedCommand(is_control=True, prefix=control, args=text[len(control) :].strip())

    lowered = text.lower()
    for command in commands:
        trigger = f"{command.prefix}:"
        if lowered.startswith(trigger.lower()):
            return ParsedCommand(
                is_control=False, prefix=command.prefix, args=text[len(trigger) :].strip()
            )
    return None


class MessageDispatcher:
    def __init__(
        self,
        config: AppConfig,
        reporter: Reporter,
        sessions: SessionManager,
        logs: LogService,
        cwd: Optional[str] = None,
    ):
        self._config = config
        self._reporter = reporter
        self._sessions = sessions
        self._logs = logs
        self._cwd = cwd

    async def handle_message(self, msg: IncomingMessage) -> None:
        logger.debug(f"Message {msg.ts} in {msg.channel_id} (thread={msg.thread_ts}): {msg.text[:60]}")

        if msg.thread_ts:
            binding = self._sessions.get_thread_binding(msg.channel_id, msg.thread_ts)
            if binding is not None and not self._sessions.has_session(msg.thread_ts):
                cmd_config = self._config.find_command(binding.prefix)
                if cmd_config is not None:
                    logger.info(
                        f"Continuing {binding.prefix} thread {msg.thread_ts} "
                        f"as {binding.continuation_id}"
                    )
                    await self._sessions.spawn(
                        SpawnOptions(
                            channel_id=msg.channel_id,
                            thread_ts=msg.thread_ts,
                            command=msg.text,
                            config=cmd_config,
                            cwd=self._cwd,
                            continuation_id=binding.continuation_id,
                            is_continuation=True,
                        )
                    )
                    return
                logger.warning(f"Binding refers to unknown command prefix: {binding.prefix}")

            if self._sessions.has_session(msg.thread_ts):
                self._sessions.send_input(msg.thread_ts, msg.text)
                return

        parsed = parse_command(msg.text, self._config.commands)
        if parsed is None:
            logger.debug("Not a recognised command, ignoring")
            return

        if parsed.is_control:
            await self._handle_control(parsed, msg.channel_id, msg.ts)
        else:
            await self._handle_cli(parsed, msg.channel_id, msg.ts)

    def close_thread(self, channel_id: str, thread_ts: str) -> bool:
        """Stop any session in the thread and forget its continuation."""
        stopped = self._sessions.stop(thread_ts)
        removed = self._sessions.remove_thread_binding(channel_id, thread_ts)
        logger.info(f"Closed thread {thread_ts}: stopped={stopped} binding_removed={removed}")
        return stopped or removed

    # ── handlers ───────────────────────────────────────────────────────────

    async def _handle_cli(self, parsed: ParsedCommand, channel_id: str, ts: str) -> None:
        if not parsed.args:
            await self._reply(
                channel_id, f"Please provide a command after `{parsed.prefix}:`.", ts
            )
            return

        blocked = check_command(parsed.args)
        if blocked:
            await self._reply(channel_id, f"🚫 {blocked}", ts)
            return

        cmd_config = self._config.find_command(parsed.prefix)
        await self._sessions.spawn(
            SpawnOptions(
                channel_id=channel_id,
                # The trigger message becomes the thread root
                thread_ts=ts,
                command=parsed.args,
                config=cmd_config,
                cwd=self._cwd,
            )
        )

    async def _handle_control(self, parsed: ParsedCommand, channel_id: str, ts: str) -> None:
        if parsed.prefix == "/status":
            await self._post_status(channel_id, ts)
        elif parsed.prefix == "/stop":
            await self._post_stop(parsed.args, channel_id, ts)
        elif parsed.prefix == "/logs":
            await self._post_logs(parsed.args, channel_id, ts)
        elif parsed.prefix == "/help":
            await self._post_help(channel_id, ts)

    async def _post_status(self, channel_id: str, ts: str) -> None:
        sessions = self._sessions.list_sessions()
        if not sessions:
            await self._reply(channel_id, "No active sessions.", ts)
            return
        lines = [
            f"• `{s['id']}` — {s['command'][:50]} ({s['status']}, {round(s['uptime_seconds'])}s)"
            for s in sessions
        ]
        await self._reply(channel_id, "*Active sessions:*\n" + "\n".join(lines), ts)

    async def _post_stop(self, args: str, channel_id: str, ts: str) -> None:
        if not args:
            await self._reply(channel_id, "Usage: `/stop <session id or thread ts>`", ts)
            return
        if not self._sessions.stop(args):
            await self._reply(
                channel_id, "Session not found. Use `/status` to list active sessions.", ts
            )

    async def _post_logs(self, args: str, channel_id: str, ts: str) -> None:
        if args == "list":
            listing = format_log_list(self._logs)
            await self._reply(channel_id, listing or "No session logs found.", ts)
            return

        if args == "tail" or args.startswith("tail "):
            try:
                lines = int(args[len("tail") :].strip())
            except ValueError:
                lines = DEFAULT_TAIL_LINES
            text = self._logs.tail(lines)
            if text is None:
                await self._reply(channel_id, "No session logs found.", ts)
            else:
                await self._reply(channel_id, code_block(text), ts)
            return

        if args:
            path = self._logs.resolve(args)
            if path is None:
                await self._reply(channel_id, f"Log not found: `{args}`", ts)
                return
        else:
            # Prefer the newest in-memory session, then the newest file on disk
            latest_id = self._sessions.latest_session_id()
            path = (self._logs.resolve(latest_id) if latest_id else None) or self._logs.resolve()
            if path is None:
                await self._reply(channel_id, "No session logs found.", ts)
                return

        content, truncated = self._logs.read_for_upload(path)
        try:
            await self._reporter.upload_file(channel_id, content, path.name, ts)
        except Exception as e:
            logger.error(f"Failed to upload log {path.name}: {e}")
            await self._reply(channel_id, f"❌ Failed to upload `{path.name}`: {e}", ts)
            return
        if truncated:
            await self._reply(channel_id, TRUNCATION_NOTICE, ts)
        logger.info(f"Uploaded log {path.name} ({len(content)} chars)")

    async def _post_help(self, channel_id: str, ts: str) -> None:
        lines = ["*Commands:*"]
        lines.extend(f"`{c.prefix}: <text>` — {c.description}" for c in self._config.commands)
        lines.extend(
            [
                "",
                "*Control:*",
                "`/status` — active sessions",
                "`/stop <id>` — kill a session",
                "`/logs` — upload latest log",
                "`/logs <id>` — upload a specific log",
                "`/logs tail <N>` — last N lines inline",
                "`/logs list` — list recent logs",
                "`/help` — this message",
            ]
        )
        await self._reply(channel_id, "\n".join(lines), ts)

    # ── helpers ────────────────────────────────────────────────────────────

    async def _reply(self, channel_id: str, text: str, ts: str) -> None:
        try:
            await self._reporter.post_message(channel_id, text, ts)
        except Exception as e:
            logger.error(f"Failed to reply in {channel_id}: {e}")
