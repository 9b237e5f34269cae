"""Session lifecycle management.

Owns every live CLI session: spawns the process, wires its output into an
OutputRouter, enforces the session timeout and finalises exactly once when
the process exits or times out. Thread bindings outlive the process so a
later reply in the same thread can resume the CLI's own conversation.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from slack_cli_bridge.clients.process import ProcessHandle, SpawnError, spawn_process
from slack_cli_bridge.clients.reporter import Reporter
from slack_cli_bridge.constants import (
    AUDIT_LOG_NAME,
    CLOSE_SESSION_ACTION,
    CLOSE_SESSION_BUTTON_TEXT,
    INTERACTIVE_INIT_DELAY,
    INTERACTIVE_INIT_DELAY_WITH_SESSION_ID,
    TIMEOUT_EXIT_CODE,
)
from slack_cli_bridge.models.command import CommandConfig, SessionMode
from slack_cli_bridge.models.session import Session, SessionStatus, SpawnOptions, ThreadBinding
from slack_cli_bridge.streaming.router import OutputRouter, RouterConfig
from slack_cli_bridge.utils.config import AppConfig
from slack_cli_bridge.utils.session import continuation_id_for, generate_session_id

logger = logging.getLogger(__name__)

Spawner = Callable[[str, List[str], SessionMode, Optional[str]], Awaitable[ProcessHandle]]


def completion_label(exit_code: int) -> str:
    if exit_code == TIMEOUT_EXIT_CODE:
        return "⏱️ Session timed out"
    if exit_code == 0:
        return "✅ Session complete (exit code 0)"
    return f"❌ Session ended (exit code {exit_code})"


def start_notice(session: Session) -> str:
    notice = f"🚀 Session started — {session.config.description or session.config.prefix}"
    if session.config.mode == SessionMode.INTERACTIVE:
        notice += f" (log: `{session.id}`)"
    return notice


class SessionManager:
    """Owns the active-session table and the thread-binding table."""

    def __init__(self, config: AppConfig, reporter: Reporter, spawner: Spawner = spawn_process):
        self._config = config
        self._reporter = reporter
        self._spawner = spawner
        # Active sessions keyed by thread ts
        self._sessions: Dict[str, Session] = {}
        # Continuation bindings keyed by (channel, thread ts); survive process exit
        self._thread_bindings: Dict[Tuple[str, str], ThreadBinding] = {}
        self._finalisers: Set[asyncio.Task] = set()

    # ── queries ────────────────────────────────────────────────────────────

    def has_session(self, thread_ts: Optional[str]) -> bool:
        return thread_ts is not None and thread_ts in self._sessions

    def get_session(self, thread_ts: str) -> Optional[Session]:
        return self._sessions.get(thread_ts)

    def get_thread_binding(self, channel_id: str, thread_ts: str) -> Optional[ThreadBinding]:
        return self._thread_bindings.get((channel_id, thread_ts))

    def remove_thread_binding(self, channel_id: str, thread_ts: str) -> bool:
        """Delete a binding (the explicit close action). Returns True if found."""
        return self._thread_bindings.pop((channel_id, thread_ts), None) is not None

    def binding_count(self) -> int:
        return len(self._thread_bindings)

    def list_sessions(self) -> List[Dict]:
        return [
            {
                "id": s.id,
                "thread_ts": s.thread_ts,
                "command": s.command,
                "status": s.status.value,
                "uptime_seconds": s.uptime_seconds,
            }
            for s in self._sessions.values()
        ]

    def latest_session_id(self) -> Optional[str]:
        if not self._sessions:
            return None
        return max(self._sessions.values(), key=lambda s: s.started_at).id

    # ── spawn ──────────────────────────────────────────────────────────────

    def build_args(self, options: SpawnOptions, continuation_id: str) -> List[str]:
        """Resolve the final argument list for a spawn."""
        cmd_config = options.config
        args = list(cmd_config.args)

        if cmd_config.mode == SessionMode.INTERACTIVE:
            # Input goes through stdin; only a session-id CLI gets its id up front
            if cmd_config.session_id_flag:
                args.extend([cmd_config.session_id_flag, continuation_id])
            return args

        if cmd_config.session_flag:
            # Same flag creates and resumes (Kimi style)
            args.extend([cmd_config.session_flag, continuation_id])
        elif cmd_config.session_id_flag:
            # Distinct create/resume flags (Claude style)
            if options.is_continuation and cmd_config.resume_flag:
                args.extend([cmd_config.resume_flag, continuation_id])
            else:
                args.extend([cmd_config.session_id_flag, continuation_id])

        command = options.command
        prompt_text = self._config.envelope.prompt_text
        if cmd_config.envelope and prompt_text:
            command = f"{prompt_text}\n\n{command}"
        if cmd_config.prompt_flag:
            args.extend([cmd_config.prompt_flag, command])
        else:
            args.append(command)
        return args

    def _router_config(self, cmd_config: CommandConfig) -> RouterConfig:
        return RouterConfig(
            envelope=cmd_config.envelope,
            # One-shot output has no PTY echo to skip
            activation_delay=(
                0.0
                if cmd_config.mode == SessionMode.ONE_SHOT
                else self._config.envelope.activation_delay
            ),
            unclosed_timeout=self._config.envelope.unclosed_timeout,
            flush_interval=self._config.behavior.output_flush_interval,
            max_chars_per_message=self._config.behavior.output_max_chars_per_message,
        )

    async def spawn(self, options: SpawnOptions) -> Optional[Session]:
        """Spawn a CLI session and wire its output into the thread.

        Returns the Session, or None if the process could not be started.
        """
        cmd_config = options.config
        session_id = generate_session_id()
        continuation_id = options.continuation_id or continuation_id_for(
            options.channel_id, options.thread_ts, cmd_config
        )
        args = self.build_args(options, continuation_id)
        logger.info(
            f"Spawn {session_id} | prefix={cmd_config.prefix} mode={cmd_config.mode.value} "
            f"envelope={cmd_config.envelope} continuation={options.is_continuation}"
        )
        logger.debug(f"Spawn command: {cmd_config.binary} {args}")

        try:
            handle = await self._spawner(cmd_config.binary, args, cmd_config.mode, options.cwd)
        except SpawnError as e:
            logger.error(f"Spawn failed for {cmd_config.binary}: {e}")
            await self._post_safely(
                options.channel_id,
                f"❌ Failed to start `{cmd_config.binary}`: {e}",
                options.thread_ts,
            )
            return None

        router = OutputRouter(
            session_id,
            options.channel_id,
            options.thread_ts,
            self._reporter,
            self._router_config(cmd_config),
            log_dir=self._config.log_dir,
        )
        session = Session(
            id=session_id,
            channel_id=options.channel_id,
            thread_ts=options.thread_ts,
            command=options.command,
            config=cmd_config,
            process=handle,
            router=router,
        )

        # Attach listeners before the first await: fast commands can finish
        # while the router is still posting its placeholder
        handle.on_data(router.push)
        handle.on_exit(lambda exit_code: self._begin_finalise(session, exit_code))
        self._register(session)

        try:
            try:
                await router.start()
            except Exception as e:
                logger.error(f"Output router failed to start for session {session_id}: {e}")

            if not options.is_continuation:
                session.message_ts = await self._post_notice(session)

            if cmd_config.timeout:
                timeout_seconds = self._config.behavior.session_timeout_minutes * 60
                session.timeout_handle = asyncio.get_running_loop().call_later(
                    timeout_seconds, self._on_timeout, session
                )

            if cmd_config.supports_continuation and not options.is_continuation:
                binding_key = (options.channel_id, options.thread_ts)
                self._thread_bindings[binding_key] = ThreadBinding(
                    prefix=cmd_config.prefix,
                    continuation_id=continuation_id,
                    channel_id=options.channel_id,
                )
                logger.debug(f"Thread binding created: {binding_key} -> {continuation_id}")

            if cmd_config.mode == SessionMode.INTERACTIVE:
                delay = (
                    INTERACTIVE_INIT_DELAY_WITH_SESSION_ID
                    if cmd_config.session_id_flag
                    else INTERACTIVE_INIT_DELAY
                )
                session.input_handle = asyncio.get_running_loop().call_later(
                    delay, self._send_initial_input, session
                )

            self._append_audit(session, options)
        finally:
            session.ready.set()
        return session

    def _register(self, session: Session) -> None:
        existing = self._sessions.get(session.thread_ts)
        if existing is not None and existing.status == SessionStatus.RUNNING:
            logger.warning(
                f"Thread {session.thread_ts} already has session {existing.id}; stopping it"
            )
            existing.process.kill()
        self._sessions[session.thread_ts] = session

    def _send_initial_input(self, session: Session) -> None:
        session.input_handle = None
        if session.finalising:
            return
        prompt_text = self._config.envelope.prompt_text
        if session.config.envelope and prompt_text:
            session.process.write(prompt_text + "\n")
        if session.command:
            logger.info(f"Sending command to interactive session {session.id}: {session.command[:60]}")
            session.process.write(session.command + "\n")

    # ── input / stop ───────────────────────────────────────────────────────

    def send_input(self, thread_ts: str, text: str) -> bool:
        """Write a line to a running session's stdin. No-op without one."""
        session = self._sessions.get(thread_ts)
        if session is None or session.status != SessionStatus.RUNNING:
            return False
        logger.debug(f"stdin -> {session.id}: {text[:60]}")
        session.process.write(text + "\n")
        return True

    def find_session(self, identifier: str) -> Optional[Session]:
        """Look up by thread ts first, then by session id."""
        session = self._sessions.get(identifier)
        if session is not None:
            return session
        for candidate in self._sessions.values():
            if candidate.id == identifier:
                return candidate
        return None

    def stop(self, identifier: str) -> bool:
        """Ask a session's process to terminate. Removal happens on exit."""
        session = self.find_session(identifier)
        if session is None:
            return False
        logger.info(f"Stopping session {session.id}")
        session.process.kill()
        return True

    async def shutdown(self) -> None:
        """Stop every session and wait for all finalisations."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.process.kill()
        for session in sessions:
            await session.done.wait()

    # ── exit / timeout ─────────────────────────────────────────────────────

    def _begin_finalise(self, session: Session, exit_code: int) -> None:
        # Some backends report exit more than once; the timeout shares this guard
        if session.finalising:
            logger.debug(f"Duplicate exit for session {session.id} ignored")
            return
        session.finalising = True
        task = asyncio.get_running_loop().create_task(self._finalise(session, exit_code))
        self._finalisers.add(task)
        task.add_done_callback(self._on_finaliser_done)

    def _on_finaliser_done(self, task: asyncio.Task) -> None:
        self._finalisers.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Session finalisation failed: {task.exception()}")

    def _on_timeout(self, session: Session) -> None:
        session.timeout_handle = None
        if session.finalising:
            return
        logger.warning(
            f"Session {session.id} timed out after "
            f"{self._config.behavior.session_timeout_minutes} min"
        )
        # Claim the guard first so the kill's own exit report is a duplicate
        self._begin_finalise(session, TIMEOUT_EXIT_CODE)
        session.process.kill()

    async def _finalise(self, session: Session, exit_code: int) -> None:
        await session.ready.wait()

        if session.timeout_handle is not None:
            session.timeout_handle.cancel()
            session.timeout_handle = None
        if session.input_handle is not None:
            session.input_handle.cancel()
            session.input_handle = None

        session.status = (
            SessionStatus.TIMED_OUT if exit_code == TIMEOUT_EXIT_CODE else SessionStatus.EXITED
        )
        session.exit_code = exit_code

        try:
            await session.router.finish(exit_code)
        except Exception as e:
            logger.error(f"Router finish failed for session {session.id}: {e}")

        # Continuations have no start notice and stay silent
        if session.message_ts:
            text = f"{start_notice(session)}\n{completion_label(exit_code)}"
            try:
                if session.config.mode == SessionMode.INTERACTIVE:
                    await self._reporter.update_message_with_button(
                        session.channel_id,
                        session.message_ts,
                        text,
                        CLOSE_SESSION_BUTTON_TEXT,
                        CLOSE_SESSION_ACTION,
                        session.thread_ts,
                    )
                else:
                    await self._reporter.update_message(session.channel_id, session.message_ts, text)
            except Exception as e:
                logger.error(f"Failed to update start notice for session {session.id}: {e}")

        if self._sessions.get(session.thread_ts) is session:
            del self._sessions[session.thread_ts]
        session.done.set()
        logger.info(f"Session {session.id} finished | exit={exit_code}")

    # ── helpers ────────────────────────────────────────────────────────────

    async def _post_safely(self, channel_id: str, text: str, thread_ts: str) -> Optional[str]:
        try:
            return await self._reporter.post_message(channel_id, text, thread_ts)
        except Exception as e:
            logger.error(f"Failed to post to {channel_id}: {e}")
            return None

    async def _post_notice(self, session: Session) -> Optional[str]:
        """Post the start notice; interactive sessions get a Close Session button."""
        if session.config.mode != SessionMode.INTERACTIVE:
            return await self._post_safely(session.channel_id, start_notice(session), session.thread_ts)
        try:
            return await self._reporter.post_message_with_button(
                session.channel_id,
                start_notice(session),
                CLOSE_SESSION_BUTTON_TEXT,
                CLOSE_SESSION_ACTION,
                session.thread_ts,
                session.thread_ts,
            )
        except Exception as e:
            logger.error(f"Failed to post start notice to {session.channel_id}: {e}")
            return None

    def _append_audit(self, session: Session, options: SpawnOptions) -> None:
        """Append one JSON line per spawn to the audit log."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": session.id,
            "channel_id": options.channel_id,
            "thread_ts": options.thread_ts,
            "command": options.command,
            "prefix": options.config.prefix,
            "continuation": options.is_continuation,
        }
        audit_path = self._config.log_dir / AUDIT_LOG_NAME
        try:
            audit_path.parent.mkdir(parents=True, exist_ok=True)
            with open(audit_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit log {audit_path}: {e}")
