"""Session log retrieval: listing, tailing, summarising and uploading."""

import logging
import re
import time
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel

from slack_cli_bridge.constants import (
    DEFAULT_TAIL_LINES,
    LOG_DIR,
    LOG_LIST_LIMIT,
    MAX_UPLOAD_BYTES,
    SESSION_LOG_SUBDIR,
)

logger = logging.getLogger(__name__)

START_LINE_PATTERN = re.compile(r"^=== Session started: (\S+) ===$", re.MULTILINE)
END_LINE_PATTERN = re.compile(r"^=== Session ended: (\S+) \| exit code: (-?\d+) ===$", re.MULTILINE)

TRUNCATION_NOTICE = "⚠️ Log was truncated (first portion omitted, exceeded 20 MB)."


class LogSummary(BaseModel):
    """Metadata recovered from a session log's marker lines."""

    session_id: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    size_bytes: int = 0

    @property
    def finished(self) -> bool:
        return self.ended_at is not None


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class LogService:
    """Access to ``<log_dir>/sessions/*.log``; only retention cleanup deletes."""

    def __init__(self, log_dir: Path = LOG_DIR):
        self.sessions_dir = Path(log_dir) / SESSION_LOG_SUBDIR

    def list_logs(self) -> List[Path]:
        """Log files sorted by modification time, oldest first."""
        if not self.sessions_dir.is_dir():
            return []
        return sorted(self.sessions_dir.glob("*.log"), key=lambda p: p.stat().st_mtime)

    def resolve(self, session_id: Optional[str] = None) -> Optional[Path]:
        """Return the log for session_id, or the newest log when none is given."""
        if session_id:
            # Session ids never contain path separators
            if "/" in session_id or "\\" in session_id:
                return None
            candidate = self.sessions_dir / f"{session_id}.log"
            return candidate if candidate.is_file() else None
        logs = self.list_logs()
        return logs[-1] if logs else None

    def tail(self, lines: int = DEFAULT_TAIL_LINES, session_id: Optional[str] = None) -> Optional[str]:
        path = self.resolve(session_id)
        if path is None:
            return None
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return "".join(deque(f, maxlen=max(lines, 0))).rstrip("\n")

    def summarize(self, path: Path) -> LogSummary:
        text = path.read_text(encoding="utf-8", errors="replace")
        summary = LogSummary(session_id=path.stem, size_bytes=path.stat().st_size)

        start = START_LINE_PATTERN.search(text)
        if start:
            summary.started_at = _parse_timestamp(start.group(1))

        # The session may still be running; only the last end marker counts
        ends = END_LINE_PATTERN.findall(text)
        if ends:
            ended_at, exit_code = ends[-1]
            summary.ended_at = _parse_timestamp(ended_at)
            summary.exit_code = int(exit_code)
        return summary

    def read_for_upload(self, path: Path, limit: int = MAX_UPLOAD_BYTES) -> Tuple[str, bool]:
        """Return (content, truncated). Oversized logs keep their tail."""
        content = path.read_text(encoding="utf-8", errors="replace")
        truncated = False
        while len(content.encode("utf-8")) > limit:
            content = content[len(content) // 2 :]
            truncated = True
        if truncated:
            logger.warning(f"Log {path.name} truncated to {len(content)} chars for upload")
        return content, truncated

    def remove_older_than(self, days: int, now: Optional[float] = None) -> int:
        """Delete logs last modified more than days ago. Returns how many were removed."""
        cutoff = (now if now is not None else time.time()) - days * 86400
        removed = 0
        for path in self.list_logs():
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
                logger.debug(f"Removed old session log {path.name}")
        return removed


def format_summary_line(summary: LogSummary) -> str:
    if summary.exit_code is None:
        state = "running"
    elif summary.exit_code == -1:
        state = "timed out"
    else:
        state = f"exit {summary.exit_code}"
    return f"• `{summary.session_id}` ({state}, {summary.size_bytes / 1024:.1f} KB)"


def format_log_list(service: LogService, limit: int = LOG_LIST_LIMIT) -> Optional[str]:
    logs = service.list_logs()[-limit:]
    if not logs:
        return None
    lines = [format_summary_line(service.summarize(path)) for path in logs]
    return "*Recent logs:*\n" + "\n".join(lines)
