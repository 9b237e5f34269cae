"""Raw per-session output log."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, TextIO

from slack_cli_bridge.constants import LOG_DIR, SESSION_LOG_SUBDIR

logger = logging.getLogger(__name__)

START_MARKER_FORMAT = "=== Session started: {timestamp} ===\n"
END_MARKER_FORMAT = "\n=== Session ended: {timestamp} | exit code: {exit_code} ===\n"


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def session_log_path(session_id: str, log_dir: Path = LOG_DIR) -> Path:
    return Path(log_dir) / SESSION_LOG_SUBDIR / f"{session_id}.log"


class LogWriter:
    """Append-only record of every chunk a session produced.

    Escape sequences are kept so the file is a faithful copy of the terminal
    stream. The start and end marker lines are read back by the log service.
    """

    def __init__(self, session_id: str, log_dir: Path = LOG_DIR):
        self.log_path = session_log_path(session_id, log_dir)
        self._file: Optional[TextIO] = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._file.write(START_MARKER_FORMAT.format(timestamp=iso_timestamp()))
        self._file.flush()

    def write(self, chunk: str) -> None:
        if self._file is None:
            return
        self._file.write(chunk)
        self._file.flush()

    def close(self, exit_code: int) -> None:
        """Write the end marker and close. exit_code -1 means timed out."""
        if self._file is None:
            return
        try:
            self._file.write(
                END_MARKER_FORMAT.format(timestamp=iso_timestamp(), exit_code=exit_code)
            )
        finally:
            self._file.close()
            self._file = None
        logger.debug(f"Log closed: {self.log_path}")
