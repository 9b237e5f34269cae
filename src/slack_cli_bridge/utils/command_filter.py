"""Blocklist check applied to CLI trigger text before anything is spawned."""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

BLOCKED_PATTERNS = [
    re.compile(r"\brm\s+-[a-z]*r[a-z]*f\b", re.IGNORECASE),  # rm -rf, rm -fr ...
    re.compile(r"\bformat\s+[A-Za-z]:", re.IGNORECASE),  # format C:
    re.compile(r"\bshutdown\b", re.IGNORECASE),
    re.compile(r"\bpowershell[^|]*-command\s+.*remove", re.IGNORECASE),
    re.compile(r"\bdel\s+/[sS]\b", re.IGNORECASE),  # recursive Windows delete
    re.compile(r"\brmdir\s+/[sS]\b", re.IGNORECASE),
]


def check_command(command: str) -> Optional[str]:
    """Return a human-readable reason if the command is blocked, else None."""
    for pattern in BLOCKED_PATTERNS:
        if pattern.search(command):
            logger.warning(f"Command blocked: {command!r} matched {pattern.pattern}")
            return f"Matches blocked pattern `{pattern.pattern}`"
    return None
