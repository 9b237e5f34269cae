"""Envelope marker scanning.

Open marker: ``<<<SLACK>>>`` or ``<<<SLACK:TYPE>>>`` where TYPE is 1-16 word
characters; a longer tag is not a marker. Close marker: ``<<<END_SLACK>>>``.
Both are matched case-insensitively and have no escaping.
"""

import re
from dataclasses import dataclass
from typing import Optional

from slack_cli_bridge.models.envelope import EnvelopeType

# Type tags are capped so the longest possible open marker fits in the scan tail
MAX_TYPE_TAG_CHARS = 16
OPEN_MARKER_PATTERN = re.compile(
    r"<<<slack(?::(\w{1,%d}))?>>>" % MAX_TYPE_TAG_CHARS, re.IGNORECASE
)
CLOSE_MARKER_PATTERN = re.compile(re.escape("<<<end_slack>>>"), re.IGNORECASE)

# Longest open marker is 9 + MAX_TYPE_TAG_CHARS + 3 = 28 chars; keep a margin on top
SCAN_TAIL_CHARS = 40

VALID_TYPES = {t.value: t for t in EnvelopeType}


@dataclass(frozen=True)
class MarkerMatch:
    start: int
    end: int
    type_tag: Optional[str] = None

    @property
    def length(self) -> int:
        return self.end - self.start


def find_open_marker(buffer: str) -> Optional[MarkerMatch]:
    """Return the earliest complete open marker in buffer, if any."""
    match = OPEN_MARKER_PATTERN.search(buffer)
    if not match:
        return None
    return MarkerMatch(match.start(), match.end(), match.group(1))


def find_close_marker(buffer: str) -> Optional[MarkerMatch]:
    """Return the earliest complete close marker in buffer, if any."""
    match = CLOSE_MARKER_PATTERN.search(buffer)
    if not match:
        return None
    return MarkerMatch(match.start(), match.end())


def trim_scan_tail(buffer: str, tail: int = SCAN_TAIL_CHARS) -> str:
    """Keep only enough of an unmatched buffer to complete a split marker."""
    if len(buffer) > tail:
        return buffer[-tail:]
    return buffer


def resolve_type(type_tag: Optional[str]) -> Optional[EnvelopeType]:
    """Map a marker's type suffix onto the closed type set; anything else is untyped."""
    if not type_tag:
        return None
    return VALID_TYPES.get(type_tag.lower())
