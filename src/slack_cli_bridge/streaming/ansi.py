"""Escape-sequence stripping for terminal output."""

import re

# Operating system commands, e.g. window title updates from TUIs
OSC_PATTERN = re.compile(r"\x1b\][^\x07]*(?:\x07|\x1b\\)")
# CSI sequences and two-character escapes
ANSI_CODE_PATTERN = re.compile(r"\x1b(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")
# C0 controls other than tab and newline, plus DEL
CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def strip_ansi(text: str) -> str:
    """Strip escape sequences and carriage returns."""
    text = OSC_PATTERN.sub("", text)
    text = ANSI_CODE_PATTERN.sub("", text)
    return text.replace("\r", "")


def strip_control(text: str) -> str:
    """Strip escape sequences and every remaining control character except tab and newline."""
    return CONTROL_CHAR_PATTERN.sub("", strip_ansi(text))
