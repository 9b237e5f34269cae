"""Slack mrkdwn helpers."""

import re

HEADER_PATTERN = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)
DOUBLE_STAR_BOLD_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
DOUBLE_UNDERSCORE_BOLD_PATTERN = re.compile(r"__([^_]+)__")
STRIKE_PATTERN = re.compile(r"~~([^~]+)~~")


def markdown_to_slack(text: str) -> str:
    """Convert the Markdown an assistant typically writes to Slack mrkdwn.

    Headers become bold lines, ``**bold**``/``__bold__`` become ``*bold*`` and
    ``~~strike~~`` becomes ``~strike~``. Single asterisks are left alone since
    Slack already renders them as bold.
    """
    # Headers first, before bold markers are rewritten
    text = HEADER_PATTERN.sub(r"*\1*", text)
    text = DOUBLE_STAR_BOLD_PATTERN.sub(r"*\1*", text)
    text = DOUBLE_UNDERSCORE_BOLD_PATTERN.sub(r"*\1*", text)
    return STRIKE_PATTERN.sub(r"~\1~", text)


def code_block(text: str) -> str:
    return f"```\n{text}\n```"
