"""Logging setup for the bridge."""

import logging
from typing import Union

LOG_FORMAT = "[%(asctime)s] [%(levelname)-7s] [%(name)s] %(message)s"

# Loggers that are chatty at DEBUG and never useful for bridge debugging
NOISY_LOGGERS = ("slack_sdk", "aiohttp", "asyncio")


def setup_logging(level: Union[str, int] = "info") -> None:
    """Configure the root logger once for the whole process."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
