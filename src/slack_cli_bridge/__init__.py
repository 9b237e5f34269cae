"""Bridge between Slack threads and local command-line tools."""

__version__ = "0.1.0"
