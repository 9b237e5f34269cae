"""Constants for the Slack CLI bridge.

This module defines the defaults used throughout the bridge, including
directory paths, session behaviour, envelope protocol markers and output
streaming limits.

The bridge runs local CLI tools (shell commands, Claude Code, Kimi, ...) on
behalf of chat messages and reports their output back into the originating
Slack thread.
"""

from pathlib import Path

# =============================================================================
# Application Directory Structure
# =============================================================================
# Directory holding commands.yaml and the envelope prompt template
CONFIG_DIR = Path.cwd() / "config"
COMMANDS_FILE_NAME = "commands.yaml"
ENVELOPE_PROMPT_FILE = Path("prompts") / "envelope-instructions.txt"

# Base directory for all runtime logs (./logs)
LOG_DIR = Path.cwd() / "logs"
SESSION_LOG_SUBDIR = "sessions"  # One raw output file per session
AUDIT_LOG_NAME = "audit.log"  # Append-only JSON lines, one per spawn

# Session logs older than this are deleted when the listener starts
LOG_RETENTION_DAYS = 30

# =============================================================================
# Session Configuration
# =============================================================================
# Sessions are killed after this many minutes unless the command disables it
SESSION_TIMEOUT_MINUTES = 30

# Exit code reported when a session is killed by the timeout. Real exit codes
# are normalised to be non-negative, so this never collides with one.
TIMEOUT_EXIT_CODE = -1

# Delay before the first stdin write to an interactive session (seconds).
# TUIs that take a session id flag (Claude Code) need longer to boot.
INTERACTIVE_INIT_DELAY = 0.5
INTERACTIVE_INIT_DELAY_WITH_SESSION_ID = 2.0

# Namespace for continuation ids of "slack-<channel>-<thread>"
CONTINUATION_ID_PREFIX = "slack"

# =============================================================================
# Envelope Protocol
# =============================================================================
# Seconds after router creation before the parser starts scanning. Interactive
# PTYs echo the injected instruction prompt, whose examples contain markers.
ENVELOPE_ACTIVATION_DELAY = 1.5

# Seconds in CAPTURING state before a partial envelope is force-flushed
ENVELOPE_UNCLOSED_TIMEOUT = 30.0

# =============================================================================
# Output Streaming
# =============================================================================
# Seconds between chat.update calls in full-output mode
OUTPUT_FLUSH_INTERVAL = 2.0

# Character ceiling per Slack message before output is split
OUTPUT_MAX_CHARS_PER_MESSAGE = 3500

# =============================================================================
# Process Configuration
# =============================================================================
# PTY geometry for interactive sessions
PTY_ROWS = 50
PTY_COLS = 220
PTY_TERM = "xterm-256color"

# Bytes read from a pipe or PTY per callback
READ_CHUNK_SIZE = 4096

# =============================================================================
# Slack API
# =============================================================================
# Seconds per Web API request
SLACK_API_TIMEOUT = 30

# Block Kit action that stops a session and forgets its thread binding
CLOSE_SESSION_ACTION = "close_session"
CLOSE_SESSION_BUTTON_TEXT = "Close Session"

# Slack rejects uploads larger than this; logs are truncated from the front
MAX_UPLOAD_BYTES = 20 * 1024 * 1024

# Lines returned by "/logs tail" when no count is given
DEFAULT_TAIL_LINES = 50

# Number of logs shown by "/logs list"
LOG_LIST_LIMIT = 20
