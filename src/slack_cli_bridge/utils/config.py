"""Configuration loading from commands.yaml, the prompt template and the environment."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from slack_cli_bridge.constants import (
    COMMANDS_FILE_NAME,
    CONFIG_DIR,
    ENVELOPE_ACTIVATION_DELAY,
    ENVELOPE_PROMPT_FILE,
    ENVELOPE_UNCLOSED_TIMEOUT,
    LOG_DIR,
    LOG_RETENTION_DAYS,
    OUTPUT_FLUSH_INTERVAL,
    OUTPUT_MAX_CHARS_PER_MESSAGE,
    SESSION_TIMEOUT_MINUTES,
)
from slack_cli_bridge.models.command import CommandConfig

logger = logging.getLogger(__name__)

ENV_PLACEHOLDER_PATTERN = re.compile(r"\$\{(\w+)\}")


class ConfigError(Exception):
    """Raised when configuration files are missing or invalid."""

    pass


class SlackSettings(BaseModel):
    bot_token: Optional[str] = None
    app_token: Optional[str] = None
    default_channel: Optional[str] = None
    listen_channels: List[str] = Field(default_factory=list)


class BehaviorSettings(BaseModel):
    session_timeout_minutes: float = SESSION_TIMEOUT_MINUTES
    output_flush_interval: float = OUTPUT_FLUSH_INTERVAL
    output_max_chars_per_message: int = OUTPUT_MAX_CHARS_PER_MESSAGE


class EnvelopeSettings(BaseModel):
    prompt_file: Optional[Path] = None
    prompt_text: str = ""
    activation_delay: float = ENVELOPE_ACTIVATION_DELAY
    unclosed_timeout: float = ENVELOPE_UNCLOSED_TIMEOUT


class AppConfig(BaseModel):
    """Full application configuration assembled at startup."""

    slack: SlackSettings = Field(default_factory=SlackSettings)
    behavior: BehaviorSettings = Field(default_factory=BehaviorSettings)
    envelope: EnvelopeSettings = Field(default_factory=EnvelopeSettings)
    log_level: str = "info"
    log_dir: Path = LOG_DIR
    log_retention_days: int = LOG_RETENTION_DAYS
    commands: List[CommandConfig] = Field(default_factory=list)

    def find_command(self, prefix: str) -> Optional[CommandConfig]:
        for command in self.commands:
            if command.prefix.lower() == prefix.lower():
                return command
        return None


def _get_int_env(name: str, default: int) -> int:
    """Parse int env var with safe fallback."""
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _get_float_env(name: str, default: float) -> float:
    """Parse float env var with safe fallback."""
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _get_seconds_from_ms_env(name: str, default_seconds: float) -> float:
    return _get_float_env(name, default_seconds * 1000) / 1000


def split_channels(value: Optional[str]) -> List[str]:
    """Parse a comma-separated channel list, dropping blanks."""
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def resolve_env_placeholders(value: str) -> str:
    """Replace ${VAR} with the environment value; unknown names are kept bare."""
    return ENV_PLACEHOLDER_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(1)), value)


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {path}")
    return data


def load_commands(path: Path) -> List[CommandConfig]:
    raw_commands = load_yaml(path).get("commands") or []
    commands = []
    for raw in raw_commands:
        try:
            command = CommandConfig(**raw)
        except (TypeError, ValidationError) as e:
            raise ConfigError(f"Invalid command entry in {path}: {e}") from e
        command.binary = resolve_env_placeholders(command.binary)
        logger.debug(
            f"Command {command.prefix}: binary={command.binary!r} mode={command.mode.value} "
            f"envelope={command.envelope} prompt_flag={command.prompt_flag} "
            f"session_flag={command.session_flag} session_id_flag={command.session_id_flag} "
            f"resume_flag={command.resume_flag}"
        )
        commands.append(command)
    return commands


def load_config(config_dir: Optional[Path] = None) -> AppConfig:
    """Load configuration from config_dir and the environment (.env included).

    Raises:
        ConfigError: If commands.yaml is missing or invalid
    """
    load_dotenv()
    config_dir = Path(config_dir) if config_dir else CONFIG_DIR

    commands = load_commands(config_dir / COMMANDS_FILE_NAME)

    prompt_file = Path(os.getenv("ENVELOPE_PROMPT_FILE", str(config_dir / ENVELOPE_PROMPT_FILE)))
    prompt_text = ""
    if prompt_file.is_file():
        prompt_text = prompt_file.read_text(encoding="utf-8")
    else:
        logger.warning(f"Envelope prompt file not found: {prompt_file}")

    return AppConfig(
        slack=SlackSettings(
            bot_token=os.getenv("SLACK_BOT_TOKEN") or None,
            app_token=os.getenv("SLACK_APP_TOKEN") or None,
            default_channel=os.getenv("SLACK_DEFAULT_CHANNEL") or None,
            listen_channels=split_channels(os.getenv("SLACK_LISTEN_CHANNELS")),
        ),
        behavior=BehaviorSettings(
            session_timeout_minutes=_get_float_env(
                "SESSION_TIMEOUT_MINUTES", SESSION_TIMEOUT_MINUTES
            ),
            output_flush_interval=_get_seconds_from_ms_env(
                "OUTPUT_FLUSH_INTERVAL_MS", OUTPUT_FLUSH_INTERVAL
            ),
            output_max_chars_per_message=_get_int_env(
                "OUTPUT_MAX_CHARS_PER_MESSAGE", OUTPUT_MAX_CHARS_PER_MESSAGE
            ),
        ),
        envelope=EnvelopeSettings(
            prompt_file=prompt_file,
            prompt_text=prompt_text,
            activation_delay=_get_seconds_from_ms_env(
                "ENVELOPE_ACTIVATION_DELAY_MS", ENVELOPE_ACTIVATION_DELAY
            ),
            unclosed_timeout=_get_seconds_from_ms_env(
                "ENVELOPE_UNCLOSED_TIMEOUT_MS", ENVELOPE_UNCLOSED_TIMEOUT
            ),
        ),
        log_level=os.getenv("LOG_LEVEL", "info"),
        log_dir=Path(os.getenv("BRIDGE_LOG_DIR", str(LOG_DIR))),
        log_retention_days=_get_int_env("LOG_SESSION_RETENTION_DAYS", LOG_RETENTION_DAYS),
        commands=commands,
    )
