"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from apex_claw.errors import ConfigMissingError

DEFAULT_MODEL = "GLM-4.7"


class TelegramConfig(BaseModel):
    # api_id/api_hash are only needed by MTProto clients; the Bot API adapter ignores them.
    api_id: Optional[int] = None
    api_hash: str = ""
    bot_token: str = ""
    owner_id: str = ""
    trigger_word: str = "apex"


class UpstreamConfig(BaseModel):
    base_url: str = "https://chat.z.ai"
    token: str = ""  # static ZAI_TOKEN; anonymous token is fetched when empty
    timeout: float = 90.0
    token_ttl_seconds: int = 24 * 3600
    token_refresh_margin_seconds: int = 60
    fe_version_refresh_seconds: int = 3600


class AgentConfig(BaseModel):
    model: str = DEFAULT_MODEL
    max_iterations: int = Field(default=10, ge=1)
    history_limit: int = Field(default=60, ge=2)
    observation_cap_bytes: int = 8 * 1024
    stream_flush_bytes: int = 800
    turn_timeout_seconds: float = 12 * 60


class SchedulerServiceConfig(BaseModel):
    timezone: str = "UTC"
    tick_seconds: float = 30.0
    task_timeout_seconds: float = 3 * 60


class TranscriptionConfig(BaseModel):
    url: str = ""
    api_key: str = ""
    language: str = "en-US"


class ToolsConfig(BaseModel):
    workspace_dir: str = "."
    exec_timeout_seconds: int = 60
    max_read_bytes: int = 500_000


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    scheduler: SchedulerServiceConfig = Field(default_factory=SchedulerServiceConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    def require_mandatory(self) -> None:
        """Raise ConfigMissingError when a setting needed to run the bot is empty."""
        missing = []
        if not self.telegram.bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.telegram.owner_id:
            missing.append("OWNER_ID")
        if missing:
            raise ConfigMissingError(
                f"Missing mandatory configuration: {', '.join(missing)}", missing=missing
            )


# Used when no config.yaml exists: everything comes from the environment / .env.
DEFAULT_CONFIG_TEMPLATE = """\
log_level: "${APEX_LOG_LEVEL:-INFO}"
telegram:
  api_id: ${TELEGRAM_API_ID}
  api_hash: "${TELEGRAM_API_HASH}"
  bot_token: "${TELEGRAM_BOT_TOKEN}"
  owner_id: "${OWNER_ID}"
upstream:
  token: "${ZAI_TOKEN}"
agent:
  model: "${APEX_MODEL:-GLM-4.7}"
transcription:
  url: "${TRANSCRIBE_URL}"
  api_key: "${TRANSCRIBE_API_KEY}"
"""

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR} and ${VAR:-default} patterns with environment values.

    Unset variables without a default become empty strings.
    """

    def _replace(match: re.Match) -> str:
        var_name, default = match.group(1), match.group(2)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None or value == "":
            return default if default is not None else ""
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration.

    ``.env`` is loaded first, then ``config.yaml`` (or the built-in template when
    the file does not exist) is interpolated and validated. Mandatory values are
    checked by :meth:`AppConfig.require_mandatory`, not here, so that
    ``config-check`` can report on incomplete setups.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    raw_text = config_file.read_text(encoding="utf-8") if config_file.exists() else DEFAULT_CONFIG_TEMPLATE

    data = yaml.safe_load(_interpolate_env_vars(raw_text)) or {}
    return AppConfig(**data)
