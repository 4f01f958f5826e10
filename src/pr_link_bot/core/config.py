from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..integrations.discord.constants import (
    DISCORD_INTENT_GUILD_MESSAGES,
    DISCORD_INTENT_GUILDS,
    DISCORD_INTENT_MESSAGE_CONTENT,
)

CONFIG_FILENAME = "pr-link-bot.yml"
DEFAULT_STATE_FILE = "data.json"
DEFAULT_DISCORD_TOKEN_ENV = "DISCORD_TOKEN"
DEFAULT_GITHUB_TOKEN_ENV = "GH_TOKEN"
DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"
DEFAULT_GITHUB_TIMEOUT_SECONDS = 10.0
DEFAULT_LOG_PATH = "logs/pr-link-bot.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MAX_BYTES = 10_000_000
DEFAULT_LOG_BACKUP_COUNT = 3

DEFAULT_DISCORD_INTENTS = (
    DISCORD_INTENT_GUILDS
    | DISCORD_INTENT_GUILD_MESSAGES
    | DISCORD_INTENT_MESSAGE_CONTENT
)


class ConfigError(Exception):
    """Raised when the bot settings are invalid or incomplete."""


@dataclasses.dataclass
class LogConfig:
    path: Path
    level: str
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class DiscordSettings:
    bot_token_env: str
    bot_token: str
    intents: int


@dataclasses.dataclass(frozen=True)
class GitHubSettings:
    token_env: str
    token: Optional[str]
    api_base_url: str
    timeout_seconds: float


@dataclasses.dataclass(frozen=True)
class BotConfig:
    root: Path
    discord: DiscordSettings
    github: GitHubSettings
    state_file: Path
    log: LogConfig

    @classmethod
    def from_raw(cls, *, root: Path, raw: Dict[str, Any]) -> "BotConfig":
        cfg: Dict[str, Any] = raw if isinstance(raw, dict) else {}

        discord_cfg = _section(cfg, "discord")
        bot_token_env = _env_name(
            discord_cfg.get("bot_token_env", DEFAULT_DISCORD_TOKEN_ENV),
            key="discord.bot_token_env",
        )
        bot_token = os.environ.get(bot_token_env)
        if not bot_token:
            raise ConfigError(
                f"A Discord bot token is required; env var {bot_token_env} is unset"
            )
        intents = discord_cfg.get("intents", DEFAULT_DISCORD_INTENTS)
        if not isinstance(intents, int) or isinstance(intents, bool):
            raise ConfigError("discord.intents must be an integer")
        if intents < 0:
            raise ConfigError("discord.intents must be >= 0")

        github_cfg = _section(cfg, "github")
        token_env = _env_name(
            github_cfg.get("token_env", DEFAULT_GITHUB_TOKEN_ENV),
            key="github.token_env",
        )
        api_base_url = github_cfg.get("api_base_url", DEFAULT_GITHUB_API_BASE_URL)
        if not isinstance(api_base_url, str) or not api_base_url.strip():
            raise ConfigError("github.api_base_url must be a non-empty string")
        timeout_seconds = _parse_positive_float(
            github_cfg.get("timeout_seconds"),
            default=DEFAULT_GITHUB_TIMEOUT_SECONDS,
            key="github.timeout_seconds",
        )

        state_file_value = cfg.get("state_file", DEFAULT_STATE_FILE)
        if not isinstance(state_file_value, str) or not state_file_value.strip():
            raise ConfigError("state_file must be a string path")

        log_cfg = _section(cfg, "log")
        log_path = log_cfg.get("path", DEFAULT_LOG_PATH)
        if not isinstance(log_path, str) or not log_path.strip():
            raise ConfigError("log.path must be a string path")
        log_level = str(log_cfg.get("level", DEFAULT_LOG_LEVEL)).strip().upper()

        return cls(
            root=root,
            discord=DiscordSettings(
                bot_token_env=bot_token_env,
                bot_token=bot_token,
                intents=intents,
            ),
            github=GitHubSettings(
                token_env=token_env,
                token=os.environ.get(token_env) or None,
                api_base_url=api_base_url.strip().rstrip("/"),
                timeout_seconds=timeout_seconds,
            ),
            state_file=(root / state_file_value).resolve(),
            log=LogConfig(
                path=(root / log_path).resolve(),
                level=log_level or DEFAULT_LOG_LEVEL,
                max_bytes=_parse_positive_int(
                    log_cfg.get("max_bytes"),
                    default=DEFAULT_LOG_MAX_BYTES,
                    key="log.max_bytes",
                ),
                backup_count=_parse_positive_int(
                    log_cfg.get("backup_count"),
                    default=DEFAULT_LOG_BACKUP_COUNT,
                    key="log.backup_count",
                ),
            ),
        )


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_bot_config(root: Path, config_path: Optional[Path] = None) -> BotConfig:
    """Load settings from ``config_path`` (or ``<root>/pr-link-bot.yml``) and env."""

    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    path = config_path if config_path is not None else root / CONFIG_FILENAME
    return BotConfig.from_raw(root=root, raw=_load_yaml_dict(path))


def _section(cfg: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = cfg.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _env_name(value: Any, *, key: str) -> str:
    name = str(value).strip() if value is not None else ""
    if not name:
        raise ConfigError(f"{key} must be non-empty")
    return name


def _parse_positive_int(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_positive_float(value: Any, *, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        return default
    return parsed
