from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..constants import DISCORD_API_BASE_URL
from ..errors import DiscordConfigError

DEFAULT_CONFIG_FILE = "discord-bot.yml"
DEFAULT_BOT_TOKEN_ENV = "DISCORD_BOT_TOKEN"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_OPEN_TIMEOUT_SECONDS = 10.0
DEFAULT_LOG_PATH = ".discord-bot/discord-bot.log"
DEFAULT_LOG_MAX_BYTES = 10_000_000
DEFAULT_LOG_BACKUP_COUNT = 3


@dataclasses.dataclass
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int


@dataclasses.dataclass(frozen=True)
class DiscordClientConfig:
    root: Path
    bot_token_env: str
    bot_token: Optional[str] = dataclasses.field(repr=False)
    api_base_url: str
    timeout_seconds: float
    open_timeout_seconds: Optional[float]
    log: LogConfig

    @classmethod
    def from_raw(
        cls, raw: Optional[Dict[str, Any]] = None, *, root: Optional[Path] = None
    ) -> "DiscordClientConfig":
        cfg: Dict[str, Any] = raw if isinstance(raw, dict) else {}
        base_root = root or Path.cwd()

        bot_token_env = str(cfg.get("bot_token_env", DEFAULT_BOT_TOKEN_ENV)).strip()
        if not bot_token_env:
            raise DiscordConfigError("bot_token_env must be non-empty")
        bot_token = os.environ.get(bot_token_env) or None

        api_base_url = str(cfg.get("api_base_url", DISCORD_API_BASE_URL)).strip()
        if not api_base_url.startswith(("http://", "https://")):
            raise DiscordConfigError("api_base_url must be an http(s) URL")

        timeout_seconds = _parse_positive_float(
            cfg.get("timeout_seconds"),
            default=DEFAULT_TIMEOUT_SECONDS,
            key="timeout_seconds",
        )
        if "open_timeout_seconds" in cfg and cfg["open_timeout_seconds"] is None:
            open_timeout_seconds: Optional[float] = None
        else:
            open_timeout_seconds = _parse_positive_float(
                cfg.get("open_timeout_seconds"),
                default=DEFAULT_OPEN_TIMEOUT_SECONDS,
                key="open_timeout_seconds",
            )

        log_raw = cfg.get("log")
        log_cfg: Dict[str, Any] = log_raw if isinstance(log_raw, dict) else {}
        log = LogConfig(
            path=base_root / str(log_cfg.get("path", DEFAULT_LOG_PATH)),
            max_bytes=int(log_cfg.get("max_bytes", DEFAULT_LOG_MAX_BYTES)),
            backup_count=int(log_cfg.get("backup_count", DEFAULT_LOG_BACKUP_COUNT)),
        )

        return cls(
            root=base_root,
            bot_token_env=bot_token_env,
            bot_token=bot_token,
            api_base_url=api_base_url.rstrip("/"),
            timeout_seconds=timeout_seconds,
            open_timeout_seconds=open_timeout_seconds,
            log=log,
        )

    def require_token(self) -> str:
        if not self.bot_token:
            raise DiscordConfigError(
                f"Discord bot token not found in environment: {self.bot_token_env}"
            )
        return self.bot_token


def load_config(path: Optional[Path] = None) -> DiscordClientConfig:
    """Load client config from a YAML file; a missing file yields defaults."""
    config_path = path or Path.cwd() / DEFAULT_CONFIG_FILE
    raw = _load_yaml_dict(config_path)
    return DiscordClientConfig.from_raw(raw, root=config_path.parent)


def _load_yaml_dict(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise DiscordConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise DiscordConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DiscordConfigError(f"Config file must be a mapping: {path}")
    return data


def _parse_positive_float(value: Any, *, default: float, key: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise DiscordConfigError(f"{key} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise DiscordConfigError(f"{key} must be a number") from exc
    if parsed <= 0:
        raise DiscordConfigError(f"{key} must be > 0")
    return parsed
