from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from ..discord.config import DiscordInteractionsConfig, DiscordInteractionsConfigError

CONFIG_FILENAME = "slashgate.yml"
DEFAULT_LOG_PATH = ".slashgate/slashgate.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 3
DEFAULT_LOG_LEVEL = "INFO"


class ConfigError(Exception):
    """Raised when the configuration file cannot be loaded or is invalid."""


@dataclasses.dataclass(frozen=True)
class LogConfig:
    path: Path
    max_bytes: int
    backup_count: int
    level: int = logging.INFO


@dataclasses.dataclass(frozen=True)
class AppConfig:
    root: Path
    raw: dict[str, Any]
    log: LogConfig
    discord: DiscordInteractionsConfig


def _parse_log_config(root: Path, raw: Any) -> LogConfig:
    cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
    path_value = cfg.get("path", DEFAULT_LOG_PATH)
    if not isinstance(path_value, str) or not path_value.strip():
        raise ConfigError("log.path must be a string path")
    max_bytes = cfg.get("max_bytes", DEFAULT_LOG_MAX_BYTES)
    backup_count = cfg.get("backup_count", DEFAULT_LOG_BACKUP_COUNT)
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ConfigError("log.max_bytes must be a positive integer")
    if not isinstance(backup_count, int) or backup_count < 0:
        raise ConfigError("log.backup_count must be a non-negative integer")
    level_name = str(cfg.get("level", DEFAULT_LOG_LEVEL)).strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ConfigError(f"log.level is not a known level: {level_name!r}")
    return LogConfig(
        path=(root / path_value).resolve(),
        max_bytes=max_bytes,
        backup_count=backup_count,
        level=level,
    )


def find_config_path(start: Path) -> Optional[Path]:
    current = start.resolve()
    if current.is_file():
        return current
    for candidate_root in (current, *current.parents):
        candidate = candidate_root / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load `slashgate.yml` from `path` (a file or a directory to search up from).

    A missing file yields the defaults rooted at the starting directory.
    """
    start = path or Path.cwd()
    config_path = find_config_path(start)
    raw: Any = {}
    if config_path is not None:
        root = config_path.parent
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to read {config_path}: {exc}") from exc
    else:
        root = start.resolve() if start.is_dir() else start.resolve().parent
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    discord_raw = raw.get("discord")
    try:
        discord_cfg = DiscordInteractionsConfig.from_raw(
            root=root,
            raw=discord_raw if isinstance(discord_raw, dict) else {},
        )
    except DiscordInteractionsConfigError as exc:
        raise ConfigError(str(exc)) from exc

    return AppConfig(
        root=root,
        raw=raw,
        log=_parse_log_config(root, raw.get("log")),
        discord=discord_cfg,
    )
