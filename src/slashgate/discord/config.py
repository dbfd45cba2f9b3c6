from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .constants import DEFAULT_RESPONSE_TIMEOUT_SECONDS

DEFAULT_BOT_TOKEN_ENV = "SLASHGATE_DISCORD_BOT_TOKEN"
DEFAULT_APP_ID_ENV = "SLASHGATE_DISCORD_APP_ID"
DEFAULT_PUBLIC_KEY_ENV = "SLASHGATE_DISCORD_PUBLIC_KEY"
DEFAULT_TRANSPORT = "webhook"
TRANSPORT_OPTIONS = frozenset({"webhook", "gateway"})
DEFAULT_COMMAND_SCOPE = "global"
DEFAULT_RESPONSE_TIMEOUT_MS = int(DEFAULT_RESPONSE_TIMEOUT_SECONDS * 1000)
DEFAULT_WEBHOOK_HOST = "127.0.0.1"
DEFAULT_WEBHOOK_PORT = 8080
DEFAULT_WEBHOOK_PATH = "/interactions"
# Interactions arrive over the gateway regardless of intents.
DEFAULT_INTENTS = 0


class DiscordInteractionsConfigError(Exception):
    """Raised when the discord interactions config is invalid."""


@dataclass(frozen=True)
class DiscordCommandRegistration:
    scope: str
    guild_ids: tuple[str, ...]


@dataclass(frozen=True)
class DiscordWebhookConfig:
    host: str = DEFAULT_WEBHOOK_HOST
    port: int = DEFAULT_WEBHOOK_PORT
    path: str = DEFAULT_WEBHOOK_PATH


@dataclass(frozen=True)
class DiscordInteractionsConfig:
    root: Path
    bot_token_env: str
    app_id_env: str
    public_key_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    public_key: Optional[str]
    transport: str
    response_timeout_ms: int
    entity_cache: bool
    intents: int
    webhook: DiscordWebhookConfig
    command_registration: DiscordCommandRegistration

    @property
    def response_timeout_seconds(self) -> float:
        return self.response_timeout_ms / 1000.0

    @classmethod
    def from_raw(
        cls, *, root: Path, raw: dict[str, Any]
    ) -> "DiscordInteractionsConfig":
        cfg: dict[str, Any] = raw if isinstance(raw, dict) else {}
        bot_token_env = _parse_env_name(cfg, "bot_token_env", DEFAULT_BOT_TOKEN_ENV)
        app_id_env = _parse_env_name(cfg, "app_id_env", DEFAULT_APP_ID_ENV)
        public_key_env = _parse_env_name(
            cfg, "public_key_env", DEFAULT_PUBLIC_KEY_ENV
        )

        transport = str(cfg.get("transport", DEFAULT_TRANSPORT)).strip().lower()
        if transport not in TRANSPORT_OPTIONS:
            raise DiscordInteractionsConfigError(
                "discord.transport must be 'webhook' or 'gateway'"
            )

        response_timeout_ms = _parse_positive_int_or_default(
            cfg.get("response_timeout_ms"),
            default=DEFAULT_RESPONSE_TIMEOUT_MS,
            key="discord.response_timeout_ms",
        )
        entity_cache = _parse_bool_or_default(
            cfg.get("entity_cache"), default=True, key="discord.entity_cache"
        )

        intents_value = cfg.get("intents", DEFAULT_INTENTS)
        if not isinstance(intents_value, int) or isinstance(intents_value, bool):
            raise DiscordInteractionsConfigError("discord.intents must be an integer")
        if intents_value < 0:
            raise DiscordInteractionsConfigError("discord.intents must be >= 0")

        webhook_raw = cfg.get("webhook")
        webhook_cfg = webhook_raw if isinstance(webhook_raw, dict) else {}
        webhook_path = str(webhook_cfg.get("path", DEFAULT_WEBHOOK_PATH)).strip()
        if not webhook_path.startswith("/"):
            raise DiscordInteractionsConfigError(
                "discord.webhook.path must start with '/'"
            )
        webhook = DiscordWebhookConfig(
            host=str(webhook_cfg.get("host", DEFAULT_WEBHOOK_HOST)).strip()
            or DEFAULT_WEBHOOK_HOST,
            port=_parse_positive_int_or_default(
                webhook_cfg.get("port"),
                default=DEFAULT_WEBHOOK_PORT,
                key="discord.webhook.port",
            ),
            path=webhook_path,
        )

        registration_raw = cfg.get("command_registration")
        registration_cfg = (
            registration_raw if isinstance(registration_raw, dict) else {}
        )
        scope = (
            str(registration_cfg.get("scope", DEFAULT_COMMAND_SCOPE)).strip().lower()
        )
        if scope not in {"global", "guild"}:
            raise DiscordInteractionsConfigError(
                "discord.command_registration.scope must be 'global' or 'guild'"
            )
        command_registration = DiscordCommandRegistration(
            scope=scope,
            guild_ids=tuple(_parse_string_ids(registration_cfg.get("guild_ids"))),
        )

        return cls(
            root=root,
            bot_token_env=bot_token_env,
            app_id_env=app_id_env,
            public_key_env=public_key_env,
            bot_token=os.environ.get(bot_token_env) or None,
            application_id=os.environ.get(app_id_env) or None,
            public_key=os.environ.get(public_key_env) or None,
            transport=transport,
            response_timeout_ms=response_timeout_ms,
            entity_cache=entity_cache,
            intents=intents_value,
            webhook=webhook,
            command_registration=command_registration,
        )

    def require_credentials(self) -> None:
        """Raise unless the secrets needed by the selected transport are present."""
        if not self.bot_token:
            raise DiscordInteractionsConfigError(
                f"missing bot token env '{self.bot_token_env}'"
            )
        if not self.application_id:
            raise DiscordInteractionsConfigError(
                f"missing application id env '{self.app_id_env}'"
            )
        if self.transport == "webhook" and not self.public_key:
            raise DiscordInteractionsConfigError(
                f"webhook transport requires public key env '{self.public_key_env}'"
            )


def _parse_env_name(cfg: dict[str, Any], key: str, default: str) -> str:
    value = str(cfg.get(key, default)).strip()
    if not value:
        raise DiscordInteractionsConfigError(f"discord.{key} must be non-empty")
    return value


def _parse_string_ids(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
    parsed: list[str] = []
    for item in items:
        token = str(item).strip()
        if token:
            parsed.append(token)
    return parsed


def _parse_positive_int_or_default(value: Any, *, default: int, key: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise DiscordInteractionsConfigError(f"{key} must be an integer") from exc
    if parsed <= 0:
        return default
    return parsed


def _parse_bool_or_default(value: Any, *, default: bool, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise DiscordInteractionsConfigError(f"{key} must be a boolean")
