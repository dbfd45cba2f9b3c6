from __future__ import annotations

import pytest

from slashgate.discord.config import (
    DEFAULT_INTENTS,
    DiscordInteractionsConfig,
    DiscordInteractionsConfigError,
)


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SLASHGATE_DISCORD_BOT_TOKEN",
        "SLASHGATE_DISCORD_APP_ID",
        "SLASHGATE_DISCORD_PUBLIC_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_raw_config(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    cfg = DiscordInteractionsConfig.from_raw(root=tmp_path, raw={})

    assert cfg.transport == "webhook"
    assert cfg.response_timeout_ms == 250
    assert cfg.response_timeout_seconds == 0.25
    assert cfg.entity_cache is True
    assert cfg.intents == DEFAULT_INTENTS
    assert cfg.webhook.path == "/interactions"
    assert cfg.webhook.port == 8080
    assert cfg.command_registration.scope == "global"
    assert cfg.command_registration.guild_ids == ()
    assert cfg.bot_token is None
    assert cfg.public_key is None


def test_reads_secrets_from_configured_env(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TEST_DISCORD_TOKEN", "token")
    monkeypatch.setenv("TEST_DISCORD_APP_ID", "1234567890")
    monkeypatch.setenv("TEST_DISCORD_KEY", "ab" * 32)
    cfg = DiscordInteractionsConfig.from_raw(
        root=tmp_path,
        raw={
            "bot_token_env": "TEST_DISCORD_TOKEN",
            "app_id_env": "TEST_DISCORD_APP_ID",
            "public_key_env": "TEST_DISCORD_KEY",
            "transport": "Gateway",
            "response_timeout_ms": 400,
            "entity_cache": False,
            "intents": 1,
            "webhook": {"host": "0.0.0.0", "port": 9000, "path": "/discord"},
            "command_registration": {"scope": "guild", "guild_ids": [123, "456", " "]},
        },
    )

    assert cfg.bot_token == "token"
    assert cfg.application_id == "1234567890"
    assert cfg.public_key == "ab" * 32
    assert cfg.transport == "gateway"
    assert cfg.response_timeout_seconds == 0.4
    assert cfg.entity_cache is False
    assert cfg.intents == 1
    assert (cfg.webhook.host, cfg.webhook.port, cfg.webhook.path) == (
        "0.0.0.0",
        9000,
        "/discord",
    )
    assert cfg.command_registration.scope == "guild"
    assert cfg.command_registration.guild_ids == ("123", "456")
    cfg.require_credentials()


@pytest.mark.parametrize(
    "raw",
    [
        {"transport": "carrier-pigeon"},
        {"intents": -1},
        {"intents": "all"},
        {"entity_cache": "yes"},
        {"response_timeout_ms": "soon"},
        {"webhook": {"path": "interactions"}},
        {"command_registration": {"scope": "planet"}},
        {"bot_token_env": " "},
    ],
)
def test_invalid_values_raise(tmp_path, raw: dict) -> None:
    with pytest.raises(DiscordInteractionsConfigError):
        DiscordInteractionsConfig.from_raw(root=tmp_path, raw=raw)


def test_require_credentials_reports_missing_env(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _clear_env(monkeypatch)
    cfg = DiscordInteractionsConfig.from_raw(root=tmp_path, raw={})
    with pytest.raises(DiscordInteractionsConfigError, match="bot token"):
        cfg.require_credentials()

    monkeypatch.setenv("SLASHGATE_DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("SLASHGATE_DISCORD_APP_ID", "app")
    webhook_cfg = DiscordInteractionsConfig.from_raw(root=tmp_path, raw={})
    with pytest.raises(DiscordInteractionsConfigError, match="public key"):
        webhook_cfg.require_credentials()

    gateway_cfg = DiscordInteractionsConfig.from_raw(
        root=tmp_path, raw={"transport": "gateway"}
    )
    gateway_cfg.require_credentials()
