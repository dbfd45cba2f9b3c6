from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

import slashgate.cli as cli_module
from slashgate.cli import app, load_setup_hook


class _FakeRestClient:
    instances: list["_FakeRestClient"] = []

    def __init__(self, *, bot_token: str) -> None:
        self.bot_token = bot_token
        self.overwrites: list[dict[str, Any]] = []
        _FakeRestClient.instances.append(self)

    async def __aenter__(self) -> "_FakeRestClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None

    async def list_application_commands(
        self, *, application_id: str, guild_id: str | None = None
    ) -> list[dict[str, Any]]:
        return [
            {
                "id": "cmd-1",
                "application_id": application_id,
                "name": "ping",
                "description": "Ping the bot",
            }
        ]

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.overwrites.append(
            {"application_id": application_id, "guild_id": guild_id, "commands": commands}
        )
        return commands


@pytest.fixture()
def configured_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("SLASHGATE_DISCORD_BOT_TOKEN", "token")
    monkeypatch.setenv("SLASHGATE_DISCORD_APP_ID", "app-1")
    monkeypatch.setenv("SLASHGATE_DISCORD_PUBLIC_KEY", "ab" * 32)
    monkeypatch.setattr(cli_module, "DiscordRestClient", _FakeRestClient)
    _FakeRestClient.instances = []
    (tmp_path / "slashgate.yml").write_text(
        "discord:\n"
        "  command_registration:\n"
        "    scope: guild\n"
        "    guild_ids: [guild-1]\n",
        encoding="utf-8",
    )
    return tmp_path


def test_help_lists_commands() -> None:
    result = CliRunner().invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("serve", "gateway", "register-commands", "list-commands"):
        assert name in result.output


def test_register_commands_syncs_file(configured_env: Path) -> None:
    commands_file = configured_env / "commands.yml"
    commands_file.write_text(
        "commands:\n"
        "  - name: echo\n"
        "    description: Echo text\n"
        "    options:\n"
        "      - type: STRING\n"
        "        name: text\n"
        "        description: Text\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(
        app, ["register-commands", str(commands_file), "--path", str(configured_env)]
    )

    assert result.exit_code == 0, result.output
    (rest,) = _FakeRestClient.instances
    assert rest.bot_token == "token"
    assert rest.overwrites == [
        {
            "application_id": "app-1",
            "guild_id": "guild-1",
            "commands": [
                {
                    "name": "echo",
                    "description": "Echo text",
                    "options": [{"type": 3, "name": "text", "description": "Text"}],
                }
            ],
        }
    ]


def test_register_commands_rejects_non_list_file(configured_env: Path) -> None:
    commands_file = configured_env / "commands.json"
    commands_file.write_text('"ping"', encoding="utf-8")

    result = CliRunner().invoke(
        app, ["register-commands", str(commands_file), "--path", str(configured_env)]
    )

    assert result.exit_code == 1
    assert _FakeRestClient.instances == []


def test_list_commands_prints_registered_commands(configured_env: Path) -> None:
    result = CliRunner().invoke(app, ["list-commands", "--path", str(configured_env)])

    assert result.exit_code == 0, result.output
    assert "cmd-1\tping\tPing the bot" in result.output


def test_missing_credentials_exit_with_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("SLASHGATE_DISCORD_BOT_TOKEN", raising=False)

    result = CliRunner().invoke(app, ["list-commands", "--path", str(tmp_path)])

    assert result.exit_code == 1


def test_load_setup_hook_validates_spec() -> None:
    assert load_setup_hook("slashgate.cli:main") is cli_module.main
    with pytest.raises(ValueError):
        load_setup_hook("slashgate.cli")
    with pytest.raises(ValueError):
        load_setup_hook("slashgate.cli:CONFIG_MISSING")
    with pytest.raises(ImportError):
        load_setup_hook("slashgate.no_such_module:setup")
