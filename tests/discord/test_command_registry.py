from __future__ import annotations

import logging
from typing import Any

import pytest

from slashgate.discord.command_registry import (
    ApplicationCommand,
    create_command,
    fetch_commands,
    option_type_code,
    sync_commands,
    transform_command,
)


class _FakeRest:
    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def list_application_commands(
        self, *, application_id: str, guild_id: str | None = None
    ) -> list[dict[str, Any]]:
        self.calls.append({"op": "list", "guild_id": guild_id})
        return [
            {
                "id": "cmd-1",
                "application_id": application_id,
                "name": "ping",
                "description": "Ping",
            }
        ]

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(
            {
                "op": "overwrite",
                "application_id": application_id,
                "guild_id": guild_id,
                "commands": commands,
            }
        )
        return commands

    async def create_application_command(
        self,
        *,
        application_id: str,
        command: dict[str, Any],
        guild_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append({"op": "create", "guild_id": guild_id, "command": command})
        return {"id": "cmd-9", "application_id": application_id, **command}


def test_option_type_code_accepts_names_and_codes() -> None:
    assert option_type_code("STRING") == 3
    assert option_type_code("sub_command") == 1
    assert option_type_code("subcommand-group") == 2
    assert option_type_code(" role ") == 8
    assert option_type_code(6) == 6
    with pytest.raises(ValueError):
        option_type_code("attachment")
    with pytest.raises(ValueError):
        option_type_code(True)


def test_transform_command_maps_nested_option_types() -> None:
    command = {
        "name": "admin",
        "description": "Admin tools",
        "options": [
            {
                "type": "SUB_COMMAND",
                "name": "ban",
                "description": "Ban a user",
                "options": [
                    {"type": "USER", "name": "target", "description": "Who"},
                    {"type": "string", "name": "reason", "description": "Why"},
                ],
            }
        ],
    }

    transformed = transform_command(command)

    assert transformed["options"][0]["type"] == 1
    assert [o["type"] for o in transformed["options"][0]["options"]] == [6, 3]
    assert command["options"][0]["type"] == "SUB_COMMAND"


def test_transform_command_defaults_options() -> None:
    assert transform_command({"name": "ping", "description": "Ping"})["options"] == []


@pytest.mark.anyio
async def test_fetch_and_create_return_application_commands() -> None:
    rest = _FakeRest()

    commands = await fetch_commands(rest, application_id="app-1", guild_id="g1")
    created = await create_command(
        rest,
        application_id="app-1",
        command={"name": "echo", "description": "Echo", "options": [
            {"type": "STRING", "name": "text", "description": "Text"}
        ]},
    )

    assert commands == [
        ApplicationCommand(
            id="cmd-1",
            application_id="app-1",
            name="ping",
            description="Ping",
            guild_id="g1",
        )
    ]
    assert created.id == "cmd-9"
    assert created.options[0]["type"] == 3
    assert rest.calls[1]["command"]["options"][0]["type"] == 3


@pytest.mark.anyio
async def test_sync_commands_global_scope_overwrites_once() -> None:
    rest = _FakeRest()

    await sync_commands(
        rest,
        application_id="app-1",
        commands=[{"name": "ping", "description": "Ping"}],
        scope="global",
        guild_ids=(),
        logger=logging.getLogger("test"),
    )

    assert len(rest.calls) == 1
    assert rest.calls[0]["application_id"] == "app-1"
    assert rest.calls[0]["guild_id"] is None
    assert rest.calls[0]["commands"][0]["options"] == []


@pytest.mark.anyio
async def test_sync_commands_guild_scope_overwrites_each_guild() -> None:
    rest = _FakeRest()

    await sync_commands(
        rest,
        application_id="app-1",
        commands=[{"name": "ping"}],
        scope="guild",
        guild_ids=("guild-b", "guild-a", "guild-b"),
        logger=logging.getLogger("test"),
    )

    assert [call["guild_id"] for call in rest.calls] == ["guild-a", "guild-b"]


@pytest.mark.anyio
async def test_sync_commands_rejects_bad_scope_and_missing_guilds() -> None:
    rest = _FakeRest()

    with pytest.raises(ValueError):
        await sync_commands(
            rest,
            application_id="app-1",
            commands=[{"name": "ping"}],
            scope="guild",
            guild_ids=(),
            logger=logging.getLogger("test"),
        )
    with pytest.raises(ValueError):
        await sync_commands(
            rest,
            application_id="app-1",
            commands=[{"name": "ping"}],
            scope="everywhere",
            guild_ids=(),
            logger=logging.getLogger("test"),
        )
    assert rest.calls == []
