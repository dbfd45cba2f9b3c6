from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..core.logging_utils import log_event
from .constants import OptionType


class CommandRestClient(Protocol):
    async def list_application_commands(
        self, *, application_id: str, guild_id: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]: ...

    async def create_application_command(
        self,
        *,
        application_id: str,
        command: dict[str, Any],
        guild_id: str | None = None,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class ApplicationCommand:
    id: str
    application_id: str
    name: str
    description: str
    guild_id: Optional[str] = None
    options: tuple[dict[str, Any], ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(
        cls, raw: dict[str, Any], guild_id: Optional[str] = None
    ) -> "ApplicationCommand":
        options = raw.get("options")
        return cls(
            id=str(raw.get("id", "")),
            application_id=str(raw.get("application_id", "")),
            name=str(raw.get("name", "")),
            description=str(raw.get("description", "")),
            guild_id=guild_id,
            options=tuple(o for o in options if isinstance(o, dict))
            if isinstance(options, list)
            else (),
            raw=raw,
        )


def option_type_code(value: Any) -> int:
    """Translate an option type name ("STRING", "sub_command", ...) to its wire code."""
    if isinstance(value, OptionType):
        return int(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        key = value.strip().upper().replace("-", "_").replace(" ", "_")
        if key == "SUBCOMMAND":
            key = "SUB_COMMAND"
        elif key == "SUBCOMMAND_GROUP":
            key = "SUB_COMMAND_GROUP"
        try:
            return int(OptionType[key])
        except KeyError:
            pass
    raise ValueError(f"unknown application command option type: {value!r}")


def _transform_option(option: dict[str, Any]) -> dict[str, Any]:
    transformed = dict(option)
    if "type" in transformed:
        transformed["type"] = option_type_code(transformed["type"])
    nested = option.get("options")
    if isinstance(nested, list):
        transformed["options"] = [_transform_option(item) for item in nested]
    return transformed


def transform_command(command: dict[str, Any]) -> dict[str, Any]:
    """Copy a command definition with every option type mapped to its wire code."""
    transformed = dict(command)
    options = command.get("options")
    transformed["options"] = (
        [_transform_option(item) for item in options]
        if isinstance(options, list)
        else []
    )
    return transformed


async def fetch_commands(
    rest: CommandRestClient, *, application_id: str, guild_id: Optional[str] = None
) -> list[ApplicationCommand]:
    payload = await rest.list_application_commands(
        application_id=application_id, guild_id=guild_id
    )
    return [ApplicationCommand.from_payload(item, guild_id) for item in payload]


async def set_commands(
    rest: CommandRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    guild_id: Optional[str] = None,
) -> list[ApplicationCommand]:
    payload = await rest.bulk_overwrite_application_commands(
        application_id=application_id,
        commands=[transform_command(command) for command in commands],
        guild_id=guild_id,
    )
    return [ApplicationCommand.from_payload(item, guild_id) for item in payload]


async def create_command(
    rest: CommandRestClient,
    *,
    application_id: str,
    command: dict[str, Any],
    guild_id: Optional[str] = None,
) -> ApplicationCommand:
    payload = await rest.create_application_command(
        application_id=application_id,
        command=transform_command(command),
        guild_id=guild_id,
    )
    return ApplicationCommand.from_payload(payload, guild_id)


async def sync_commands(
    rest: CommandRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    scope: str,
    guild_ids: tuple[str, ...],
    logger: logging.Logger,
) -> None:
    normalized_scope = scope.strip().lower()
    if normalized_scope == "global":
        updated = await set_commands(
            rest, application_id=application_id, commands=commands
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="global",
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
        return

    if normalized_scope != "guild":
        raise ValueError("scope must be 'global' or 'guild'")

    normalized_guild_ids = tuple(
        sorted({guild_id.strip() for guild_id in guild_ids if guild_id.strip()})
    )
    if not normalized_guild_ids:
        raise ValueError("guild scope requires at least one guild_id")

    for guild_id in normalized_guild_ids:
        updated = await set_commands(
            rest,
            application_id=application_id,
            commands=commands,
            guild_id=guild_id,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="guild",
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
