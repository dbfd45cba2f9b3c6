"""Typed application-command option tree.

Raw option dicts from an interaction payload are mapped into a closed set of
frozen option node types. Reference options (user/channel/role) are resolved
through an `EntityResolver` using the payload's `data.resolved` tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from .constants import OptionType
from .entities import Channel, EntityResolver, Member, Role, User


@dataclass(frozen=True)
class SubcommandOption:
    name: str
    options: tuple["OptionNode", ...] = ()
    type: OptionType = OptionType.SUB_COMMAND


@dataclass(frozen=True)
class SubcommandGroupOption:
    name: str
    options: tuple["OptionNode", ...] = ()
    type: OptionType = OptionType.SUB_COMMAND_GROUP


@dataclass(frozen=True)
class StringOption:
    name: str
    value: Any
    type: OptionType = OptionType.STRING


@dataclass(frozen=True)
class IntegerOption:
    name: str
    value: Any
    type: OptionType = OptionType.INTEGER


@dataclass(frozen=True)
class BooleanOption:
    name: str
    value: Any
    type: OptionType = OptionType.BOOLEAN


@dataclass(frozen=True)
class UserOption:
    name: str
    user: User
    member: Optional[Member] = None
    type: OptionType = OptionType.USER


@dataclass(frozen=True)
class ChannelOption:
    name: str
    channel: Channel
    type: OptionType = OptionType.CHANNEL


@dataclass(frozen=True)
class RoleOption:
    name: str
    role: Role
    type: OptionType = OptionType.ROLE


@dataclass(frozen=True)
class UnknownOption:
    """Option of a kind this library does not know yet, kept as received."""

    name: Optional[str]
    type: Any
    raw: Mapping[str, Any]


ContainerOption = Union[SubcommandOption, SubcommandGroupOption]
OptionNode = Union[
    SubcommandOption,
    SubcommandGroupOption,
    StringOption,
    IntegerOption,
    BooleanOption,
    UserOption,
    ChannelOption,
    RoleOption,
    UnknownOption,
]


@dataclass(frozen=True)
class _ResolveContext:
    resolved: Mapping[str, Any]
    resolver: EntityResolver
    guild_id: Optional[str]

    def lookup(self, table: str, key: str) -> Optional[dict[str, Any]]:
        entries = self.resolved.get(table)
        if not isinstance(entries, Mapping):
            return None
        raw = entries.get(key)
        return raw if isinstance(raw, dict) else None


def _children(raw: Mapping[str, Any], ctx: _ResolveContext) -> tuple[OptionNode, ...]:
    nested = raw.get("options")
    if not isinstance(nested, list):
        return ()
    return tuple(_resolve_node(item, ctx) for item in nested)


def _map_subcommand(raw: Mapping[str, Any], ctx: _ResolveContext) -> OptionNode:
    return SubcommandOption(name=str(raw.get("name")), options=_children(raw, ctx))


def _map_subcommand_group(raw: Mapping[str, Any], ctx: _ResolveContext) -> OptionNode:
    return SubcommandGroupOption(
        name=str(raw.get("name")), options=_children(raw, ctx)
    )


def _map_string(raw: Mapping[str, Any], _ctx: _ResolveContext) -> OptionNode:
    return StringOption(name=str(raw.get("name")), value=raw.get("value"))


def _map_integer(raw: Mapping[str, Any], _ctx: _ResolveContext) -> OptionNode:
    return IntegerOption(name=str(raw.get("name")), value=raw.get("value"))


def _map_boolean(raw: Mapping[str, Any], _ctx: _ResolveContext) -> OptionNode:
    return BooleanOption(name=str(raw.get("name")), value=raw.get("value"))


def _map_user(raw: Mapping[str, Any], ctx: _ResolveContext) -> OptionNode:
    key = str(raw.get("value"))
    raw_user = ctx.lookup("users", key) or {"id": key}
    raw_member = ctx.lookup("members", key)
    member: Optional[Member] = None
    if raw_member is not None:
        # Copy before merging so the inbound payload stays untouched.
        merged = dict(raw_member)
        merged["user"] = raw_user
        member = ctx.resolver.resolve_member(merged, ctx.guild_id)
    return UserOption(
        name=str(raw.get("name")),
        user=ctx.resolver.resolve_user(raw_user),
        member=member,
    )


def _map_channel(raw: Mapping[str, Any], ctx: _ResolveContext) -> OptionNode:
    key = str(raw.get("value"))
    raw_channel = ctx.lookup("channels", key) or {"id": key}
    return ChannelOption(
        name=str(raw.get("name")),
        channel=ctx.resolver.resolve_channel(raw_channel, ctx.guild_id),
    )


def _map_role(raw: Mapping[str, Any], ctx: _ResolveContext) -> OptionNode:
    key = str(raw.get("value"))
    raw_role = ctx.lookup("roles", key) or {"id": key}
    return RoleOption(
        name=str(raw.get("name")),
        role=ctx.resolver.resolve_role(raw_role, ctx.guild_id),
    )


_OPTION_MAPPERS: dict[
    OptionType, Callable[[Mapping[str, Any], _ResolveContext], OptionNode]
] = {
    OptionType.SUB_COMMAND: _map_subcommand,
    OptionType.SUB_COMMAND_GROUP: _map_subcommand_group,
    OptionType.STRING: _map_string,
    OptionType.INTEGER: _map_integer,
    OptionType.BOOLEAN: _map_boolean,
    OptionType.USER: _map_user,
    OptionType.CHANNEL: _map_channel,
    OptionType.ROLE: _map_role,
}

_missing_mappers = set(OptionType) - set(_OPTION_MAPPERS)
if _missing_mappers:
    raise RuntimeError(
        f"option mapper table is missing kinds: {sorted(m.name for m in _missing_mappers)}"
    )


def _option_type(value: Any) -> Optional[OptionType]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    try:
        return OptionType(value)
    except ValueError:
        return None


def _resolve_node(raw: Any, ctx: _ResolveContext) -> OptionNode:
    if not isinstance(raw, Mapping):
        return UnknownOption(name=None, type=None, raw={"value": raw})
    option_type = _option_type(raw.get("type"))
    if option_type is None:
        name = raw.get("name")
        return UnknownOption(
            name=name if isinstance(name, str) else None,
            type=raw.get("type"),
            raw=raw,
        )
    return _OPTION_MAPPERS[option_type](raw, ctx)


def resolve_options(
    raw_options: Any,
    resolved: Optional[Mapping[str, Any]],
    resolver: EntityResolver,
    *,
    guild_id: Optional[str] = None,
) -> tuple[OptionNode, ...]:
    """Map raw interaction options into typed nodes, preserving order and depth."""
    if not isinstance(raw_options, list):
        return ()
    ctx = _ResolveContext(
        resolved=resolved if isinstance(resolved, Mapping) else {},
        resolver=resolver,
        guild_id=guild_id,
    )
    return tuple(_resolve_node(item, ctx) for item in raw_options)


def option_value(node: OptionNode) -> Any:
    if isinstance(node, (StringOption, IntegerOption, BooleanOption)):
        return node.value
    if isinstance(node, UserOption):
        return node.member if node.member is not None else node.user
    if isinstance(node, ChannelOption):
        return node.channel
    if isinstance(node, RoleOption):
        return node.role
    if isinstance(node, UnknownOption):
        return node.raw.get("value")
    return None


def command_path_and_values(
    command_name: str, options: tuple[OptionNode, ...]
) -> tuple[tuple[str, ...], dict[str, Any]]:
    """Walk leading subcommand nodes into a path, then collect leaf values by name."""
    path: list[str] = [command_name] if command_name else []
    current = options
    while current:
        first = current[0]
        if not isinstance(first, (SubcommandOption, SubcommandGroupOption)):
            break
        path.append(first.name)
        current = first.options

    values: dict[str, Any] = {}
    for node in current:
        if isinstance(node, (SubcommandOption, SubcommandGroupOption)):
            continue
        if node.name:
            values[node.name] = option_value(node)
    return tuple(path), values
