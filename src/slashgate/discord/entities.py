"""Domain entities referenced by interactions, and the resolvers that build them.

Two resolver implementations share the `EntityResolver` protocol: one that
upserts into a process-wide `EntityCache`, and one that constructs values on
demand. The service picks one at composition time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol


def _as_id(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _int_or_default(value: object, default: int = 0) -> int:
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class User:
    id: str
    username: Optional[str] = None
    discriminator: Optional[str] = None
    global_name: Optional[str] = None
    avatar: Optional[str] = None
    bot: bool = False

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> "User":
        return cls(
            id=_as_id(raw.get("id")),
            username=_optional_str(raw.get("username")),
            discriminator=_optional_str(raw.get("discriminator")),
            global_name=_optional_str(raw.get("global_name")),
            avatar=_optional_str(raw.get("avatar")),
            bot=bool(raw.get("bot", False)),
        )

    @property
    def mention(self) -> str:
        return f"<@{self.id}>"


@dataclass(frozen=True)
class Member:
    user: Optional[User]
    guild_id: str
    nick: Optional[str] = None
    roles: tuple[str, ...] = ()
    joined_at: Optional[str] = None
    permissions: Optional[str] = None

    @classmethod
    def from_payload(
        cls, raw: dict[str, Any], guild_id: str, *, user: Optional[User] = None
    ) -> "Member":
        if user is None:
            raw_user = raw.get("user")
            user = User.from_payload(raw_user) if isinstance(raw_user, dict) else None
        roles = raw.get("roles")
        return cls(
            user=user,
            guild_id=guild_id,
            nick=_optional_str(raw.get("nick")),
            roles=tuple(str(r) for r in roles) if isinstance(roles, list) else (),
            joined_at=_optional_str(raw.get("joined_at")),
            permissions=_optional_str(raw.get("permissions")),
        )

    @property
    def id(self) -> Optional[str]:
        return self.user.id if self.user is not None else None

    @property
    def display_name(self) -> Optional[str]:
        if self.nick:
            return self.nick
        if self.user is None:
            return None
        return self.user.global_name or self.user.username


@dataclass(frozen=True)
class Channel:
    id: str
    type: int = 0
    name: Optional[str] = None
    guild_id: Optional[str] = None
    parent_id: Optional[str] = None
    permissions: Optional[str] = None

    @classmethod
    def from_payload(
        cls, raw: dict[str, Any], guild_id: Optional[str] = None
    ) -> "Channel":
        raw_guild = raw.get("guild_id")
        return cls(
            id=_as_id(raw.get("id")),
            type=_int_or_default(raw.get("type")),
            name=_optional_str(raw.get("name")),
            guild_id=_as_id(raw_guild) if raw_guild is not None else guild_id,
            parent_id=_optional_str(raw.get("parent_id")),
            permissions=_optional_str(raw.get("permissions")),
        )


@dataclass(frozen=True)
class Role:
    id: str
    name: Optional[str] = None
    guild_id: Optional[str] = None
    color: int = 0
    position: int = 0
    permissions: Optional[str] = None

    @classmethod
    def from_payload(cls, raw: dict[str, Any], guild_id: Optional[str] = None) -> "Role":
        return cls(
            id=_as_id(raw.get("id")),
            name=_optional_str(raw.get("name")),
            guild_id=guild_id,
            color=_int_or_default(raw.get("color")),
            position=_int_or_default(raw.get("position")),
            permissions=_optional_str(raw.get("permissions")),
        )


class EntityResolver(Protocol):
    def resolve_user(self, raw: dict[str, Any]) -> User: ...

    def resolve_member(
        self, raw: dict[str, Any], guild_id: Optional[str]
    ) -> Optional[Member]: ...

    def resolve_channel(
        self, raw: dict[str, Any], guild_id: Optional[str]
    ) -> Channel: ...

    def resolve_role(self, raw: dict[str, Any], guild_id: Optional[str]) -> Role: ...


@dataclass
class EntityCache:
    """Process-wide entity store shared by every interaction on the loop."""

    users: dict[str, User] = field(default_factory=dict)
    channels: dict[str, Channel] = field(default_factory=dict)
    members: dict[str, dict[str, Member]] = field(default_factory=dict)
    roles: dict[str, dict[str, Role]] = field(default_factory=dict)

    def clear(self) -> None:
        self.users.clear()
        self.channels.clear()
        self.members.clear()
        self.roles.clear()


class StandaloneEntityResolver:
    """Builds entity values directly from payload data; keeps no state."""

    def resolve_user(self, raw: dict[str, Any]) -> User:
        return User.from_payload(raw)

    def resolve_member(
        self, raw: dict[str, Any], guild_id: Optional[str]
    ) -> Optional[Member]:
        if guild_id is None:
            return None
        return Member.from_payload(raw, guild_id)

    def resolve_channel(self, raw: dict[str, Any], guild_id: Optional[str]) -> Channel:
        return Channel.from_payload(raw, guild_id)

    def resolve_role(self, raw: dict[str, Any], guild_id: Optional[str]) -> Role:
        return Role.from_payload(raw, guild_id)


class CachingEntityResolver:
    """Upserts resolved entities into an `EntityCache` and returns the cached value."""

    def __init__(self, cache: Optional[EntityCache] = None) -> None:
        self.cache = cache if cache is not None else EntityCache()

    def resolve_user(self, raw: dict[str, Any]) -> User:
        user = User.from_payload(raw)
        self.cache.users[user.id] = user
        return user

    def resolve_member(
        self, raw: dict[str, Any], guild_id: Optional[str]
    ) -> Optional[Member]:
        if guild_id is None:
            return None
        raw_user = raw.get("user")
        user = self.resolve_user(raw_user) if isinstance(raw_user, dict) else None
        member = Member.from_payload(raw, guild_id, user=user)
        if member.id:
            self.cache.members.setdefault(guild_id, {})[member.id] = member
        return member

    def resolve_channel(self, raw: dict[str, Any], guild_id: Optional[str]) -> Channel:
        channel = Channel.from_payload(raw, guild_id)
        self.cache.channels[channel.id] = channel
        return channel

    def resolve_role(self, raw: dict[str, Any], guild_id: Optional[str]) -> Role:
        if guild_id is None:
            return Role.from_payload(raw)
        role = Role.from_payload(raw, guild_id)
        self.cache.roles.setdefault(guild_id, {})[role.id] = role
        return role
