from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol, Union

from ..core.logging_utils import log_event
from .constants import DISCORD_EPOCH_MS, InteractionType
from .entities import EntityResolver, Member, User
from .errors import DiscordAPIError
from .message import (
    FileSource,
    MessageFile,
    OutboundMessage,
    ResolvedFile,
    build_message,
)
from .options import OptionNode, command_path_and_values, resolve_options
from .race import ResponseRace


class FollowupSender(Protocol):
    async def create_followup_message(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
        files: Iterable[ResolvedFile] = (),
        wait: bool = True,
    ) -> dict[str, Any]: ...


def snowflake_timestamp(snowflake: str) -> int:
    """Milliseconds since the Unix epoch encoded in a Discord snowflake."""
    return (int(snowflake) >> 22) + DISCORD_EPOCH_MS


def _as_id(value: object) -> Optional[str]:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


class ReplyChannel:
    """Reply handle for one interaction.

    The first reply settles the acknowledgment race while it is still open.
    Anything after that, including every reply once the timer fired, goes out
    as a followup webhook message, but only after the transport reports that
    the acknowledgment reached Discord.
    """

    def __init__(
        self,
        race: ResponseRace,
        *,
        rest: FollowupSender,
        application_id: str,
        interaction_token: str,
        interaction_id: str,
        logger: logging.Logger,
    ) -> None:
        self._race = race
        self._rest = rest
        self._application_id = application_id
        self._interaction_token = interaction_token
        self._interaction_id = interaction_id
        self._logger = logger
        self._acknowledged = asyncio.Event()
        self._ack_error: Optional[BaseException] = None

    @property
    def acknowledged(self) -> bool:
        return self._acknowledged.is_set() and self._ack_error is None

    def attempt_reply(self, payload: Optional[dict[str, Any]]) -> bool:
        return self._race.attempt_reply(payload)

    def mark_acknowledged(self, error: Optional[BaseException] = None) -> None:
        """Release pending followups; with `error`, they fail instead of posting."""
        if self._acknowledged.is_set():
            return
        self._ack_error = error
        self._acknowledged.set()

    async def deliver(self, message: OutboundMessage) -> Optional[dict[str, Any]]:
        resolved = await message.resolve_files()
        # Attachments cannot ride on the synchronous acknowledgment body.
        if not resolved.has_files and self.attempt_reply(resolved.data):
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.interaction.reply.immediate",
                interaction_id=self._interaction_id,
            )
            return None
        await self._acknowledged.wait()
        if self._ack_error is not None:
            raise DiscordAPIError(
                f"interaction {self._interaction_id} was never acknowledged"
            ) from self._ack_error
        log_event(
            self._logger,
            logging.DEBUG,
            "discord.interaction.reply.followup",
            interaction_id=self._interaction_id,
            timed_out=self._race.timed_out,
            file_count=len(resolved.resolved_files),
        )
        return await self._rest.create_followup_message(
            application_id=self._application_id,
            interaction_token=self._interaction_token,
            payload=resolved.data,
            files=resolved.resolved_files,
            wait=True,
        )


@dataclass(frozen=True)
class Interaction:
    id: str
    type: InteractionType
    application_id: str
    token: str
    command_id: Optional[str]
    command_name: str
    options: tuple[OptionNode, ...]
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    user: Optional[User] = None
    member: Optional[Member] = None
    version: int = 1
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    reply_channel: Optional[ReplyChannel] = field(
        default=None, repr=False, compare=False
    )

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        *,
        resolver: EntityResolver,
        reply_channel: Optional[ReplyChannel] = None,
    ) -> "Interaction":
        data_raw = payload.get("data")
        data: dict[str, Any] = data_raw if isinstance(data_raw, dict) else {}
        guild_id = _as_id(payload.get("guild_id"))

        member: Optional[Member] = None
        user: Optional[User] = None
        raw_member = payload.get("member")
        if isinstance(raw_member, dict):
            member = resolver.resolve_member(raw_member, guild_id)
            if member is not None:
                user = member.user
        raw_user = payload.get("user")
        if user is None and isinstance(raw_user, dict):
            user = resolver.resolve_user(raw_user)

        return cls(
            id=str(payload.get("id")),
            type=InteractionType(
                payload.get("type", InteractionType.APPLICATION_COMMAND)
            ),
            application_id=str(payload.get("application_id")),
            token=str(payload.get("token")),
            command_id=_as_id(data.get("id")),
            command_name=str(data.get("name") or ""),
            options=resolve_options(
                data.get("options"),
                data.get("resolved"),
                resolver,
                guild_id=guild_id,
            ),
            guild_id=guild_id,
            channel_id=_as_id(payload.get("channel_id")),
            user=user,
            member=member,
            version=int(payload.get("version") or 1),
            raw=payload,
            reply_channel=reply_channel,
        )

    @property
    def created_timestamp(self) -> int:
        return snowflake_timestamp(self.id)

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.created_timestamp / 1000, tz=timezone.utc)

    @property
    def command_path(self) -> tuple[str, ...]:
        path, _ = command_path_and_values(self.command_name, self.options)
        return path

    @property
    def option_values(self) -> dict[str, Any]:
        _, values = command_path_and_values(self.command_name, self.options)
        return values

    async def reply(
        self,
        content: Union[str, OutboundMessage, None] = None,
        *,
        embeds: Optional[Iterable[dict[str, Any]]] = None,
        tts: bool = False,
        ephemeral: bool = False,
        allowed_mentions: Optional[dict[str, Any]] = None,
        files: Optional[Iterable[Union[MessageFile, FileSource]]] = None,
    ) -> Optional[dict[str, Any]]:
        """Reply to the interaction.

        Returns None when the reply became the synchronous acknowledgment,
        otherwise the followup message created by Discord.
        """
        if self.reply_channel is None:
            raise RuntimeError("interaction has no reply channel")
        if isinstance(content, OutboundMessage):
            message = content
        else:
            message = build_message(
                content,
                embeds=embeds,
                tts=tts,
                ephemeral=ephemeral,
                allowed_mentions=allowed_mentions,
                files=files,
            )
        return await self.reply_channel.deliver(message)
