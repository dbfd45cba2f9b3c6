from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Iterable, Optional, Union

from .constants import (
    DISCORD_EPHEMERAL_FLAG,
    DISCORD_MAX_EMBEDS,
    DISCORD_MAX_MESSAGE_LENGTH,
)

FileSource = Union[bytes, bytearray, str, Path, IO[bytes]]


@dataclass(frozen=True)
class MessageFile:
    """Attachment to upload with a message; `source` is bytes, a path or a binary stream."""

    source: FileSource
    name: Optional[str] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class ResolvedFile:
    name: str
    data: bytes
    content_type: Optional[str] = None


@dataclass(frozen=True)
class OutboundMessage:
    data: dict[str, Any]
    files: tuple[MessageFile, ...] = ()
    resolved_files: tuple[ResolvedFile, ...] = field(default=())

    @property
    def has_files(self) -> bool:
        return bool(self.files or self.resolved_files)

    async def resolve_files(self) -> "OutboundMessage":
        """Read every attachment into memory; file reads run off the loop."""
        if not self.files:
            return self
        resolved = await asyncio.gather(
            *(_resolve_file(item, index) for index, item in enumerate(self.files))
        )
        return OutboundMessage(data=self.data, files=(), resolved_files=tuple(resolved))


def _guess_content_type(name: str) -> Optional[str]:
    content_type, _ = mimetypes.guess_type(name)
    return content_type


async def _resolve_file(item: MessageFile, index: int) -> ResolvedFile:
    source = item.source
    name = item.name or _default_name(item, index)
    if isinstance(source, (bytes, bytearray)):
        data = bytes(source)
    elif isinstance(source, (str, Path)):
        data = await asyncio.to_thread(Path(source).read_bytes)
    else:
        data = await asyncio.to_thread(source.read)
    return ResolvedFile(
        name=name,
        data=data,
        content_type=item.content_type or _guess_content_type(name),
    )


def build_message(
    content: Optional[str] = None,
    *,
    embeds: Optional[Iterable[dict[str, Any]]] = None,
    tts: bool = False,
    ephemeral: bool = False,
    allowed_mentions: Optional[dict[str, Any]] = None,
    files: Optional[Iterable[Union[MessageFile, FileSource]]] = None,
) -> OutboundMessage:
    data: dict[str, Any] = {}
    if content is not None:
        text = str(content)
        if len(text) > DISCORD_MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"message content exceeds {DISCORD_MAX_MESSAGE_LENGTH} characters"
            )
        data["content"] = text
    if tts:
        data["tts"] = True
    embed_list = list(embeds) if embeds is not None else []
    if len(embed_list) > DISCORD_MAX_EMBEDS:
        raise ValueError(f"a message can carry at most {DISCORD_MAX_EMBEDS} embeds")
    if embed_list:
        data["embeds"] = embed_list
    if allowed_mentions is not None:
        data["allowed_mentions"] = allowed_mentions
    if ephemeral:
        data["flags"] = DISCORD_EPHEMERAL_FLAG

    normalized_files = tuple(
        item if isinstance(item, MessageFile) else MessageFile(source=item)
        for item in (files or ())
    )
    if normalized_files:
        data["attachments"] = [
            {"id": index, "filename": item.name or _default_name(item, index)}
            for index, item in enumerate(normalized_files)
        ]
    return OutboundMessage(data=data, files=normalized_files)


def _default_name(item: MessageFile, index: int) -> str:
    if isinstance(item.source, (str, Path)):
        return Path(item.source).name
    stream_name = getattr(item.source, "name", None)
    if isinstance(stream_name, str) and stream_name:
        return Path(stream_name).name
    return f"file{index}"
