"""Interaction dispatcher shared by the webhook and gateway transports.

`dispatch` turns one raw interaction payload into the acknowledgment envelope
for it. Command interactions are handed to every registered handler as
independent tasks; the dispatcher itself only waits for the response race.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from ..core.logging_utils import log_event
from .constants import (
    DEFAULT_RESPONSE_TIMEOUT_SECONDS,
    INTERACTION_CREATE_EVENT,
    InteractionType,
)
from .entities import EntityResolver, StandaloneEntityResolver
from .interaction import FollowupSender, Interaction, ReplyChannel
from .race import ResponseEnvelope, ResponseRace

InteractionHandler = Callable[[Interaction], Awaitable[None]]


class InteractionRestClient(FollowupSender, Protocol):
    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
        wait: bool = True,
    ) -> None: ...


def _interaction_type(payload: dict[str, Any]) -> Optional[InteractionType]:
    raw_type = payload.get("type")
    if isinstance(raw_type, bool) or not isinstance(raw_type, int):
        return None
    try:
        return InteractionType(raw_type)
    except ValueError:
        return None


class InteractionDispatcher:
    def __init__(
        self,
        rest: InteractionRestClient,
        *,
        resolver: Optional[EntityResolver] = None,
        logger: Optional[logging.Logger] = None,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
    ) -> None:
        self._rest = rest
        self._resolver = resolver if resolver is not None else StandaloneEntityResolver()
        self._logger = logger or logging.getLogger(__name__)
        self._response_timeout = response_timeout
        self._handlers: list[InteractionHandler] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def add_handler(self, handler: InteractionHandler) -> InteractionHandler:
        """Register an interaction handler; usable as a decorator."""
        self._handlers.append(handler)
        return handler

    def remove_handler(self, handler: InteractionHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def dispatch(self, payload: dict[str, Any]) -> Optional[ResponseEnvelope]:
        """Return the acknowledgment for a webhook-delivered interaction.

        Followups are released as soon as the envelope is handed back, since
        the caller answers the HTTP request with it directly.
        """
        envelope, reply_channel = await self._acknowledge(payload)
        if reply_channel is not None:
            reply_channel.mark_acknowledged()
        return envelope

    async def _acknowledge(
        self, payload: dict[str, Any]
    ) -> tuple[Optional[ResponseEnvelope], Optional[ReplyChannel]]:
        interaction_type = _interaction_type(payload)
        if interaction_type is InteractionType.PING:
            return ResponseEnvelope.pong(), None
        if interaction_type is InteractionType.APPLICATION_COMMAND:
            return await self._dispatch_command(payload)
        log_event(
            self._logger,
            logging.DEBUG,
            "discord.interaction.unknown_type",
            interaction_id=payload.get("id"),
            interaction_type=payload.get("type"),
        )
        return None, None

    async def _dispatch_command(
        self, payload: dict[str, Any]
    ) -> tuple[ResponseEnvelope, ReplyChannel]:
        race = ResponseRace(timeout=self._response_timeout)
        race.arm()
        interaction_id = str(payload.get("id"))
        reply_channel = ReplyChannel(
            race,
            rest=self._rest,
            application_id=str(payload.get("application_id")),
            interaction_token=str(payload.get("token")),
            interaction_id=interaction_id,
            logger=self._logger,
        )
        interaction = Interaction.from_payload(
            payload, resolver=self._resolver, reply_channel=reply_channel
        )
        log_event(
            self._logger,
            logging.INFO,
            "discord.interaction.received",
            interaction_id=interaction.id,
            command=" ".join(interaction.command_path),
            guild_id=interaction.guild_id,
            channel_id=interaction.channel_id,
            user_id=interaction.user.id if interaction.user else None,
            handler_count=len(self._handlers),
        )
        for handler in list(self._handlers):
            self._spawn(self._run_handler(handler, interaction))

        envelope = await race.wait()
        log_event(
            self._logger,
            logging.INFO,
            "discord.interaction.acknowledged",
            interaction_id=interaction.id,
            response_type=int(envelope.kind),
            timed_out=race.timed_out,
        )
        return envelope, reply_channel

    async def _run_handler(
        self, handler: InteractionHandler, interaction: Interaction
    ) -> None:
        try:
            await handler(interaction)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.handler_failed",
                interaction_id=interaction.id,
                command=interaction.command_name,
                exc=exc,
            )

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def dispatch_from_gateway(self, payload: dict[str, Any]) -> None:
        """Dispatch a gateway-delivered interaction and post the acknowledgment.

        Followups wait for the callback POST to complete; if it fails they
        raise instead of reaching Discord ahead of an acknowledgment.
        """
        envelope, reply_channel = await self._acknowledge(payload)
        if envelope is None:
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.interaction.callback.skipped",
                interaction_id=payload.get("id"),
            )
            return
        try:
            await self._rest.create_interaction_response(
                interaction_id=str(payload.get("id")),
                interaction_token=str(payload.get("token")),
                payload=envelope.to_dict(),
                wait=True,
            )
        except BaseException as exc:
            if reply_channel is not None:
                reply_channel.mark_acknowledged(exc)
            raise
        if reply_channel is not None:
            reply_channel.mark_acknowledged()

    async def on_gateway_dispatch(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type != INTERACTION_CREATE_EVENT:
            return
        # The gateway read loop must keep draining frames while this runs.
        self._spawn(self._run_gateway_interaction(data))

    async def _run_gateway_interaction(self, data: dict[str, Any]) -> None:
        try:
            await self.dispatch_from_gateway(data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "discord.interaction.callback.failed",
                interaction_id=data.get("id"),
                exc=exc,
            )

    async def wait_idle(self) -> None:
        """Wait until every spawned handler and gateway task has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
