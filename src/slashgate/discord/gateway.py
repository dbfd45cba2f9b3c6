"""Gateway transport: receives INTERACTION_CREATE events over a websocket.

A connection starts with HELLO, then either IDENTIFY or, when a previous
session is still resumable, RESUME so Discord replays the events missed while
reconnecting. A heartbeat that goes unacknowledged for a full interval marks
the socket as a zombie; it is closed with a non-1000 code to keep the session
resumable.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from ..core.logging_utils import log_event
from .constants import DISCORD_GATEWAY_URL
from .errors import DiscordAPIError, DiscordPermanentError
from .rest import DiscordRestClient

GATEWAY_QUERY = "v=10&encoding=json"

# Reconnecting cannot help until the operator fixes token or intents.
FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})
# The session is gone; the next connection must IDENTIFY.
SESSION_RESET_CLOSE_CODES = frozenset({4007, 4009})
RESUMABLE_CLOSE_CODE = 4000

DispatchCallback = Callable[[str, dict[str, Any]], Awaitable[None]]
Connector = Callable[[str], Any]


class GatewayOp(IntEnum):
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RESUME = 6
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


@dataclass(frozen=True)
class GatewayFrame:
    op: int
    data: Any = None
    sequence: Optional[int] = None
    event: Optional[str] = None

    @classmethod
    def decode(cls, message: str | bytes) -> "GatewayFrame":
        try:
            payload = json.loads(message)
        except ValueError as exc:
            raise DiscordAPIError(f"undecodable gateway frame: {exc}") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("op"), int):
            raise DiscordAPIError(f"malformed gateway frame: {message!r:.200}")
        sequence = payload.get("s")
        event = payload.get("t")
        return cls(
            op=payload["op"],
            data=payload.get("d"),
            sequence=sequence if isinstance(sequence, int) else None,
            event=event if isinstance(event, str) else None,
        )

    def encode(self) -> str:
        return json.dumps({"op": int(self.op), "d": self.data})


@dataclass
class GatewaySession:
    """What survives a dropped connection: enough to RESUME instead of IDENTIFY."""

    session_id: Optional[str] = None
    resume_url: Optional[str] = None
    sequence: Optional[int] = None

    @property
    def resumable(self) -> bool:
        return bool(self.session_id and self.resume_url) and self.sequence is not None

    def reset(self) -> None:
        self.session_id = None
        self.resume_url = None
        self.sequence = None


def with_gateway_query(url: str) -> str:
    if "?" in url:
        return url
    return f"{url.rstrip('/')}/?{GATEWAY_QUERY}"


def identify_frame(*, bot_token: str, intents: int) -> GatewayFrame:
    return GatewayFrame(
        op=GatewayOp.IDENTIFY,
        data={
            "token": bot_token,
            "intents": intents,
            "properties": {
                "os": sys.platform,
                "browser": "slashgate",
                "device": "slashgate",
            },
        },
    )


def resume_frame(*, bot_token: str, session: GatewaySession) -> GatewayFrame:
    return GatewayFrame(
        op=GatewayOp.RESUME,
        data={
            "token": bot_token,
            "session_id": session.session_id,
            "seq": session.sequence,
        },
    )


def heartbeat_frame(sequence: Optional[int]) -> GatewayFrame:
    return GatewayFrame(op=GatewayOp.HEARTBEAT, data=sequence)


def reconnect_delay(
    attempt: int,
    *,
    base: float = 1.0,
    cap: float = 60.0,
    rand: Callable[[], float] = random.random,
) -> float:
    """Exponential delay with equal jitter: half of it fixed, half random."""
    ceiling = min(cap, base * 2 ** min(max(attempt, 0), 16))
    return ceiling / 2 + (ceiling / 2) * min(max(rand(), 0.0), 1.0)


def close_code(exc: ConnectionClosed) -> Optional[int]:
    frame = exc.rcvd
    return frame.code if frame is not None else None


class DiscordGatewayClient:
    def __init__(
        self,
        *,
        bot_token: str,
        intents: int,
        logger: logging.Logger,
        gateway_url: Optional[str] = None,
        connect: Connector = websockets.connect,
        backoff: Callable[[int], float] = reconnect_delay,
    ) -> None:
        self._bot_token = bot_token
        self._intents = intents
        self._logger = logger
        self._gateway_url = gateway_url
        self._connect = connect
        self._backoff = backoff
        self._session = GatewaySession()
        self._stopping = asyncio.Event()
        self._websocket: Any = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._ack_pending = False
        self._session_live = False

    @property
    def session(self) -> GatewaySession:
        return self._session

    async def stop(self) -> None:
        self._stopping.set()
        await self._stop_heartbeat()
        if self._websocket is not None:
            await self._websocket.close()

    async def run(self, on_dispatch: DispatchCallback) -> None:
        """Stay connected until `stop()` or a failure no reconnect can fix."""
        failures = 0
        while not self._stopping.is_set():
            self._session_live = False
            try:
                url = await self._connection_url()
                async with self._connect(url) as websocket:
                    self._websocket = websocket
                    await self._serve(websocket, on_dispatch)
            except asyncio.CancelledError:
                raise
            except DiscordPermanentError as exc:
                self._halt(reason=str(exc))
                return
            except ConnectionClosed as exc:
                code = close_code(exc)
                if code in FATAL_CLOSE_CODES:
                    self._halt(reason=f"close code {code}")
                    return
                if code in SESSION_RESET_CLOSE_CODES:
                    self._session.reset()
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.gateway.closed",
                    close_code=code,
                    resumable=self._session.resumable,
                )
            except Exception as exc:
                log_event(
                    self._logger, logging.WARNING, "discord.gateway.error", exc=exc
                )
            finally:
                self._websocket = None
                await self._stop_heartbeat()

            if self._stopping.is_set():
                return
            failures = 0 if self._session_live else failures + 1
            await asyncio.sleep(self._backoff(failures))

    def _halt(self, *, reason: str) -> None:
        log_event(
            self._logger,
            logging.ERROR,
            "discord.gateway.halted",
            reason=reason,
            hint="fix the bot token or intents and restart",
        )

    async def _connection_url(self) -> str:
        if self._session.resumable:
            return self._session.resume_url or DISCORD_GATEWAY_URL
        if self._gateway_url:
            return self._gateway_url
        async with DiscordRestClient(bot_token=self._bot_token) as rest:
            payload = await rest.get_gateway_bot()
        url = payload.get("url")
        if isinstance(url, str) and url:
            return with_gateway_query(url)
        return DISCORD_GATEWAY_URL

    async def _serve(self, websocket: Any, on_dispatch: DispatchCallback) -> None:
        hello = GatewayFrame.decode(await websocket.recv())
        interval_ms = None
        if hello.op == GatewayOp.HELLO and isinstance(hello.data, dict):
            interval_ms = hello.data.get("heartbeat_interval")
        if not isinstance(interval_ms, (int, float)) or interval_ms <= 0:
            raise DiscordAPIError("gateway did not open with a usable HELLO")

        self._ack_pending = False
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat(websocket, interval_ms / 1000.0)
        )
        if self._session.resumable:
            log_event(
                self._logger,
                logging.INFO,
                "discord.gateway.resuming",
                session_id=self._session.session_id,
                sequence=self._session.sequence,
            )
            opening = resume_frame(bot_token=self._bot_token, session=self._session)
        else:
            opening = identify_frame(bot_token=self._bot_token, intents=self._intents)
        await websocket.send(opening.encode())

        async for message in websocket:
            frame = GatewayFrame.decode(message)
            if frame.sequence is not None:
                self._session.sequence = frame.sequence
            if frame.op == GatewayOp.DISPATCH:
                await self._handle_dispatch(frame, on_dispatch)
            elif frame.op == GatewayOp.HEARTBEAT:
                await websocket.send(heartbeat_frame(self._session.sequence).encode())
            elif frame.op == GatewayOp.HEARTBEAT_ACK:
                self._ack_pending = False
            elif frame.op in (GatewayOp.RECONNECT, GatewayOp.INVALID_SESSION):
                # INVALID_SESSION carries `true` when the session may be resumed.
                if frame.op == GatewayOp.INVALID_SESSION and frame.data is not True:
                    self._session.reset()
                log_event(
                    self._logger,
                    logging.INFO,
                    "discord.gateway.reconnect_requested",
                    op=frame.op,
                    resumable=self._session.resumable,
                )
                await websocket.close(code=RESUMABLE_CLOSE_CODE)
                return

    async def _handle_dispatch(
        self, frame: GatewayFrame, on_dispatch: DispatchCallback
    ) -> None:
        data = frame.data if isinstance(frame.data, dict) else None
        if frame.event == "READY" and data is not None:
            resume_url = data.get("resume_gateway_url")
            self._session.session_id = data.get("session_id")
            self._session.resume_url = (
                with_gateway_query(resume_url) if isinstance(resume_url, str) else None
            )
            self._session_live = True
            log_event(
                self._logger,
                logging.INFO,
                "discord.gateway.ready",
                session_id=self._session.session_id,
            )
            return
        if frame.event == "RESUMED":
            self._session_live = True
            log_event(self._logger, logging.INFO, "discord.gateway.resumed")
            return
        if frame.event and data is not None:
            await on_dispatch(frame.event, data)

    async def _heartbeat(self, websocket: Any, interval: float) -> None:
        await asyncio.sleep(interval * random.random())
        while True:
            if self._ack_pending:
                log_event(self._logger, logging.WARNING, "discord.gateway.zombie")
                await websocket.close(code=RESUMABLE_CLOSE_CODE)
                return
            self._ack_pending = True
            await websocket.send(heartbeat_frame(self._session.sequence).encode())
            await asyncio.sleep(interval)

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            # The read loop already reports why the connection ended.
            log_event(
                self._logger,
                logging.DEBUG,
                "discord.gateway.heartbeat_stopped",
                exc=exc,
            )
