"""Single-shot arbitration between the acknowledgment timer and the first reply.

Everything here runs on one asyncio loop. The timer callback and
`attempt_reply` are plain synchronous functions, so the state check and the
write happen without a suspension point in between; whichever the loop runs
first wins. The timer is never cancelled: when it fires after an early reply
it observes the resolved state and does nothing.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .constants import DEFAULT_RESPONSE_TIMEOUT_SECONDS, InteractionResponseType


@dataclass(frozen=True)
class ResponseEnvelope:
    kind: InteractionResponseType
    payload: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"type": int(self.kind)}
        if self.payload is not None:
            body["data"] = self.payload
        return body

    @classmethod
    def pong(cls) -> "ResponseEnvelope":
        return cls(kind=InteractionResponseType.PONG)

    @classmethod
    def immediate(cls, payload: Optional[dict[str, Any]]) -> "ResponseEnvelope":
        return cls(
            kind=InteractionResponseType.CHANNEL_MESSAGE_WITH_SOURCE, payload=payload
        )

    @classmethod
    def deferred(cls) -> "ResponseEnvelope":
        return cls(kind=InteractionResponseType.DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE)


class RaceState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ResponseRace:
    def __init__(
        self,
        *,
        timeout: float = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._timeout = timeout
        self._loop = loop
        self._state = RaceState.PENDING
        self._timed_out = False
        self._outcome: Optional[ResponseEnvelope] = None
        self._future: Optional[asyncio.Future[ResponseEnvelope]] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def state(self) -> RaceState:
        return self._state

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    @property
    def outcome(self) -> Optional[ResponseEnvelope]:
        return self._outcome

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _get_future(self) -> asyncio.Future[ResponseEnvelope]:
        if self._future is None:
            self._future = self._get_loop().create_future()
            if self._outcome is not None:
                self._future.set_result(self._outcome)
        return self._future

    def arm(self) -> None:
        """Start the acknowledgment timer. Arming twice is a no-op."""
        if self._timer is not None:
            return
        self._get_future()
        self._timer = self._get_loop().call_later(self._timeout, self._on_timeout)

    def _resolve(self, envelope: ResponseEnvelope) -> None:
        self._state = RaceState.RESOLVED
        self._outcome = envelope
        if self._future is not None and not self._future.done():
            self._future.set_result(envelope)

    def _on_timeout(self) -> None:
        if self._state is RaceState.RESOLVED:
            return
        self._timed_out = True
        self._resolve(ResponseEnvelope.deferred())

    def attempt_reply(self, payload: Optional[dict[str, Any]]) -> bool:
        """Settle the race with an immediate message if it is still open.

        Returns False, leaving the race untouched, when the timer already
        fired or an earlier reply already won.
        """
        if self._timed_out or self._state is RaceState.RESOLVED:
            return False
        self._resolve(ResponseEnvelope.immediate(payload))
        return True

    async def wait(self) -> ResponseEnvelope:
        return await self._get_future()
