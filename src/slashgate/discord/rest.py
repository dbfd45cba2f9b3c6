from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Iterable, Optional

import httpx

from .constants import DISCORD_API_BASE_URL
from .errors import DiscordAPIError, DiscordPermanentError, DiscordTransientError
from .message import ResolvedFile

logger = logging.getLogger(__name__)

_RETRYABLE_NETWORK_ERRORS = (
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.ConnectTimeout,
    httpx.ReadTimeout,
    httpx.WriteTimeout,
)


def _commands_path(application_id: str, guild_id: Optional[str]) -> str:
    if guild_id is None:
        return f"/applications/{application_id}/commands"
    return f"/applications/{application_id}/guilds/{guild_id}/commands"


def _wait_params(wait: bool) -> Optional[dict[str, str]]:
    return {"wait": "true"} if wait else None


class DiscordRestClient:
    def __init__(
        self,
        *,
        bot_token: str,
        timeout_seconds: float = 10.0,
        base_url: str = DISCORD_API_BASE_URL,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._authorization_header = f"Bot {bot_token}"
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        delay = self._retry_base_delay * (2**attempt) + random.uniform(0, 1)
        return float(min(delay, self._retry_max_delay))

    def _is_retryable_error(self, exc: Exception) -> bool:
        if isinstance(exc, _RETRYABLE_NETWORK_ERRORS):
            return True
        if isinstance(exc, httpx.HTTPStatusError):
            return 500 <= exc.response.status_code < 600
        return False

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | list[dict[str, Any]] | None = None,
        files: Iterable[ResolvedFile] = (),
        params: Optional[dict[str, str]] = None,
        auth: bool = True,
        expect_json: bool = True,
    ) -> Any:
        file_list = list(files)
        headers = {"Authorization": self._authorization_header} if auth else {}
        rate_limit_retries = 0
        retry_attempt = 0

        while True:
            try:
                if file_list:
                    # Multipart bodies must be rebuilt on every attempt.
                    response = await self._client.request(
                        method,
                        path,
                        params=params,
                        headers=headers,
                        data={"payload_json": json.dumps(payload or {})},
                        files=[
                            (
                                f"files[{index}]",
                                (item.name, item.data, item.content_type),
                            )
                            for index, item in enumerate(file_list)
                        ],
                    )
                else:
                    response = await self._client.request(
                        method, path, params=params, headers=headers, json=payload
                    )
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code == 429:
                    retry_after_raw = exc.response.headers.get("Retry-After")
                    if (
                        retry_after_raw is not None
                        and rate_limit_retries < self._max_retries
                    ):
                        rate_limit_retries += 1
                        try:
                            retry_after = max(float(retry_after_raw), 0.0)
                        except ValueError:
                            retry_after = 0.0
                        logger.info(
                            "Discord rate limited on %s %s, retrying after %.1fs (attempt %d)",
                            method,
                            path,
                            retry_after,
                            rate_limit_retries,
                        )
                        await asyncio.sleep(retry_after)
                        continue
                    raise DiscordTransientError(
                        f"Discord API rate limit exceeded for {method} {path}",
                        status_code=status_code,
                    ) from exc

                body_preview = (
                    (exc.response.text or "").strip().replace("\n", " ")[:200]
                )
                if 500 <= status_code < 600:
                    if retry_attempt < self._max_retries:
                        retry_attempt += 1
                        delay = self._calculate_retry_delay(retry_attempt)
                        logger.warning(
                            "Discord server error %d on %s %s, retrying in %.1fs (attempt %d/%d)",
                            status_code,
                            method,
                            path,
                            delay,
                            retry_attempt,
                            self._max_retries,
                        )
                        await asyncio.sleep(delay)
                        continue
                    raise DiscordTransientError(
                        f"Discord API server error for {method} {path}: "
                        f"status={status_code} body={body_preview!r}",
                        status_code=status_code,
                    ) from exc
                if status_code in {401, 403}:
                    raise DiscordPermanentError(
                        f"Discord API authentication failure for {method} {path}: "
                        f"status={status_code} body={body_preview!r}",
                        status_code=status_code,
                    ) from exc
                raise DiscordAPIError(
                    f"Discord API request failed for {method} {path}: "
                    f"status={status_code} body={body_preview!r}",
                    status_code=status_code,
                ) from exc
            except httpx.HTTPError as exc:
                if self._is_retryable_error(exc) and retry_attempt < self._max_retries:
                    retry_attempt += 1
                    delay = self._calculate_retry_delay(retry_attempt)
                    logger.warning(
                        "Discord network error on %s %s: %s, retrying in %.1fs (attempt %d/%d)",
                        method,
                        path,
                        type(exc).__name__,
                        delay,
                        retry_attempt,
                        self._max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise DiscordTransientError(
                    f"Discord API network error for {method} {path}: {exc}"
                ) from exc

            if not expect_json:
                return None
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise DiscordAPIError(
                    f"Discord API returned non-JSON success response for {method} {path}"
                ) from exc

    async def get_gateway_bot(self) -> dict[str, Any]:
        payload = await self._request("GET", "/gateway/bot")
        return payload if isinstance(payload, dict) else {}

    async def list_application_commands(
        self, *, application_id: str, guild_id: str | None = None
    ) -> list[dict[str, Any]]:
        payload = await self._request("GET", _commands_path(application_id, guild_id))
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        payload = await self._request(
            "PUT", _commands_path(application_id, guild_id), payload=commands
        )
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def create_application_command(
        self,
        *,
        application_id: str,
        command: dict[str, Any],
        guild_id: str | None = None,
    ) -> dict[str, Any]:
        payload = await self._request(
            "POST", _commands_path(application_id, guild_id), payload=command
        )
        return payload if isinstance(payload, dict) else {}

    async def create_interaction_response(
        self,
        *,
        interaction_id: str,
        interaction_token: str,
        payload: dict[str, Any],
        wait: bool = True,
    ) -> None:
        await self._request(
            "POST",
            f"/interactions/{interaction_id}/{interaction_token}/callback",
            payload=payload,
            params=_wait_params(wait),
            expect_json=False,
        )

    async def create_followup_message(
        self,
        *,
        application_id: str,
        interaction_token: str,
        payload: dict[str, Any],
        files: Iterable[ResolvedFile] = (),
        wait: bool = True,
    ) -> dict[str, Any]:
        # The interaction token authorizes webhook calls; no bot header is sent.
        response = await self._request(
            "POST",
            f"/webhooks/{application_id}/{interaction_token}",
            payload=payload,
            files=files,
            params=_wait_params(wait),
            auth=False,
        )
        return response if isinstance(response, dict) else {}

