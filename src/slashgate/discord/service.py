from __future__ import annotations

import contextlib
import logging
from typing import Optional

from ..core.logging_utils import log_event
from .config import DiscordInteractionsConfig
from .dispatcher import InteractionDispatcher, InteractionHandler
from .entities import (
    CachingEntityResolver,
    EntityCache,
    EntityResolver,
    StandaloneEntityResolver,
)
from .errors import DiscordConfigError
from .gateway import DiscordGatewayClient
from .rest import DiscordRestClient
from .signature import Ed25519Verifier, SignatureVerifier


def build_entity_resolver(
    config: DiscordInteractionsConfig, *, cache: Optional[EntityCache] = None
) -> EntityResolver:
    if config.entity_cache:
        return CachingEntityResolver(cache)
    return StandaloneEntityResolver()


class DiscordInteractionsService:
    """Wires the REST client, dispatcher and transports for one application."""

    def __init__(
        self,
        config: DiscordInteractionsConfig,
        *,
        logger: logging.Logger,
        rest_client: Optional[DiscordRestClient] = None,
        gateway_client: Optional[DiscordGatewayClient] = None,
        verifier: Optional[SignatureVerifier] = None,
        resolver: Optional[EntityResolver] = None,
    ) -> None:
        self._config = config
        self._logger = logger

        self._rest = (
            rest_client
            if rest_client is not None
            else DiscordRestClient(bot_token=config.bot_token or "")
        )
        self._owns_rest = rest_client is None

        self._gateway = gateway_client
        if verifier is None and config.public_key:
            verifier = Ed25519Verifier(config.public_key)
        self._verifier = verifier
        if resolver is None:
            resolver = build_entity_resolver(config)
        self._dispatcher = InteractionDispatcher(
            self._rest,
            resolver=resolver,
            logger=logger,
            response_timeout=config.response_timeout_seconds,
        )

    @property
    def config(self) -> DiscordInteractionsConfig:
        return self._config

    @property
    def dispatcher(self) -> InteractionDispatcher:
        return self._dispatcher

    @property
    def rest(self) -> DiscordRestClient:
        return self._rest

    @property
    def verifier(self) -> SignatureVerifier:
        if self._verifier is None:
            raise DiscordConfigError(
                f"missing public key env '{self._config.public_key_env}'"
            )
        return self._verifier

    def add_handler(self, handler: InteractionHandler) -> InteractionHandler:
        return self._dispatcher.add_handler(handler)

    async def run_gateway_forever(self) -> None:
        if self._gateway is None:
            self._gateway = DiscordGatewayClient(
                bot_token=self._config.bot_token or "",
                intents=self._config.intents,
                logger=self._logger,
            )
        log_event(
            self._logger,
            logging.INFO,
            "discord.gateway.starting",
            application_id=self._config.application_id,
            intents=self._config.intents,
        )
        try:
            await self._gateway.run(self._dispatcher.on_gateway_dispatch)
        finally:
            await self.close()

    async def close(self) -> None:
        if self._gateway is not None:
            with contextlib.suppress(Exception):
                await self._gateway.stop()
        with contextlib.suppress(Exception):
            await self._dispatcher.wait_idle()
        if self._owns_rest:
            await self._rest.close()
        log_event(self._logger, logging.INFO, "discord.service.closed")


def create_interactions_service(
    config: DiscordInteractionsConfig, *, logger: logging.Logger
) -> DiscordInteractionsService:
    return DiscordInteractionsService(config, logger=logger)
