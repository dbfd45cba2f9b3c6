from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..core.logging_utils import log_event
from ..discord.config import DEFAULT_WEBHOOK_PATH
from ..discord.constants import SIGNATURE_HEADER, TIMESTAMP_HEADER
from ..discord.race import ResponseEnvelope
from ..discord.service import DiscordInteractionsService
from ..discord.signature import SignatureVerifier, verify_request

logger = logging.getLogger(__name__)


class EnvelopeDispatcher(Protocol):
    async def dispatch(self, payload: dict[str, Any]) -> Optional[ResponseEnvelope]: ...


def raw_header(request: Request, name: str) -> Optional[bytes]:
    """Header value exactly as received, without Starlette's latin-1 decoding."""
    key = name.lower().encode("latin-1")
    for header, value in request.headers.raw:
        if header == key:
            return value
    return None


def build_interactions_routes(
    dispatcher: EnvelopeDispatcher,
    verifier: SignatureVerifier,
    *,
    path: str = DEFAULT_WEBHOOK_PATH,
) -> APIRouter:
    router = APIRouter(tags=["interactions"])

    @router.post(path)
    async def receive_interaction(request: Request) -> Response:
        body = await request.body()
        if not verify_request(
            verifier,
            timestamp=raw_header(request, TIMESTAMP_HEADER),
            signature_hex=request.headers.get(SIGNATURE_HEADER),
            body=body,
        ):
            log_event(
                logger,
                logging.WARNING,
                "discord.webhook.unauthorized",
                client=request.client.host if request.client else None,
            )
            return Response(status_code=401)

        payload = json.loads(body)
        envelope = await dispatcher.dispatch(payload)
        if envelope is None:
            return Response(status_code=204)
        return JSONResponse(envelope.to_dict())

    @router.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return router


def create_app(service: DiscordInteractionsService) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await service.close()

    app = FastAPI(title="slashgate", lifespan=lifespan)
    app.state.service = service
    app.include_router(
        build_interactions_routes(
            service.dispatcher,
            service.verifier,
            path=service.config.webhook.path,
        )
    )
    return app
