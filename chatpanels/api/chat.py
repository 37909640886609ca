from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from chatpanels.api.deps import get_relay
from chatpanels.core.errors import TransportError
from chatpanels.domain.schemas import ChatRequest
from chatpanels.providers.base import ByteStream
from chatpanels.providers.sse import encode_frame
from chatpanels.services.relay import RequestRelay

router = APIRouter(tags=["chat"])
logger = logging.getLogger("chatpanels")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def forward_stream(stream: ByteStream) -> AsyncGenerator[bytes, None]:
    """Pass vendor bytes through as they arrive.

    A transport failure after the headers went out can only be reported in
    band, as a final ``{"error": ...}`` frame.
    """
    try:
        async for chunk in stream:
            yield chunk
    except TransportError as exc:
        logger.warning("Upstream stream interrupted", extra={"error": exc.message})
        yield encode_frame({"error": exc.message})
    except asyncio.CancelledError:
        logger.info("Client disconnected during stream")
        raise
    finally:
        await stream.aclose()


@router.post("/api/chat")
async def chat(body: ChatRequest, relay: RequestRelay = Depends(get_relay)):
    response = await relay.relay(
        body.provider_id,
        body.provider_config.to_credentials(),
        body.to_completion_request(),
    )
    if response.is_stream:
        return StreamingResponse(
            forward_stream(response.stream),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
    return JSONResponse(response.completion)
