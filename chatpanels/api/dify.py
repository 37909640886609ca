"""Workflow-provider extras: uploads, suggested questions, feedback, app metadata.

Credentials come in the ``x-dify-api-key`` and ``x-dify-base-url`` headers,
except for feedback which carries them in the body.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, Header, Query, UploadFile

from chatpanels.api.deps import get_relay
from chatpanels.core.errors import APIError, BadRequest, Unauthorized
from chatpanels.domain.schemas import FeedbackRequest
from chatpanels.providers.definitions import DIFY
from chatpanels.providers.dify import DifyProvider
from chatpanels.providers.types import ProviderCredentials
from chatpanels.services.relay import RequestRelay

router = APIRouter(prefix="/api/dify", tags=["dify"])


def _workflow(relay: RequestRelay, api_key: str | None, base_url: str | None, missing: APIError) -> DifyProvider:
    if not api_key:
        raise missing
    return relay.adapter_for(DIFY.id, ProviderCredentials(api_key=api_key, base_url=base_url))


@router.get("/suggested")
async def suggested(
    message_id: str | None = Query(None),
    x_dify_api_key: str | None = Header(None),
    x_dify_base_url: str | None = Header(None),
    relay: RequestRelay = Depends(get_relay),
):
    missing = BadRequest("Missing API Key or message_id")
    if not message_id:
        raise missing
    adapter = _workflow(relay, x_dify_api_key, x_dify_base_url, missing)
    return {"data": await adapter.suggested_questions(message_id)}


@router.post("/upload")
async def upload(
    file: UploadFile = File(...),
    x_dify_api_key: str | None = Header(None),
    x_dify_base_url: str | None = Header(None),
    relay: RequestRelay = Depends(get_relay),
):
    adapter = _workflow(relay, x_dify_api_key, x_dify_base_url, BadRequest("Missing API Key"))
    content = await file.read()
    return await adapter.upload_file(file.filename or "upload", content, file.content_type)


@router.post("/feedback")
async def feedback(body: FeedbackRequest, relay: RequestRelay = Depends(get_relay)):
    adapter = _workflow(relay, body.api_key, body.base_url, BadRequest("Missing required fields"))
    return await adapter.send_feedback(body.message_id, body.rating)


@router.get("/info")
async def info(
    x_dify_api_key: str | None = Header(None),
    x_dify_base_url: str | None = Header(None),
    relay: RequestRelay = Depends(get_relay),
):
    adapter = _workflow(relay, x_dify_api_key, x_dify_base_url, Unauthorized("API key is required"))
    return await adapter.app_info()


@router.get("/parameters")
async def parameters(
    x_dify_api_key: str | None = Header(None),
    x_dify_base_url: str | None = Header(None),
    relay: RequestRelay = Depends(get_relay),
):
    adapter = _workflow(relay, x_dify_api_key, x_dify_base_url, Unauthorized("API key is required"))
    return await adapter.app_parameters()
