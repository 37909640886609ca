from __future__ import annotations

from fastapi import APIRouter, Depends

from chatpanels.api.deps import get_relay
from chatpanels.core.errors import BadRequest
from chatpanels.domain.schemas import ModelsRequest
from chatpanels.providers.registry import registry
from chatpanels.providers.types import ProviderCredentials
from chatpanels.services.relay import RequestRelay

router = APIRouter(tags=["providers"])


@router.get("/providers")
async def list_providers():
    return registry.list_providers()


@router.post("/api/models")
async def list_models(body: ModelsRequest, relay: RequestRelay = Depends(get_relay)):
    """Ask the vendor which models the given key can use."""
    if not body.api_key:
        raise BadRequest("Missing providerId or apiKey")
    models = await relay.list_models(
        body.provider_id,
        ProviderCredentials(api_key=body.api_key, base_url=body.base_url),
    )
    return {"models": [{"id": m.id, "name": m.label, "description": m.description} for m in models]}
