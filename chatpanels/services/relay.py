"""Request relay: validate, pick the adapter, forward the vendor stream untouched."""
from __future__ import annotations

import logging

import httpx

from chatpanels.core.errors import BadRequest, NotFound
from chatpanels.providers.base import Provider, default_timeout
from chatpanels.providers.registry import ProviderRegistry, registry as default_registry
from chatpanels.providers.types import CompletionRequest, ProviderCredentials, ProviderResponse

logger = logging.getLogger("chatpanels")


class RequestRelay:
    def __init__(self, registry: ProviderRegistry | None = None, client: httpx.AsyncClient | None = None):
        self.registry = registry or default_registry
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=default_timeout())

    def adapter_for(self, provider_id: str, credentials: ProviderCredentials) -> Provider:
        """Validate the provider id and key, then build the adapter."""
        if self.registry.lookup(provider_id) is None:
            raise NotFound(f"Unknown provider: {provider_id}")
        if not credentials.has_key:
            raise BadRequest("API key is required")
        return self.registry.instantiate(provider_id, credentials, client=self.client)

    async def relay(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> ProviderResponse:
        adapter = self.adapter_for(provider_id, credentials)
        if not request.messages:
            raise BadRequest("Messages are required")

        logger.info(
            "Relaying completion",
            extra={"provider_id": provider_id, "model": request.model, "stream": request.stream},
        )
        return await adapter.complete(request)

    async def list_models(self, provider_id: str, credentials: ProviderCredentials):
        return await self.adapter_for(provider_id, credentials).list_models()

    async def aclose(self) -> None:
        """Close the HTTP client if this relay created it."""
        if self._owns_client:
            await self.client.aclose()
