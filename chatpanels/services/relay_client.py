"""How the dispatch engine reaches the relay: in-process or over HTTP."""
from __future__ import annotations

from typing import AsyncIterator, Protocol

import httpx

from chatpanels.config.settings import settings
from chatpanels.core.errors import ProviderError, TransportError, UpstreamError
from chatpanels.domain.schemas import ChatRequest
from chatpanels.providers.base import ByteStream, default_timeout, error_message_from_body
from chatpanels.providers.dify import DifyProvider
from chatpanels.providers.types import CompletionRequest, ProviderCredentials
from chatpanels.services.relay import RequestRelay


class RelayStream(Protocol):
    def __aiter__(self) -> AsyncIterator[bytes]:
        ...

    async def aclose(self) -> None:
        ...


class RelayClient(Protocol):
    async def open_stream(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> RelayStream:
        ...

    async def suggested_questions(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        message_id: str,
    ) -> list[str]:
        ...

    async def aclose(self) -> None:
        ...


class LocalRelayClient:
    """Calls the relay in the same process."""

    def __init__(self, relay: RequestRelay | None = None):
        self._owns_relay = relay is None
        self.relay = relay or RequestRelay()

    async def open_stream(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> RelayStream:
        response = await self.relay.relay(provider_id, credentials, request)
        if not response.is_stream:
            raise UpstreamError(f"{provider_id} did not return a stream")
        return response.stream

    async def suggested_questions(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        message_id: str,
    ) -> list[str]:
        adapter = self.relay.adapter_for(provider_id, credentials)
        if not isinstance(adapter, DifyProvider):
            return []
        return await adapter.suggested_questions(message_id)

    async def aclose(self) -> None:
        if self._owns_relay:
            await self.relay.aclose()


class HttpRelayClient:
    """Calls a relay running behind ``POST /api/chat``."""

    def __init__(self, base_url: str | None = None, client: httpx.AsyncClient | None = None):
        self.base_url = (base_url or settings.relay_url).rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=default_timeout())

    async def open_stream(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> RelayStream:
        body = ChatRequest.build(provider_id, credentials, request).model_dump(by_alias=True, exclude_none=True)
        http_request = self._client.build_request("POST", f"{self.base_url}/api/chat", json=body)
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.TimeoutException as exc:
            raise TransportError("Relay request timed out", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Relay is unreachable: {exc}") from exc

        if not response.is_success:
            try:
                raw = await response.aread()
            except httpx.HTTPError:
                raw = b""
            finally:
                await response.aclose()
            message = error_message_from_body(raw) or raw.decode("utf-8", errors="replace").strip()
            raise ProviderError(message or f"API error: {response.status_code}", status_code=response.status_code)

        return ByteStream(response.aiter_bytes(), response, "Relay")

    async def suggested_questions(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        message_id: str,
    ) -> list[str]:
        headers = {"x-dify-api-key": credentials.api_key}
        if credentials.base_url:
            headers["x-dify-base-url"] = credentials.base_url
        response = await self._client.get(
            f"{self.base_url}/api/dify/suggested",
            params={"message_id": message_id},
            headers=headers,
        )
        response.raise_for_status()
        data = response.json()
        return [item for item in data.get("data") or [] if isinstance(item, str)]

    async def aclose(self) -> None:
        await self._client.aclose()
