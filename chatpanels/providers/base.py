from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from chatpanels.config.settings import settings
from chatpanels.core.errors import ProviderError, TransportError, UpstreamError
from chatpanels.providers.types import (
    CompletionRequest,
    ModelInfo,
    ProtocolVariant,
    ProviderCredentials,
    ProviderDefinition,
    ProviderResponse,
)

logger = logging.getLogger("chatpanels")


def default_timeout() -> httpx.Timeout:
    return httpx.Timeout(
        settings.provider_read_timeout_seconds,
        connect=settings.provider_connect_timeout_seconds,
    )


def error_message_from_body(body: bytes) -> str | None:
    """Pull a vendor error message out of a JSON error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    if isinstance(data.get("message"), str) and data["message"]:
        return data["message"]
    return None


class ByteStream:
    """Async byte iterator that owns the upstream HTTP response.

    The response is closed when iteration ends, fails or when ``aclose`` is
    called, whichever happens first.
    """

    def __init__(self, chunks: AsyncIterator[bytes], response: httpx.Response, source: str):
        self._chunks = chunks
        self._response = response
        self._source = source
        self._closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(f"{self._source} stream interrupted: {exc}") from exc
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()
        await self._response.aclose()


class Provider:
    """Base adapter: one vendor protocol, one set of caller-supplied credentials."""

    variant: ProtocolVariant

    def __init__(
        self,
        definition: ProviderDefinition,
        credentials: ProviderCredentials,
        client: httpx.AsyncClient | None = None,
    ):
        self.definition = definition
        self.credentials = credentials
        self._client = client or httpx.AsyncClient(timeout=default_timeout())

    @property
    def provider_id(self) -> str:
        return self.definition.id

    @property
    def display_name(self) -> str:
        return self.definition.name

    @property
    def base_url(self) -> str:
        url = (self.credentials.base_url or "").strip()
        return (url or self.definition.default_base_url).rstrip("/")

    @property
    def api_key(self) -> str:
        return self.credentials.api_key

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        raise NotImplementedError

    async def list_models(self) -> list[ModelInfo]:
        return list(self.definition.models)

    async def _open(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request and return the still-open response, or raise."""
        request = self._client.build_request(
            method,
            url,
            json=json,
            params=params,
            headers=self._headers() if headers is None else headers,
            files=files,
            data=data,
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            raise TransportError(f"{self.display_name} request timed out", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{self.display_name} is unreachable: {exc}") from exc

        if response.is_success:
            return response
        raise await self._error_from_response(response)

    async def _error_from_response(self, response: httpx.Response) -> ProviderError:
        fallback = f"{self.display_name} API Error: {response.status_code}"
        try:
            body = await response.aread()
        except httpx.HTTPError:
            body = b""
        finally:
            await response.aclose()

        message = error_message_from_body(body)
        if message is None:
            text = body.decode("utf-8", errors="replace").strip()
            message = f"{fallback} - {text}" if text else fallback

        logger.warning(
            "Provider returned an error",
            extra={"provider_id": self.provider_id, "status_code": response.status_code},
        )
        return ProviderError(message, status_code=response.status_code)

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._open(method, url, **kwargs)
        try:
            body = await response.aread()
        except httpx.HTTPError as exc:
            raise TransportError(f"{self.display_name} response interrupted: {exc}") from exc
        finally:
            await response.aclose()
        try:
            return json.loads(body)
        except ValueError as exc:
            raise UpstreamError(f"{self.display_name} returned malformed JSON") from exc

    def _stream(self, response: httpx.Response, chunks: AsyncIterator[bytes] | None = None) -> ByteStream:
        return ByteStream(
            chunks if chunks is not None else response.aiter_bytes(),
            response,
            self.display_name,
        )
