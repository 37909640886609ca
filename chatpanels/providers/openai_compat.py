from __future__ import annotations

from typing import Any

from chatpanels.config.settings import settings
from chatpanels.core.errors import UpstreamError
from chatpanels.providers.base import Provider
from chatpanels.providers.types import CompletionRequest, ModelInfo, ProtocolVariant, ProviderResponse


class OpenAICompatProvider(Provider):
    """Chat-completions vendors whose stream already has the normalized frame shape."""

    variant = ProtocolVariant.OPENAI_COMPATIBLE

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.credentials.organization_id:
            headers["OpenAI-Organization"] = self.credentials.organization_id
        return headers

    def build_body(self, request: CompletionRequest) -> dict[str, Any]:
        messages = [{"role": m.role, "content": m.content} for m in request.messages]
        if request.system_prompt:
            messages.insert(0, {"role": "system", "content": request.system_prompt})

        body: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "stream": request.stream,
            "temperature": request.temperature if request.temperature is not None else settings.default_temperature,
            "max_tokens": request.max_tokens or settings.default_max_tokens,
        }

        # Only thinking-capable models accept these
        if request.enable_thinking and "thinking" in request.model.lower():
            body["enable_thinking"] = True
            body["thinking_budget"] = settings.thinking_budget_tokens
        return body

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        url = f"{self.base_url}/chat/completions"
        body = self.build_body(request)
        if not request.stream:
            data = await self._request_json("POST", url, json=body)
            if not isinstance(data, dict):
                raise UpstreamError(f"{self.display_name} returned an unexpected payload")
            return ProviderResponse(completion=data)

        response = await self._open("POST", url, json=body)
        return ProviderResponse(stream=self._stream(response))

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request_json("GET", f"{self.base_url}/models")
        models = []
        for model_data in data.get("data", []) if isinstance(data, dict) else []:
            if not isinstance(model_data, dict) or "id" not in model_data:
                continue
            models.append(
                ModelInfo(
                    id=model_data["id"],
                    label=model_data.get("name") or model_data["id"],
                    description=f"{self.display_name} Model",
                )
            )
        return models
