"""Gemini generateContent adapter.

With ``alt=sse`` every ``data:`` line carries a full GenerateContentResponse
snapshot for the newest slice of output:

    {
      "candidates": [{"content": {"parts": [{"text": "..."}], "role": "model"},
                      "finishReason": "STOP"}],
      "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 2, "totalTokenCount": 7}
    }
"""
from __future__ import annotations

import json
import time
from typing import Any, AsyncIterable, AsyncIterator

from chatpanels.config.settings import settings
from chatpanels.core.errors import UpstreamError
from chatpanels.providers.base import Provider
from chatpanels.providers.sse import DONE_FRAME, DONE_MARKER, data_payload, delta_frame, encode_frame, iter_lines, usage_dict
from chatpanels.providers.types import CompletionRequest, ModelInfo, ProtocolVariant, ProviderResponse

FINISH_REASONS = {"STOP", "MAX_TOKENS"}


def _first_candidate(data: dict) -> dict:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _first_text(candidate: dict, thought: bool) -> str:
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    for part in parts if isinstance(parts, list) else []:
        if not isinstance(part, dict) or not isinstance(part.get("text"), str):
            continue
        if bool(part.get("thought")) == thought:
            return part["text"]
    return ""


def _usage(data: dict) -> dict[str, int] | None:
    meta = data.get("usageMetadata")
    if not isinstance(meta, dict):
        return None
    return usage_dict(
        meta.get("promptTokenCount") or 0,
        meta.get("candidatesTokenCount") or 0,
        meta.get("totalTokenCount") or 0,
    )


def _synthetic_id() -> str:
    return f"gemini-{int(time.time() * 1000)}"


class GeminiProvider(Provider):
    variant = ProtocolVariant.GEMINI

    def build_body(self, request: CompletionRequest) -> dict[str, Any]:
        # Gemini uses `contents` with user/model roles
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in request.messages
            if m.role != "system"
        ]
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": request.max_tokens or settings.default_max_tokens,
                "temperature": request.temperature if request.temperature is not None else settings.default_temperature,
            },
        }
        if request.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        if request.enable_thinking:
            body["generationConfig"]["thinkingConfig"] = {"includeThoughts": True}
        return body

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        body = self.build_body(request)
        if not request.stream:
            data = await self._request_json(
                "POST",
                f"{self.base_url}/models/{request.model}:generateContent",
                params={"key": self.api_key},
                json=body,
            )
            return ProviderResponse(completion=self._rewrap(data))

        response = await self._open(
            "POST",
            f"{self.base_url}/models/{request.model}:streamGenerateContent",
            params={"key": self.api_key, "alt": "sse"},
            json=body,
        )
        return ProviderResponse(
            stream=self._stream(response, self.translate_stream(response.aiter_bytes()))
        )

    def _rewrap(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise UpstreamError(f"{self.display_name} returned an unexpected payload")
        candidate = _first_candidate(data)
        message: dict[str, Any] = {"role": "assistant", "content": _first_text(candidate, thought=False)}
        reasoning = _first_text(candidate, thought=True)
        if reasoning:
            message["reasoning_content"] = reasoning
        return {
            "id": _synthetic_id(),
            "object": "chat.completion",
            "choices": [{"message": message, "finish_reason": "stop"}],
            "usage": _usage(data),
        }

    async def translate_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        synthetic_id = _synthetic_id()
        finished = False

        async for line in iter_lines(chunks):
            data = data_payload(line)
            if not data or data == DONE_MARKER:
                continue
            try:
                parsed = json.loads(data)
            except ValueError:
                continue
            if not isinstance(parsed, dict):
                continue

            if isinstance(parsed.get("error"), dict):
                message = parsed["error"].get("message") or "Gemini stream error"
                yield encode_frame({"error": {"message": message}})
                continue

            candidate = _first_candidate(parsed)
            text = _first_text(candidate, thought=False)
            thought = _first_text(candidate, thought=True)
            usage = _usage(parsed)
            if text or thought or usage:
                yield delta_frame(synthetic_id, content=text, reasoning=thought, usage=usage)

            if candidate.get("finishReason") in FINISH_REASONS and not finished:
                finished = True
                yield DONE_FRAME

        # Truncated connections still end with a terminal marker
        if not finished:
            yield DONE_FRAME

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request_json("GET", f"{self.base_url}/models", params={"key": self.api_key})
        models = []
        for model_data in data.get("models") or [] if isinstance(data, dict) else []:
            if not isinstance(model_data, dict) or not isinstance(model_data.get("name"), str):
                continue
            model_id = model_data["name"].removeprefix("models/")
            if not model_id.startswith("gemini-") or "vision" in model_id:
                continue
            models.append(
                ModelInfo(
                    id=model_id,
                    label=model_data.get("displayName") or model_id,
                    description=model_data.get("description") or "Gemini Model",
                )
            )
        models.sort(key=lambda m: m.id, reverse=True)
        return models
