"""Anthropic Messages API adapter.

Anthropic streams typed events, each ``data:`` line preceded by an ``event:``
line naming its type:

    message_start        ->  message.id, message.usage.input_tokens
    content_block_delta  ->  delta.text (text_delta) or delta.thinking (thinking_delta)
    message_delta        ->  usage.output_tokens
    message_stop         ->  end of message

The adapter rewrites them as normalized chat-completion chunks.
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterable, AsyncIterator

from chatpanels.config.settings import settings
from chatpanels.core.errors import UpstreamError
from chatpanels.providers.base import Provider
from chatpanels.providers.sse import (
    DONE_FRAME,
    DONE_MARKER,
    data_payload,
    delta_frame,
    encode_frame,
    event_name,
    iter_lines,
    usage_dict,
)
from chatpanels.providers.types import CompletionRequest, ModelInfo, ProtocolVariant, ProviderResponse

ANTHROPIC_VERSION = "2023-06-01"


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _int(value: Any) -> int:
    return value if isinstance(value, int) else 0


class AnthropicProvider(Provider):
    variant = ProtocolVariant.ANTHROPIC

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(self, request: CompletionRequest) -> dict[str, Any]:
        # System prompt is a top-level field, not a message
        messages = [
            {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]
        max_tokens = request.max_tokens or settings.default_max_tokens
        body: dict[str, Any] = {
            "model": request.model,
            "max_tokens": max_tokens,
            "messages": messages,
            "stream": request.stream,
        }
        if request.system_prompt:
            body["system"] = request.system_prompt

        if request.enable_thinking:
            budget = settings.thinking_budget_tokens
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
            body["max_tokens"] = max(max_tokens, budget + 1)
        elif request.temperature is not None:
            body["temperature"] = request.temperature
        return body

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        url = f"{self.base_url}/messages"
        body = self.build_body(request)
        if not request.stream:
            data = await self._request_json("POST", url, json=body)
            return ProviderResponse(completion=self._rewrap(data))

        response = await self._open("POST", url, json=body)
        return ProviderResponse(
            stream=self._stream(response, self.translate_stream(response.aiter_bytes()))
        )

    def _rewrap(self, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise UpstreamError(f"{self.display_name} returned an unexpected payload")
        text_parts = []
        thinking_parts = []
        for block in data.get("content") or []:
            block = _dict(block)
            if isinstance(block.get("text"), str):
                text_parts.append(block["text"])
            elif isinstance(block.get("thinking"), str):
                thinking_parts.append(block["thinking"])

        message: dict[str, Any] = {"role": "assistant", "content": "".join(text_parts)}
        if thinking_parts:
            message["reasoning_content"] = "".join(thinking_parts)

        usage = None
        if isinstance(data.get("usage"), dict):
            usage = usage_dict(_int(data["usage"].get("input_tokens")), _int(data["usage"].get("output_tokens")))

        return {
            "id": data.get("id"),
            "object": "chat.completion",
            "choices": [{"message": message, "finish_reason": data.get("stop_reason")}],
            "usage": usage,
        }

    async def translate_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        message_id = ""
        input_tokens = 0
        event_type = ""

        async for line in iter_lines(chunks):
            name = event_name(line)
            if name is not None:
                event_type = name
                continue

            data = data_payload(line)
            if not data or data == DONE_MARKER:
                continue
            try:
                parsed = json.loads(data)
            except ValueError:
                continue
            if not isinstance(parsed, dict):
                continue

            kind = event_type or parsed.get("type", "")

            if kind == "message_start":
                message = _dict(parsed.get("message"))
                message_id = message.get("id") if isinstance(message.get("id"), str) else ""
                input_tokens = _int(_dict(message.get("usage")).get("input_tokens"))
                if message_id:
                    yield delta_frame(message_id)

            elif kind == "content_block_delta":
                delta = _dict(parsed.get("delta"))
                text = delta.get("text")
                thinking = delta.get("thinking")
                if isinstance(text, str) and text:
                    yield delta_frame(message_id, content=text)
                elif isinstance(thinking, str) and thinking:
                    yield delta_frame(message_id, reasoning=thinking)

            elif kind == "message_delta":
                output_tokens = _int(_dict(parsed.get("usage")).get("output_tokens"))
                if output_tokens > 0:
                    yield delta_frame(message_id, usage=usage_dict(input_tokens, output_tokens))

            elif kind == "message_stop":
                yield DONE_FRAME

            elif kind == "error":
                message = _dict(parsed.get("error")).get("message") or "Anthropic stream error"
                yield encode_frame({"error": {"message": message}})

    async def list_models(self) -> list[ModelInfo]:
        data = await self._request_json("GET", f"{self.base_url}/models")
        models = []
        for model_data in _dict(data).get("data") or []:
            model_data = _dict(model_data)
            if model_data.get("type") != "model" or not model_data.get("id"):
                continue
            models.append(
                ModelInfo(
                    id=model_data["id"],
                    label=model_data.get("display_name") or model_data["id"],
                    description="Anthropic Model",
                )
            )
        return models
