"""Dify workflow-app adapter.

Dify streams application events rather than chat chunks. Each ``data:`` line
is a JSON object with an ``event`` discriminant; only answer text
(``message``/``agent_message``) and the closing usage report (``message_end``)
matter here. The app-issued ``conversation_id`` rides along on the translated
frames so the caller can continue the same Dify conversation.
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterable, AsyncIterator

from chatpanels.config.settings import settings
from chatpanels.core.errors import ProviderError, UpstreamError
from chatpanels.providers.base import Provider
from chatpanels.providers.sse import DONE_FRAME, DONE_MARKER, data_payload, delta_frame, encode_frame, iter_lines, usage_dict
from chatpanels.providers.types import CompletionRequest, ProtocolVariant, ProviderResponse

ANSWER_EVENTS = {"message", "agent_message"}


def _usage_from_metadata(payload: dict) -> dict[str, int] | None:
    metadata = payload.get("metadata")
    usage = metadata.get("usage") if isinstance(metadata, dict) else None
    if not isinstance(usage, dict):
        return None
    return usage_dict(
        usage.get("prompt_tokens") or 0,
        usage.get("completion_tokens") or 0,
        usage.get("total_tokens") or 0,
    )


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class DifyProvider(Provider):
    variant = ProtocolVariant.WORKFLOW

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def build_query(self, request: CompletionRequest) -> str:
        if request.conversation_id:
            # Dify already holds the history for an ongoing conversation
            for message in reversed(request.messages):
                if message.role == "user":
                    return message.content
            return ""

        query = "".join(f"{m.role.upper()}: {m.content}\n\n" for m in request.messages)
        if request.system_prompt:
            query = f"SYSTEM: {request.system_prompt}\n\n{query}"
        return query.strip()

    def build_body(self, request: CompletionRequest) -> dict[str, Any]:
        body: dict[str, Any] = {
            "inputs": dict(request.workflow_inputs),
            "query": self.build_query(request),
            "response_mode": "streaming" if request.stream else "blocking",
            "user": settings.workflow_user,
            "files": [f.to_dict() for f in request.files],
        }
        if request.conversation_id:
            body["conversation_id"] = request.conversation_id
        return body

    async def complete(self, request: CompletionRequest) -> ProviderResponse:
        url = f"{self.base_url}/chat-messages"
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
        return {
            "id": data.get("message_id"),
            "object": "chat.completion",
            "choices": [
                {
                    "message": {"role": "assistant", "content": data.get("answer") or ""},
                    "finish_reason": "stop",
                }
            ],
            "usage": _usage_from_metadata(data),
            "conversation_id": data.get("conversation_id"),
        }

    async def translate_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        surfaced_conversation: str | None = None

        async for line in iter_lines(chunks):
            data = data_payload(line)
            if not data:
                continue
            if data == DONE_MARKER:
                yield DONE_FRAME
                continue
            try:
                parsed = json.loads(data)
            except ValueError:
                continue
            if not isinstance(parsed, dict):
                continue

            event = parsed.get("event")
            conversation_id = _str_or_none(parsed.get("conversation_id"))
            content = ""
            usage = None

            if event in ANSWER_EVENTS:
                content = parsed.get("answer") if isinstance(parsed.get("answer"), str) else ""
            elif event == "message_end":
                usage = _usage_from_metadata(parsed)
            elif event == "error":
                message = _str_or_none(parsed.get("message")) or "Dify workflow error"
                yield encode_frame({"error": {"message": message, "code": parsed.get("code")}})
                continue

            if content or usage:
                yield delta_frame(
                    _str_or_none(parsed.get("message_id")),
                    content=content,
                    usage=usage,
                    conversation_id=conversation_id,
                )
            elif conversation_id and conversation_id != surfaced_conversation:
                yield delta_frame(None, conversation_id=conversation_id)
            else:
                continue
            if conversation_id:
                surfaced_conversation = conversation_id

    # Workflow extras

    async def upload_file(self, filename: str, content: bytes, content_type: str | None = None) -> dict[str, Any]:
        data = await self._request_json(
            "POST",
            f"{self.base_url}/files/upload",
            headers=self._auth_headers(),
            files={"file": (filename, content, content_type or "application/octet-stream")},
            data={"user": settings.workflow_user},
        )
        if not isinstance(data, dict) or not data.get("id"):
            raise UpstreamError(f"{self.display_name} upload returned no file id")
        return data

    async def suggested_questions(self, message_id: str) -> list[str]:
        data = await self._request_json(
            "GET",
            f"{self.base_url}/messages/{message_id}/suggested",
            headers=self._auth_headers(),
            params={"user": settings.workflow_user},
        )
        items = data.get("data") if isinstance(data, dict) else None
        return [item for item in items or [] if isinstance(item, str)]

    async def send_feedback(self, message_id: str, rating: str | None) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            f"{self.base_url}/messages/{message_id}/feedbacks",
            json={"rating": rating, "user": settings.workflow_user},
        )

    async def app_info(self) -> dict[str, Any]:
        try:
            return await self._request_json("GET", f"{self.base_url}/info", headers=self._auth_headers())
        except ProviderError:
            # Older deployments only expose /site
            site = await self._request_json("GET", f"{self.base_url}/site", headers=self._auth_headers())
            return {"name": site.get("title"), **site} if isinstance(site, dict) else {}

    async def app_parameters(self) -> dict[str, Any]:
        return await self._request_json("GET", f"{self.base_url}/parameters", headers=self._auth_headers())
