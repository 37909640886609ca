"""Wire schemas for the relay boundary (camelCase on the wire)."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatpanels.providers.types import Attachment, ChatMessage, CompletionRequest, ProviderCredentials


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderConfigPayload(WireModel):
    api_key: str = ""
    base_url: str | None = None
    organization_id: str | None = None

    def to_credentials(self) -> ProviderCredentials:
        return ProviderCredentials(
            api_key=self.api_key,
            base_url=self.base_url,
            organization_id=self.organization_id,
        )

    @classmethod
    def from_credentials(cls, credentials: ProviderCredentials) -> "ProviderConfigPayload":
        return cls(
            api_key=credentials.api_key,
            base_url=credentials.base_url,
            organization_id=credentials.organization_id,
        )


class MessagePayload(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class FilePayload(BaseModel):
    type: str
    transfer_method: Literal["remote_url", "local_file"]
    url: str | None = None
    upload_file_id: str | None = None


class ChatRequest(WireModel):
    provider_id: str
    provider_config: ProviderConfigPayload = Field(default_factory=ProviderConfigPayload)
    model: str
    messages: list[MessagePayload] = Field(default_factory=list)
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = True
    enable_thinking: bool = False
    files: list[FilePayload] = Field(default_factory=list)
    workflow_inputs: dict[str, Any] = Field(default_factory=dict)
    conversation_id: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "providerId": "openai",
                    "providerConfig": {"apiKey": "sk-..."},
                    "model": "gpt-4o-mini",
                    "messages": [{"role": "user", "content": "Hello"}],
                    "systemPrompt": "You are a helpful assistant.",
                }
            ]
        },
    )

    def to_completion_request(self) -> CompletionRequest:
        return CompletionRequest(
            model=self.model,
            messages=tuple(ChatMessage(role=m.role, content=m.content) for m in self.messages),
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=self.stream,
            enable_thinking=self.enable_thinking,
            files=tuple(
                Attachment(
                    type=f.type,
                    transfer_method=f.transfer_method,
                    url=f.url,
                    upload_file_id=f.upload_file_id,
                )
                for f in self.files
            ),
            workflow_inputs=dict(self.workflow_inputs),
            conversation_id=self.conversation_id,
        )

    @classmethod
    def build(
        cls,
        provider_id: str,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> "ChatRequest":
        return cls(
            provider_id=provider_id,
            provider_config=ProviderConfigPayload.from_credentials(credentials),
            model=request.model,
            messages=[MessagePayload(role=m.role, content=m.content) for m in request.messages],
            system_prompt=request.system_prompt,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            stream=request.stream,
            enable_thinking=request.enable_thinking,
            files=[FilePayload(**f.to_dict()) for f in request.files],
            workflow_inputs=dict(request.workflow_inputs),
            conversation_id=request.conversation_id,
        )


class ModelsRequest(WireModel):
    provider_id: str
    api_key: str = ""
    base_url: str | None = None


class FeedbackRequest(WireModel):
    message_id: str
    rating: Literal["like", "dislike"] | None = None
    api_key: str
    base_url: str | None = None
