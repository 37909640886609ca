from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal, Mapping, Union

if TYPE_CHECKING:
    from chatpanels.providers.base import ByteStream


class ProtocolVariant(str, Enum):
    OPENAI_COMPATIBLE = "openai_compatible"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    WORKFLOW = "workflow"


@dataclass(frozen=True)
class ModelInfo:
    id: str
    label: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ProviderDefinition:
    id: str
    name: str
    variant: ProtocolVariant
    default_base_url: str
    models: tuple[ModelInfo, ...] = ()
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.id,
            "name": self.name,
            "type": self.variant.value,
            "default_base_url": self.default_base_url,
            "description": self.description,
            "models": [
                {"id": m.id, "label": m.label, "description": m.description} for m in self.models
            ],
        }


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str = ""
    base_url: str | None = None
    organization_id: str | None = None

    @property
    def has_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["user", "assistant", "system"]
    content: str


@dataclass(frozen=True)
class Attachment:
    """A file handed to a workflow app, either by URL or by uploaded-file id."""

    type: str
    transfer_method: Literal["remote_url", "local_file"]
    url: str | None = None
    upload_file_id: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"type": self.type, "transfer_method": self.transfer_method}
        if self.url:
            data["url"] = self.url
        if self.upload_file_id:
            data["upload_file_id"] = self.upload_file_id
        return data


@dataclass(frozen=True)
class CompletionRequest:
    model: str
    messages: tuple[ChatMessage, ...]
    system_prompt: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = True
    enable_thinking: bool = False
    files: tuple[Attachment, ...] = ()
    workflow_inputs: Mapping[str, Any] = field(default_factory=dict, hash=False)
    conversation_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "workflow_inputs", MappingProxyType(dict(self.workflow_inputs)))


@dataclass
class ProviderResponse:
    """What an adapter hands back: a live byte stream or a single completion body."""

    stream: ByteStream | None = None
    completion: dict[str, Any] | None = None

    @property
    def is_stream(self) -> bool:
        return self.stream is not None


# Normalized deltas


@dataclass(frozen=True)
class ContentFragment:
    text: str


@dataclass(frozen=True)
class ReasoningFragment:
    text: str


@dataclass(frozen=True)
class UsageSnapshot:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class IdentifierAssigned:
    vendor_message_id: str


@dataclass(frozen=True)
class Terminal:
    pass


Delta = Union[ContentFragment, ReasoningFragment, UsageSnapshot, IdentifierAssigned, Terminal]
