from __future__ import annotations

from typing import Any, Iterable

import httpx

from chatpanels.core.errors import NotFound, UnsupportedProvider
from chatpanels.providers.anthropic import AnthropicProvider
from chatpanels.providers.base import Provider
from chatpanels.providers.definitions import ALL_PROVIDERS
from chatpanels.providers.dify import DifyProvider
from chatpanels.providers.gemini import GeminiProvider
from chatpanels.providers.openai_compat import OpenAICompatProvider
from chatpanels.providers.types import ProtocolVariant, ProviderCredentials, ProviderDefinition

ADAPTERS: dict[ProtocolVariant, type[Provider]] = {
    ProtocolVariant.OPENAI_COMPATIBLE: OpenAICompatProvider,
    ProtocolVariant.ANTHROPIC: AnthropicProvider,
    ProtocolVariant.GEMINI: GeminiProvider,
    ProtocolVariant.WORKFLOW: DifyProvider,
}


class ProviderRegistry:
    """Static provider catalog and the single construction point for adapters."""

    def __init__(
        self,
        definitions: Iterable[ProviderDefinition] = ALL_PROVIDERS,
        adapters: dict[ProtocolVariant, type[Provider]] | None = None,
    ):
        self._adapters = dict(ADAPTERS if adapters is None else adapters)
        missing = [variant.value for variant in ProtocolVariant if variant not in self._adapters]
        if missing:
            raise RuntimeError(f"No adapter registered for protocol variants: {', '.join(missing)}")

        self._definitions: dict[str, ProviderDefinition] = {}
        for definition in definitions:
            self._definitions[definition.id] = definition

    def lookup(self, provider_id: str) -> ProviderDefinition | None:
        return self._definitions.get(provider_id)

    def get_definition(self, provider_id: str) -> ProviderDefinition:
        definition = self.lookup(provider_id)
        if definition is None:
            raise NotFound(f"Unknown provider: {provider_id}")
        return definition

    def instantiate(
        self,
        provider_id: str,
        credentials: ProviderCredentials,
        client: httpx.AsyncClient | None = None,
    ) -> Provider:
        definition = self.lookup(provider_id)
        if definition is None:
            raise UnsupportedProvider(f"Unsupported provider: {provider_id}")
        adapter_cls = self._adapters[definition.variant]
        return adapter_cls(definition, credentials, client=client)

    def list_providers(self) -> list[dict[str, Any]]:
        return [definition.to_dict() for definition in self._definitions.values()]


# Global registry instance
registry = ProviderRegistry()
