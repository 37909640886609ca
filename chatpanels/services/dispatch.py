"""Multi-target dispatch and stream reconciliation.

One user turn fans out to every target at once. Each target runs through its
own lifecycle, independent of the others:

    idle -> dispatched -> streaming -> success | error | aborted

``dispatch`` appends the user turn and an in-progress assistant turn to every
transcript before it yields to the event loop, then schedules one task per
target. Each task folds its parsed deltas into its own assistant turn. Failures
are converted into ``Error: <message>`` on that target only; cancellation
leaves the partial answer in place.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from chatpanels.config.settings import settings
from chatpanels.core.errors import APIError, BadRequest, ConfigurationError
from chatpanels.core.logging import target_id_var
from chatpanels.providers.registry import ProviderRegistry, registry as default_registry
from chatpanels.providers.types import (
    Attachment,
    ChatMessage,
    CompletionRequest,
    ProtocolVariant,
    ProviderCredentials,
    ProviderDefinition,
    Terminal,
)
from chatpanels.services.generation_manager import GenerationManager
from chatpanels.services.relay_client import LocalRelayClient, RelayClient
from chatpanels.services.stream_parser import DeltaStreamParser
from chatpanels.services.transcript import (
    TargetState,
    TargetTranscript,
    TranscriptStore,
    Turn,
    apply_delta,
)

logger = logging.getLogger("chatpanels")


@dataclass(frozen=True)
class TargetConfiguration:
    provider_id: str
    model: str
    credentials: ProviderCredentials | None = None
    system_prompt: str | None = None
    enable_thinking: bool = False
    temperature: float | None = None
    max_tokens: int | None = None
    workflow_inputs: Mapping[str, Any] = field(default_factory=dict, hash=False)
    conversation_id: str | None = None
    attachments: tuple[Attachment, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "workflow_inputs", MappingProxyType(dict(self.workflow_inputs)))


def credentials_from_settings() -> dict[str, ProviderCredentials]:
    return {
        provider_id: ProviderCredentials(
            api_key=shared.api_key,
            base_url=shared.base_url,
            organization_id=shared.organization_id,
        )
        for provider_id, shared in settings.provider_credentials.items()
    }


class DispatchBatch:
    """Handle on one fanned-out user turn."""

    def __init__(self, target_ids: list[str], tasks: dict[str, asyncio.Task], transcripts: dict[str, TargetTranscript]):
        self.target_ids = target_ids
        self.tasks = tasks
        self._transcripts = transcripts

    async def wait(self) -> dict[str, TargetTranscript]:
        """Wait for every target to settle and return their transcripts."""
        if self.tasks:
            await asyncio.gather(*self.tasks.values(), return_exceptions=True)
        return {target_id: self._transcripts[target_id] for target_id in self.target_ids if target_id in self._transcripts}


class DispatchEngine:
    def __init__(
        self,
        relay: RelayClient | None = None,
        *,
        registry: ProviderRegistry | None = None,
        shared_credentials: Mapping[str, ProviderCredentials] | None = None,
        store: TranscriptStore | None = None,
        persist_every_mutation: bool = False,
        fetch_suggestions: bool = True,
    ):
        self._owns_relay = relay is None
        self.relay = relay or LocalRelayClient()
        self.registry = registry or default_registry
        self.shared_credentials = dict(
            credentials_from_settings() if shared_credentials is None else shared_credentials
        )
        self.store = store
        self.persist_every_mutation = persist_every_mutation
        self.fetch_suggestions = fetch_suggestions
        self.transcripts: dict[str, TargetTranscript] = store.load_all() if store is not None else {}
        self.generations = GenerationManager()

    def transcript(self, target_id: str) -> TargetTranscript:
        if target_id not in self.transcripts:
            self.transcripts[target_id] = TargetTranscript(target_id=target_id)
        return self.transcripts[target_id]

    def resolve_credentials(self, config: TargetConfiguration) -> ProviderCredentials | None:
        """Target override first, then the shared per-provider credentials, field by field."""
        override = config.credentials or ProviderCredentials()
        shared = self.shared_credentials.get(config.provider_id) or ProviderCredentials()
        resolved = ProviderCredentials(
            api_key=override.api_key.strip() or shared.api_key.strip(),
            base_url=override.base_url or shared.base_url,
            organization_id=override.organization_id or shared.organization_id,
        )
        return resolved if resolved.has_key else None

    # Dispatch

    def dispatch(self, text: str, targets: Mapping[str, TargetConfiguration]) -> DispatchBatch:
        """Fan one user turn out to every target. Must be called from a running event loop."""
        if not text.strip():
            raise BadRequest("Message content is required")

        tasks: dict[str, asyncio.Task] = {}
        for target_id, config in targets.items():
            transcript = self.transcript(target_id)
            if transcript.last_turn is not None and transcript.last_turn.in_progress:
                self.cancel(target_id)

            messages = (*transcript.history(), ChatMessage(role="user", content=text))
            turn = Turn(role="assistant", in_progress=True)
            transcript.turns.append(Turn(role="user", content=text))
            transcript.turns.append(turn)
            transcript.state = TargetState.DISPATCHED
            self._persist(transcript)

            try:
                definition, credentials = self._prepare(config)
            except ConfigurationError as exc:
                self._fail(transcript, turn, exc.message)
                continue

            request = self._build_request(config, messages, transcript)
            task = asyncio.create_task(
                self._run_target(transcript, turn, config, definition, credentials, request),
                name=f"dispatch:{target_id}",
            )
            self.generations.start_generation(target_id, config.provider_id, config.model, task)
            tasks[target_id] = task
            logger.info(
                "Target dispatched",
                extra={"target_id": target_id, "provider_id": config.provider_id, "model": config.model},
            )

        return DispatchBatch(list(targets), tasks, self.transcripts)

    async def send(self, text: str, targets: Mapping[str, TargetConfiguration]) -> dict[str, TargetTranscript]:
        return await self.dispatch(text, targets).wait()

    def _prepare(self, config: TargetConfiguration) -> tuple[ProviderDefinition, ProviderCredentials]:
        definition = self.registry.lookup(config.provider_id)
        if definition is None:
            raise ConfigurationError(f"Unknown provider: {config.provider_id}")
        credentials = self.resolve_credentials(config)
        if credentials is None:
            raise ConfigurationError(f"Missing API key for {definition.name}")
        return definition, credentials

    def _build_request(
        self,
        config: TargetConfiguration,
        messages: tuple[ChatMessage, ...],
        transcript: TargetTranscript,
    ) -> CompletionRequest:
        return CompletionRequest(
            model=config.model,
            messages=messages,
            system_prompt=config.system_prompt,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            stream=True,
            enable_thinking=config.enable_thinking,
            files=tuple(config.attachments),
            workflow_inputs=dict(config.workflow_inputs),
            conversation_id=config.conversation_id or transcript.conversation_id,
        )

    async def _run_target(
        self,
        transcript: TargetTranscript,
        turn: Turn,
        config: TargetConfiguration,
        definition: ProviderDefinition,
        credentials: ProviderCredentials,
        request: CompletionRequest,
    ) -> None:
        target_id = transcript.target_id
        task = asyncio.current_task()
        token = target_id_var.set(target_id)
        start_time = time.time()
        try:
            stream = await self.relay.open_stream(config.provider_id, credentials, request)
            parser = DeltaStreamParser(stream)
            try:
                if not self._owns(target_id, task, turn):
                    return
                transcript.state = TargetState.STREAMING
                async for delta in parser:
                    if not self._owns(target_id, task, turn):
                        return
                    if isinstance(delta, Terminal):
                        continue
                    apply_delta(turn, delta)
                    if self.persist_every_mutation:
                        self._persist(transcript)
            finally:
                await stream.aclose()

            if parser.conversation_id:
                transcript.conversation_id = parser.conversation_id
            self._settle(transcript, turn, TargetState.SUCCESS)
            logger.info(
                "Target settled",
                extra={
                    "status": "success",
                    "elapsed_ms": int((time.time() - start_time) * 1000),
                    "usage": turn.usage.to_dict() if turn.usage else None,
                },
            )
        except asyncio.CancelledError:
            self._settle(transcript, turn, TargetState.ABORTED)
            raise
        except APIError as exc:
            self._fail(transcript, turn, exc.message)
        except httpx.HTTPError as exc:
            self._fail(transcript, turn, str(exc) or "Network error")
        except Exception as exc:
            logger.exception("Unexpected dispatch failure")
            self._fail(transcript, turn, str(exc) or exc.__class__.__name__)
        else:
            if (
                self.fetch_suggestions
                and definition.variant == ProtocolVariant.WORKFLOW
                and turn.vendor_message_id
            ):
                await self._attach_suggestions(transcript, turn, config, credentials)
        finally:
            self.generations.cleanup_generation(target_id, task)
            target_id_var.reset(token)

    async def _attach_suggestions(
        self,
        transcript: TargetTranscript,
        turn: Turn,
        config: TargetConfiguration,
        credentials: ProviderCredentials,
    ) -> None:
        try:
            suggestions = await self.relay.suggested_questions(
                config.provider_id, credentials, turn.vendor_message_id
            )
        except Exception:
            logger.warning("Suggested questions lookup failed", exc_info=True)
            return
        turn.suggestions = list(suggestions)
        self._persist(transcript)

    # Cancellation

    def cancel(self, target_id: str) -> bool:
        """Stop one target now. The partial answer stays; no error text is added."""
        canceled = self.generations.cancel_generation(target_id)
        transcript = self.transcripts.get(target_id)
        turn = transcript.last_turn if transcript is not None else None
        if turn is None or not turn.in_progress:
            return canceled

        self._settle(transcript, turn, TargetState.ABORTED)
        logger.info("Target canceled", extra={"target_id": target_id})
        return True

    def cancel_all(self) -> list[str]:
        canceled = [target_id for target_id in list(self.transcripts) if self.cancel(target_id)]
        self.generations.cancel_all()
        return canceled

    def clear(self) -> None:
        """Cancel everything in flight, then reset every transcript."""
        self.cancel_all()
        self.generations.clear()
        for transcript in self.transcripts.values():
            transcript.reset()
            self._persist(transcript)

    async def aclose(self) -> None:
        """Cancel in-flight targets and release the relay this engine created."""
        self.cancel_all()
        if self._owns_relay:
            await self.relay.aclose()

    # Settlement

    def _owns(self, target_id: str, task: asyncio.Task | None, turn: Turn) -> bool:
        return turn.in_progress and not self.generations.is_canceled(target_id, task)

    def _settle(self, transcript: TargetTranscript, turn: Turn, state: TargetState) -> bool:
        if not turn.in_progress:
            return False
        turn.in_progress = False
        if transcript.last_turn is turn:
            transcript.state = state
        self._persist(transcript)
        return True

    def _fail(self, transcript: TargetTranscript, turn: Turn, message: str) -> None:
        if not turn.in_progress:
            return
        turn.content = f"Error: {message}"
        turn.error = True
        self._settle(transcript, turn, TargetState.ERROR)
        logger.warning("Target failed", extra={"target_id": transcript.target_id, "error": message})

    def _persist(self, transcript: TargetTranscript) -> None:
        if self.store is not None:
            self.store.save(transcript)
