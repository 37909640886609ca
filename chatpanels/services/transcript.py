"""Per-target conversation state and the delta fold."""
from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Protocol

from chatpanels.providers.types import (
    ChatMessage,
    ContentFragment,
    Delta,
    IdentifierAssigned,
    ReasoningFragment,
    Terminal,
    UsageSnapshot,
)


class TargetState(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"

    @property
    def settled(self) -> bool:
        return self in (TargetState.SUCCESS, TargetState.ERROR, TargetState.ABORTED)


@dataclass
class Turn:
    role: str
    content: str = ""
    reasoning: str = ""
    in_progress: bool = False
    usage: UsageSnapshot | None = None
    vendor_message_id: str | None = None
    suggestions: list[str] = field(default_factory=list)
    error: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class TargetTranscript:
    target_id: str
    turns: list[Turn] = field(default_factory=list)
    state: TargetState = TargetState.IDLE
    conversation_id: str | None = None

    @property
    def last_turn(self) -> Turn | None:
        return self.turns[-1] if self.turns else None

    def history(self) -> list[ChatMessage]:
        """Completed turns, in order, as request messages."""
        return [
            ChatMessage(role=turn.role, content=turn.content)
            for turn in self.turns
            if not turn.in_progress and not turn.error and turn.content
        ]

    def reset(self) -> None:
        self.turns.clear()
        self.state = TargetState.IDLE
        self.conversation_id = None


def apply_delta(turn: Turn, delta: Delta) -> None:
    """Fold one delta into an in-progress turn."""
    if isinstance(delta, ContentFragment):
        turn.content += delta.text
    elif isinstance(delta, ReasoningFragment):
        turn.reasoning += delta.text
    elif isinstance(delta, UsageSnapshot):
        # Vendors report cumulative usage; the latest snapshot wins
        turn.usage = delta
    elif isinstance(delta, IdentifierAssigned):
        turn.vendor_message_id = delta.vendor_message_id
    elif isinstance(delta, Terminal):
        turn.in_progress = False


def fold(turn: Turn, deltas: Iterable[Delta]) -> Turn:
    for delta in deltas:
        apply_delta(turn, delta)
    return turn


class TranscriptStore(Protocol):
    """Load/save collaborator for transcripts; saves are keyed by target id."""

    def load_all(self) -> dict[str, TargetTranscript]:
        ...

    def save(self, transcript: TargetTranscript) -> None:
        ...


class InMemoryTranscriptStore:
    def __init__(self):
        self._transcripts: dict[str, TargetTranscript] = {}
        self.save_count = 0

    def load_all(self) -> dict[str, TargetTranscript]:
        return {key: copy.deepcopy(value) for key, value in self._transcripts.items()}

    def save(self, transcript: TargetTranscript) -> None:
        self._transcripts[transcript.target_id] = copy.deepcopy(transcript)
        self.save_count += 1
