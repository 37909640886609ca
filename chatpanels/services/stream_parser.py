"""Normalized-delta stream parser.

Single point of truth for what a delta line looks like. Accepts OpenAI-style
vendor frames as they arrive and frames translated by the other adapters:

    data: {"id": "...", "choices": [{"delta": {"content": "...", "reasoning_content": "..."}}],
           "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}}
    data: [DONE]
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

from chatpanels.core.errors import UpstreamError
from chatpanels.providers.sse import DONE_MARKER, data_payload, iter_lines
from chatpanels.providers.types import (
    ContentFragment,
    Delta,
    IdentifierAssigned,
    ReasoningFragment,
    Terminal,
    UsageSnapshot,
)

logger = logging.getLogger("chatpanels")

REASONING_FIELDS = ("thinking", "reasoning_content", "reasoning")


def _count(value: Any) -> int:
    return value if isinstance(value, int) else 0


class DeltaStreamParser:
    """Lazy, single-use sequence of deltas over a byte stream.

    ``Terminal`` is yielded once, after the underlying stream ends normally. A
    stream that raises ends without it. ``conversation_id`` carries the last
    workflow conversation id seen on any frame; it is not part of the delta
    sequence.
    """

    def __init__(self, chunks: AsyncIterable[bytes]):
        self._chunks = chunks
        self._started = False
        self._message_id: str | None = None
        self.conversation_id: str | None = None
        self.saw_done = False

    def __aiter__(self) -> AsyncIterator[Delta]:
        if self._started:
            raise RuntimeError("DeltaStreamParser can only be iterated once")
        self._started = True
        return self._deltas()

    async def _deltas(self) -> AsyncIterator[Delta]:
        async for line in iter_lines(self._chunks):
            for delta in self.parse_line(line):
                yield delta
        yield Terminal()

    def parse_line(self, line: str) -> list[Delta]:
        data = data_payload(line)
        if not data:
            return []
        if data == DONE_MARKER:
            self.saw_done = True
            return []

        try:
            frame = json.loads(data)
        except ValueError:
            logger.debug("Skipped malformed stream frame", extra={"frame": data[:100]})
            return []
        if not isinstance(frame, dict):
            return []

        error = frame.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise UpstreamError(str(message or "Provider stream reported an error"))

        if isinstance(frame.get("conversation_id"), str) and frame["conversation_id"]:
            self.conversation_id = frame["conversation_id"]

        deltas: list[Delta] = []

        message_id = frame.get("id")
        if isinstance(message_id, str) and message_id and message_id != self._message_id:
            self._message_id = message_id
            deltas.append(IdentifierAssigned(message_id))

        choices = frame.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices else None
        delta = choice.get("delta") if isinstance(choice, dict) else None
        if isinstance(delta, dict):
            content = delta.get("content")
            if isinstance(content, str) and content:
                deltas.append(ContentFragment(content))
            for field in REASONING_FIELDS:
                reasoning = delta.get(field)
                if isinstance(reasoning, str):
                    if reasoning:
                        deltas.append(ReasoningFragment(reasoning))
                    break

        usage = frame.get("usage")
        if isinstance(usage, dict):
            deltas.append(
                UsageSnapshot(
                    prompt_tokens=_count(usage.get("prompt_tokens")),
                    completion_tokens=_count(usage.get("completion_tokens")),
                    total_tokens=_count(usage.get("total_tokens")),
                )
            )
        return deltas
