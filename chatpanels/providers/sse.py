"""Line-level helpers for event-stream bodies.

Vendor streams and the normalized stream share the same framing: UTF-8 text,
one record per line, ``data: <payload>`` lines separated by blank lines.
"""
from __future__ import annotations

import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator

DONE_MARKER = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield complete lines from a byte stream, then the trailing partial line once."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += decoder.decode(chunk)
        lines = buffer.split("\n")
        # Keep the last potentially incomplete line in the buffer
        buffer = lines.pop()
        for line in lines:
            yield line
    buffer += decoder.decode(b"", final=True)
    if buffer:
        yield buffer


def data_payload(line: str) -> str | None:
    """Return the payload of a ``data:`` line, or None for any other line."""
    trimmed = line.strip()
    if not trimmed.startswith("data:"):
        return None
    return trimmed[5:].strip()


def event_name(line: str) -> str | None:
    trimmed = line.strip()
    if not trimmed.startswith("event:"):
        return None
    return trimmed[6:].strip()


def encode_frame(payload: dict[str, Any]) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def delta_frame(
    message_id: str | None,
    content: str = "",
    reasoning: str = "",
    usage: dict[str, int] | None = None,
    **extra: Any,
) -> bytes:
    """Encode one normalized OpenAI-shaped chunk."""
    delta: dict[str, str] = {"content": content}
    if reasoning:
        delta["reasoning_content"] = reasoning
    payload: dict[str, Any] = {"choices": [{"delta": delta}]}
    if message_id:
        payload["id"] = message_id
    if usage is not None:
        payload["usage"] = usage
    payload.update({key: value for key, value in extra.items() if value is not None})
    return encode_frame(payload)


def usage_dict(prompt_tokens: int, completion_tokens: int, total_tokens: int | None = None) -> dict[str, int]:
    if total_tokens is None:
        total_tokens = prompt_tokens + completion_tokens
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": total_tokens,
    }
