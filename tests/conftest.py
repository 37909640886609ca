import asyncio
import json
import os

# Keep test runs independent of a developer's .env
os.environ.setdefault("PROVIDER_CREDENTIALS", "{}")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest
from fastapi.testclient import TestClient

from chatpanels.api.deps import get_relay
from chatpanels.main import app
from chatpanels.services.relay import RequestRelay


def sse(*payloads) -> bytes:
    """Encode payloads as ``data:`` frames; strings are sent verbatim."""
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        frames.append(f"data: {data}\n\n")
    return "".join(frames).encode("utf-8")


def chunk(content: str = "", reasoning: str | None = None, **extra) -> dict:
    delta = {"content": content}
    if reasoning is not None:
        delta["reasoning_content"] = reasoning
    return {"choices": [{"delta": delta}], **extra}


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered in the given pieces, optionally failing at the end."""

    def __init__(self, chunks, error: Exception | None = None):
        self.chunks = list(chunks)
        self.error = error

    async def __aiter__(self):
        for piece in self.chunks:
            yield piece
        if self.error is not None:
            raise self.error


class Upstream:
    """Canned vendor endpoints behind an httpx.MockTransport."""

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, response) -> None:
        self.routes[(method.upper(), path)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"error": {"message": f"no route for {request.url.path}"}})
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)


def event_stream(body: bytes | list[bytes], status_code: int = 200, error: Exception | None = None) -> httpx.Response:
    chunks = body if isinstance(body, list) else [body]
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        stream=ChunkStream(chunks, error=error),
    )


class ScriptedStream:
    """Relay stream for engine tests. ``asyncio.Event`` items pause delivery until set."""

    def __init__(self, items):
        self.items = list(items)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.items:
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield item

    async def aclose(self) -> None:
        self.closed = True


class FakeRelay:
    """Relay client double; outcomes are keyed by model name."""

    def __init__(self, outcomes=None, suggestions=None):
        self.outcomes = outcomes or {}
        self.suggestions = suggestions if suggestions is not None else []
        self.calls = []
        self.suggestion_calls = []
        self.closed = False

    async def open_stream(self, provider_id, credentials, request):
        self.calls.append((provider_id, credentials, request))
        outcome = self.outcomes[request.model]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def suggested_questions(self, provider_id, credentials, message_id):
        self.suggestion_calls.append((provider_id, message_id))
        if isinstance(self.suggestions, Exception):
            raise self.suggestions
        return self.suggestions

    async def aclose(self):
        self.closed = True


async def settle_loop(condition, attempts: int = 200) -> None:
    """Run the event loop until ``condition()`` holds."""
    for _ in range(attempts):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.fixture
def upstream():
    return Upstream()


@pytest.fixture
def client(upstream):
    """Test client whose relay talks to the canned upstream."""
    relay = RequestRelay(client=upstream.client())
    app.dependency_overrides[get_relay] = lambda: relay
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
