import asyncio
import json

import httpx
import pytest

from conftest import Upstream, chunk, event_stream, sse
from chatpanels.api.deps import get_relay
from chatpanels.core.errors import BadRequest, NotFound, ProviderError, UpstreamError
from chatpanels.main import app
from chatpanels.providers.types import ChatMessage, CompletionRequest, ProviderCredentials
from chatpanels.services.dispatch import DispatchEngine, TargetConfiguration
from chatpanels.services.relay import RequestRelay
from chatpanels.services.relay_client import HttpRelayClient, LocalRelayClient
from chatpanels.services.stream_parser import DeltaStreamParser
from chatpanels.services.transcript import TargetState

HELLO = CompletionRequest(model="gpt-4o", messages=(ChatMessage("user", "Hello"),), system_prompt="Be brief.")


@pytest.mark.asyncio
async def test_relay_validates_before_calling_vendor(upstream: Upstream):
    relay = RequestRelay(client=upstream.client())

    with pytest.raises(NotFound):
        await relay.relay("nope", ProviderCredentials(api_key="k"), HELLO)
    with pytest.raises(BadRequest, match="API key is required"):
        await relay.relay("openai", ProviderCredentials(api_key="  "), HELLO)
    with pytest.raises(BadRequest, match="Messages are required"):
        await relay.relay("openai", ProviderCredentials(api_key="k"), CompletionRequest(model="gpt-4o", messages=()))

    assert upstream.requests == []


@pytest.mark.asyncio
async def test_http_client_posts_camel_case_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return event_stream(sse(chunk("Hi"), "[DONE]"))

    client = HttpRelayClient("http://relay.local/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    stream = await client.open_stream("openai", ProviderCredentials(api_key="sk", organization_id="org"), HELLO)
    deltas = [delta async for delta in DeltaStreamParser(stream)]

    assert len(deltas) == 2
    assert str(seen[0].url) == "http://relay.local/api/chat"
    body = json.loads(seen[0].content)
    assert body["providerId"] == "openai"
    assert body["providerConfig"] == {"apiKey": "sk", "organizationId": "org"}
    assert body["systemPrompt"] == "Be brief."
    assert body["messages"] == [{"role": "user", "content": "Hello"}]
    assert "conversationId" not in body


@pytest.mark.asyncio
async def test_http_client_raises_relay_error_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "Invalid API key", "code": "PROVIDER_ERROR"})

    client = HttpRelayClient("http://relay.local", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    with pytest.raises(ProviderError) as exc_info:
        await client.open_stream("openai", ProviderCredentials(api_key="bad"), HELLO)

    assert exc_info.value.status_code == 401
    assert exc_info.value.message == "Invalid API key"


@pytest.mark.asyncio
async def test_http_client_suggested_questions_uses_workflow_headers():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"data": ["Why?", 3]})

    client = HttpRelayClient("http://relay.local", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    questions = await client.suggested_questions(
        "dify", ProviderCredentials(api_key="app-key", base_url="https://dify.example/v1"), "msg-1"
    )

    assert questions == ["Why?"]
    assert seen[0].url.path == "/api/dify/suggested"
    assert seen[0].url.params["message_id"] == "msg-1"
    assert seen[0].headers["x-dify-api-key"] == "app-key"
    assert seen[0].headers["x-dify-base-url"] == "https://dify.example/v1"


@pytest.mark.asyncio
async def test_local_client_rejects_non_stream_response(upstream: Upstream):
    upstream.add("POST", "/v1/chat/completions", httpx.Response(200, json={"choices": []}))
    client = LocalRelayClient(RequestRelay(client=upstream.client()))

    with pytest.raises(UpstreamError):
        await client.open_stream(
            "openai",
            ProviderCredentials(api_key="k"),
            CompletionRequest(model="gpt-4o", messages=(ChatMessage("user", "x"),), stream=False),
        )


@pytest.mark.asyncio
async def test_engine_end_to_end_through_local_relay(upstream: Upstream):
    upstream.add("POST", "/v1/chat/completions", event_stream(sse(chunk("from openai", id="c1"), "[DONE]")))
    upstream.add(
        "POST",
        "/v1/chat-messages",
        event_stream(
            sse(
                {"event": "message", "answer": "from dify", "message_id": "msg-1", "conversation_id": "conv-1"},
                {"event": "message_end", "message_id": "msg-1", "conversation_id": "conv-1"},
            )
        ),
    )
    upstream.add("GET", "/v1/messages/msg-1/suggested", httpx.Response(200, json={"data": ["Next?"]}))
    engine = DispatchEngine(LocalRelayClient(RequestRelay(client=upstream.client())), shared_credentials={})

    result = await engine.send(
        "Hello",
        {
            "left": TargetConfiguration("openai", "gpt-4o", ProviderCredentials(api_key="sk")),
            "right": TargetConfiguration("dify", "dify-default", ProviderCredentials(api_key="app")),
        },
    )

    assert result["left"].last_turn.content == "from openai"
    assert result["right"].last_turn.content == "from dify"
    assert result["right"].last_turn.suggestions == ["Next?"]
    assert result["right"].conversation_id == "conv-1"


@pytest.mark.asyncio
async def test_engine_end_to_end_through_http_relay(upstream: Upstream):
    upstream.add("POST", "/v1/chat/completions", event_stream(sse(chunk("Hel"), chunk("lo"), "[DONE]")))
    upstream.add("POST", "/v1/messages", httpx.Response(529, json={"error": {"message": "Overloaded"}}))
    relay = RequestRelay(client=upstream.client())
    app.dependency_overrides[get_relay] = lambda: relay
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport) as http:
            engine = DispatchEngine(HttpRelayClient("http://relay", client=http), shared_credentials={})
            result = await engine.send(
                "Hello",
                {
                    "a": TargetConfiguration("openai", "gpt-4o", ProviderCredentials(api_key="sk")),
                    "b": TargetConfiguration("anthropic", "claude-sonnet-4-20250514", ProviderCredentials(api_key="k")),
                },
            )
    finally:
        app.dependency_overrides.clear()

    assert result["a"].state is TargetState.SUCCESS
    assert result["a"].last_turn.content == "Hello"
    assert result["b"].state is TargetState.ERROR
    assert result["b"].last_turn.content == "Error: Overloaded"


class GatedBody(httpx.AsyncByteStream):
    """Vendor body that holds everything after the first piece until ``gate`` is set."""

    def __init__(self, first: bytes, rest: bytes):
        self.first = first
        self.rest = rest
        self.gate = asyncio.Event()

    async def __aiter__(self):
        yield self.first
        await self.gate.wait()
        yield self.rest


@pytest.mark.asyncio
async def test_relay_forwards_frames_before_vendor_stream_ends(upstream: Upstream):
    body = GatedBody(sse(chunk("Hel")), sse(chunk("lo"), "[DONE]"))
    upstream.add(
        "POST",
        "/v1/chat/completions",
        httpx.Response(200, headers={"content-type": "text/event-stream"}, stream=body),
    )
    relay = RequestRelay(client=upstream.client())

    response = await relay.relay("openai", ProviderCredentials(api_key="sk"), HELLO)
    pieces = response.stream.__aiter__()
    first = await asyncio.wait_for(pieces.__anext__(), timeout=1)

    assert b'"content": "Hel"' in first
    assert not body.gate.is_set()

    body.gate.set()
    rest = b"".join([piece async for piece in pieces])
    assert rest.endswith(b"data: [DONE]\n\n")


@pytest.mark.asyncio
async def test_default_engine_shares_one_client_and_closes_it(monkeypatch):
    created = []
    original_init = httpx.AsyncClient.__init__

    def recording_init(self, *args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(lambda request: event_stream(sse(chunk("ok"), "[DONE]")))
        original_init(self, *args, **kwargs)
        created.append(self)

    monkeypatch.setattr(httpx.AsyncClient, "__init__", recording_init)
    engine = DispatchEngine(shared_credentials={})
    targets = {
        name: TargetConfiguration("openai", "gpt-4o", ProviderCredentials(api_key="sk"))
        for name in ("a", "b", "c")
    }

    for _ in range(2):
        result = await engine.send("Hello", targets)
        assert [t.last_turn.content for t in result.values()] == ["ok", "ok", "ok"]

    assert len(created) == 1
    assert not created[0].is_closed

    await engine.aclose()

    assert created[0].is_closed


@pytest.mark.asyncio
async def test_engine_leaves_injected_relay_open(upstream: Upstream):
    http = upstream.client()
    local = LocalRelayClient(RequestRelay(client=http))
    engine = DispatchEngine(local, shared_credentials={})

    await engine.aclose()
    await local.aclose()

    assert not http.is_closed
