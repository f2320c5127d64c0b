import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from clawproxy.errors import UpstreamError, UpstreamTimeout
from clawproxy.provider.openai_compat import OpenAICompatAdapter

OPENAI_URL = "https://openai.test/v1/chat/completions"
HISTORY = [
    {"role": "user", "content": "hello"},
    {"role": "assistant", "content": "Hi! How can I help?"},
    {"role": "user", "content": "what happened in the news today?"},
]


def _chunk(
    content: Optional[str] = None,
    *,
    tool_call: Optional[Dict[str, Any]] = None,
    finish_reason: Optional[str] = None,
) -> Dict[str, Any]:
    delta: Dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_call is not None:
        delta["tool_calls"] = [dict(index=0, **tool_call)]
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def _sse(*chunks: Dict[str, Any]) -> bytes:
    body = "".join(f"data: {json.dumps(c)}\n\n" for c in chunks) + "data: [DONE]\n\n"
    return body.encode("utf-8")


class FakeUpstream:
    def __init__(self, *bodies: bytes) -> None:
        self.bodies = list(bodies)
        self.posts: List[httpx.Request] = []
        self.searches: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.searches.append(request)
            return httpx.Response(
                200,
                json={"web": {"results": [{"title": "Headline", "url": "https://news.example", "description": "story"}]}},
            )
        self.posts.append(request)
        return httpx.Response(200, content=self.bodies.pop(0), headers={"content-type": "text/event-stream"})

    def post_body(self, index: int) -> Dict[str, Any]:
        return json.loads(self.posts[index].content.decode("utf-8"))


async def _collect(adapter, **kwargs) -> List[str]:
    return [chunk async for chunk in adapter.stream("gpt-4o", "sk-x", HISTORY, **kwargs)]


@pytest.mark.asyncio
async def test_streams_content_deltas():
    upstream = FakeUpstream(
        _sse(_chunk(""), _chunk("Hello"), _chunk(", world"), _chunk(finish_reason="stop"))
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        chunks = await _collect(OpenAICompatAdapter(client, OPENAI_URL))

    assert chunks == ["Hello", ", world"]
    assert upstream.posts[0].headers["Authorization"] == "Bearer sk-x"
    body = upstream.post_body(0)
    assert body == {"model": "gpt-4o", "messages": HISTORY, "stream": True}


@pytest.mark.asyncio
async def test_tool_call_fragments_and_continuation():
    first = _sse(
        _chunk(tool_call={"id": "call_1", "type": "function", "function": {"name": "web_search", "arguments": ""}}),
        _chunk(tool_call={"function": {"arguments": '{"query":'}}),
        _chunk(tool_call={"function": {"arguments": ' "news today"}'}}),
        _chunk(finish_reason="tool_calls"),
        # Anything after finish_reason=tool_calls is not part of this round.
        _chunk("ignored"),
    )
    second = _sse(_chunk("Top story: "), _chunk("markets rally."))
    upstream = FakeUpstream(first, second)

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        chunks = await _collect(OpenAICompatAdapter(client, OPENAI_URL), search_key="brave-key")

    assert "ignored" not in chunks
    assert 'Searching the web for "news today"' in chunks[0]
    assert chunks[1:] == ["Top story: ", "markets rally."]

    assert upstream.post_body(0)["tools"][0]["function"]["name"] == "web_search"
    follow_up = upstream.post_body(1)["messages"]
    assert follow_up[:3] == HISTORY
    assert follow_up[3] == {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {
                "id": "call_1",
                "type": "function",
                "function": {"name": "web_search", "arguments": '{"query": "news today"}'},
            }
        ],
    }
    assert follow_up[4]["role"] == "tool"
    assert follow_up[4]["tool_call_id"] == "call_1"
    assert follow_up[4]["content"] == "1. Headline\n   https://news.example\n   story"


@pytest.mark.asyncio
async def test_second_round_tool_calls_are_not_executed():
    first = _sse(
        _chunk(tool_call={"id": "call_1", "function": {"name": "web_search", "arguments": '{"query": "a"}'}}),
        _chunk(finish_reason="tool_calls"),
    )
    second = _sse(
        _chunk("Answer."),
        _chunk(tool_call={"id": "call_2", "function": {"name": "web_search", "arguments": '{"query": "b"}'}}),
        _chunk(finish_reason="tool_calls"),
    )
    upstream = FakeUpstream(first, second)

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        chunks = await _collect(OpenAICompatAdapter(client, OPENAI_URL), search_key="brave-key")

    assert chunks[-1] == "Answer."
    assert len(upstream.searches) == 1
    assert len(upstream.posts) == 2


@pytest.mark.asyncio
async def test_malformed_arguments_marker():
    upstream = FakeUpstream(
        _sse(
            _chunk("Let me look that up."),
            _chunk(tool_call={"id": "call_1", "function": {"name": "web_search", "arguments": "{query: oops"}}),
            _chunk(finish_reason="tool_calls"),
        )
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        chunks = await _collect(OpenAICompatAdapter(client, OPENAI_URL), search_key="brave-key")

    assert chunks[0] == "Let me look that up."
    assert "⚠️" in chunks[1]
    assert len(chunks) == 2
    assert upstream.searches == []


@pytest.mark.asyncio
async def test_error_label_follows_vendor():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="rate limited")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatAdapter(client, "https://api.moonshot.test/v1/chat/completions", name="kimi", label="Kimi")
        with pytest.raises(UpstreamError) as exc_info:
            await _collect(adapter)

    assert adapter.name == "kimi"
    assert exc_info.value.message == "Kimi API error (429): rate limited"
    assert exc_info.value.text == "rate limited"


@pytest.mark.asyncio
async def test_transport_error_is_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamError) as exc_info:
            await _collect(OpenAICompatAdapter(client, OPENAI_URL))

    assert exc_info.value.message.startswith("OpenAI request failed")


@pytest.mark.asyncio
async def test_keepalive_only_stream_hits_round_deadline():
    async def keepalives():
        for _ in range(1000):
            yield b": keep-alive\n\n"
            await asyncio.sleep(0.01)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=keepalives(), headers={"content-type": "text/event-stream"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAICompatAdapter(client, OPENAI_URL, timeout=0.2)
        with pytest.raises(UpstreamTimeout) as exc_info:
            await _collect(adapter)

    assert exc_info.value.message == "OpenAI request timed out after 0.2s"
