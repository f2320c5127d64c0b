import json
from typing import Any, Dict, List

import httpx
import pytest

from clawproxy.errors import UpstreamError, UpstreamTimeout
from clawproxy.provider.anthropic import AnthropicAdapter

ANTHROPIC_URL = "https://anthropic.test/v1/messages"
HISTORY = [{"role": "user", "content": "what is the eth price today?"}]


def _sse(*events: Dict[str, Any]) -> bytes:
    lines = []
    for event in events:
        lines.append(f"event: {event.get('type', 'message')}")
        lines.append(f"data: {json.dumps(event)}")
        lines.append("")
    return ("\n".join(lines) + "\n").encode("utf-8")


def _text(text: str) -> Dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


def _tool_use(partials: List[str]) -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = [
        {
            "type": "content_block_start",
            "index": 1,
            "content_block": {"type": "tool_use", "id": "toolu_1", "name": "web_search", "input": {}},
        }
    ]
    for partial in partials:
        events.append(
            {
                "type": "content_block_delta",
                "index": 1,
                "delta": {"type": "input_json_delta", "partial_json": partial},
            }
        )
    events.append({"type": "content_block_stop", "index": 1})
    events.append({"type": "message_delta", "delta": {"stop_reason": "tool_use"}})
    return events


class FakeUpstream:
    """
    Scripted upstream: successive POSTs get successive SSE bodies; Brave
    search GETs get `search_response`.
    """

    def __init__(self, *bodies: bytes, search_response: httpx.Response | None = None) -> None:
        self.bodies = list(bodies)
        self.search_response = search_response or httpx.Response(
            200,
            json={
                "web": {
                    "results": [
                        {"title": "ETH price", "url": "https://prices.example/eth", "description": "$3,000"}
                    ]
                }
            },
        )
        self.posts: List[httpx.Request] = []
        self.searches: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.searches.append(request)
            return self.search_response
        self.posts.append(request)
        return httpx.Response(
            200, content=self.bodies.pop(0), headers={"content-type": "text/event-stream"}
        )

    def post_body(self, index: int) -> Dict[str, Any]:
        return json.loads(self.posts[index].content.decode("utf-8"))


async def _collect(adapter, **kwargs) -> List[str]:
    return [chunk async for chunk in adapter.stream("claude-opus-4-20250514", "sk-ant", HISTORY, **kwargs)]


@pytest.mark.asyncio
async def test_streams_text_deltas_and_skips_noise():
    body = _sse(
        {"type": "message_start", "message": {"id": "msg_1"}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        _text("Hel"),
        {"type": "ping"},
        _text("lo"),
        {"type": "message_stop"},
    ) + b"data: {broken\n\n"
    upstream = FakeUpstream(body)

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter)

    assert chunks == ["Hel", "lo"]
    request = upstream.posts[0]
    assert request.headers["x-api-key"] == "sk-ant"
    assert request.headers["anthropic-version"] == "2023-06-01"
    body = upstream.post_body(0)
    assert body["stream"] is True
    assert body["max_tokens"] == 4096
    assert body["messages"] == HISTORY
    assert "tools" not in body


@pytest.mark.asyncio
async def test_web_search_tool_call_continuation():
    first = _sse(_text("Let me check. "), *_tool_use(['{"que', 'ry": "eth price"}']))
    second = _sse(_text("ETH trades near $3,000."))
    upstream = FakeUpstream(first, second)

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter, search_key="brave-key")

    assert chunks[0] == "Let me check. "
    assert 'Searching the web for "eth price"' in chunks[1]
    assert chunks[2] == "ETH trades near $3,000."

    assert len(upstream.searches) == 1
    assert upstream.searches[0].headers["X-Subscription-Token"] == "brave-key"
    assert upstream.searches[0].url.params["q"] == "eth price"

    assert upstream.post_body(0)["tools"][0]["name"] == "web_search"
    follow_up = upstream.post_body(1)["messages"]
    assert follow_up[0] == HISTORY[0]
    assert follow_up[1] == {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Let me check. "},
            {"type": "tool_use", "id": "toolu_1", "name": "web_search", "input": {"query": "eth price"}},
        ],
    }
    tool_result = follow_up[2]["content"][0]
    assert follow_up[2]["role"] == "user"
    assert tool_result["type"] == "tool_result"
    assert tool_result["tool_use_id"] == "toolu_1"
    assert tool_result["content"].startswith("1. ETH price\n   https://prices.example/eth")


@pytest.mark.asyncio
async def test_malformed_tool_arguments_yield_marker_without_search():
    upstream = FakeUpstream(_sse(_text("Searching..."), *_tool_use(['{"query": '])))

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter, search_key="brave-key")

    assert chunks[0] == "Searching..."
    assert "⚠️" in chunks[-1]
    assert upstream.searches == []
    assert len(upstream.posts) == 1


@pytest.mark.asyncio
async def test_search_failure_yields_marker_and_completes():
    upstream = FakeUpstream(
        _sse(*_tool_use(['{"query": "eth"}'])),
        search_response=httpx.Response(503, text="unavailable"),
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter, search_key="brave-key")

    assert 'Searching the web for "eth"' in chunks[0]
    assert "⚠️" in chunks[1]
    assert "Brave Search API error (503)" in chunks[1]
    assert len(upstream.posts) == 1


@pytest.mark.asyncio
async def test_tool_call_ignored_without_search_key():
    upstream = FakeUpstream(_sse(_text("No tools here."), *_tool_use(['{"query": "x"}'])))

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter)

    assert chunks == ["No tools here."]
    assert len(upstream.posts) == 1


@pytest.mark.asyncio
async def test_http_error_raises_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "invalid x-api-key"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        with pytest.raises(UpstreamError) as exc_info:
            await _collect(adapter)

    assert exc_info.value.status_code == 401
    assert exc_info.value.message.startswith("Anthropic API error (401): ")
    assert "invalid x-api-key" in exc_info.value.message


@pytest.mark.asyncio
async def test_timeout_raises_upstream_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL, timeout=5)
        with pytest.raises(UpstreamTimeout) as exc_info:
            await _collect(adapter)

    assert "timed out after 5s" in exc_info.value.message


@pytest.mark.asyncio
async def test_malformed_search_payload_yields_marker_and_completes():
    upstream = FakeUpstream(
        _sse(_text("Checking. "), *_tool_use(['{"query": "eth"}'])),
        search_response=httpx.Response(200, json={"web": {"results": [{"title": 42}]}}),
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        adapter = AnthropicAdapter(client, ANTHROPIC_URL)
        chunks = await _collect(adapter, search_key="brave-key")

    assert chunks[0] == "Checking. "
    assert 'Searching the web for "eth"' in chunks[1]
    assert "⚠️" in chunks[2]
    assert "unexpected response" in chunks[2]
    assert len(chunks) == 3
    assert len(upstream.posts) == 1
