"""
Provider adapter capability and the shared SSE streaming flow.

An adapter turns "send this history, stream back text" into one vendor's
HTTP protocol. `stream()` is an async generator:

- it yields text chunks in arrival order (possibly none);
- normal exhaustion means the response is complete, and the
  concatenation of every yielded chunk is the full reply;
- on failure it raises exactly one UpstreamError and yields nothing more.

SSE adapters additionally run the `web_search` tool-call sub-protocol:
when the first stream requested a search and a search key is available,
the adapter runs the search and streams a second request whose history
carries the tool call and its result. Tool failures never end the
response; they are reported as an inline marker chunk instead.
"""

from __future__ import annotations

import time
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import anyio
import httpx

from clawproxy.errors import SearchError, ToolCallError, UpstreamError, UpstreamTimeout
from clawproxy.logging_config import logger
from clawproxy.settings import settings
from clawproxy.tools.web_search import (
    WEB_SEARCH_TOOL_NAME,
    brave_web_search,
    format_search_results,
    parse_tool_query,
)

from .sse import iter_sse_json


def search_notice(query: str) -> str:
    return f'\n\n🔍 Searching the web for "{query}"...\n\n'


def tool_failure_marker(reason: str) -> str:
    return f"\n\n⚠️ Web search failed: {reason}\n\n"


@dataclass
class ToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamRound:
    """
    Parse state of one upstream request.
    """

    text_parts: List[str] = field(default_factory=list)
    tool_call: Optional[ToolCall] = None
    done: bool = False

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


class ProviderAdapter:
    name: str = ""

    def stream(
        self,
        model: str,
        api_key: str,
        messages: List[Dict[str, Any]],
        *,
        search_key: Optional[str] = None,
    ) -> AsyncIterator[str]:
        raise NotImplementedError


class SSEProviderAdapter(ProviderAdapter):
    # Human-readable vendor name used in client-visible error messages.
    label: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        name: Optional[str] = None,
        label: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.url = url
        if name is not None:
            self.name = name
        if label is not None:
            self.label = label
        self.timeout = settings.upstream_timeout if timeout is None else timeout

    # Vendor hooks

    def build_headers(self, api_key: str) -> Dict[str, str]:
        raise NotImplementedError

    def build_body(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def tool_definitions(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def parse_event(self, event: Dict[str, Any], state: StreamRound) -> Optional[str]:
        """
        Consume one decoded SSE payload; return its text delta, if any.
        Tool-call fragments are accumulated into `state.tool_call`.
        """
        raise NotImplementedError

    def tool_turns(
        self, text: str, call: ToolCall, query: str, result_text: str
    ) -> List[Dict[str, Any]]:
        """
        History entries that replay the assistant's tool call and carry
        the tool result, in the vendor's native format.
        """
        raise NotImplementedError

    # Streaming

    async def stream(
        self,
        model: str,
        api_key: str,
        messages: List[Dict[str, Any]],
        *,
        search_key: Optional[str] = None,
    ) -> AsyncIterator[str]:
        tools = self.tool_definitions() if search_key else None

        first = StreamRound()
        async for chunk in self._stream_round(model, api_key, messages, tools, first):
            yield chunk

        call = first.tool_call
        if call is None or not search_key:
            return
        if call.name != WEB_SEARCH_TOOL_NAME:
            logger.info("%s: ignoring unsupported tool call %r", self.name, call.name)
            return

        try:
            query = parse_tool_query(call.arguments)
        except ToolCallError as exc:
            logger.warning(
                "%s: bad web_search arguments %r: %s", self.name, call.arguments, exc
            )
            yield tool_failure_marker(exc.message)
            return

        yield search_notice(query)
        try:
            results = await brave_web_search(
                self.client, query, search_key, count=settings.search_result_count
            )
        except SearchError as exc:
            logger.warning("%s: web search failed: %s", self.name, exc)
            yield tool_failure_marker(exc.message)
            return

        follow_up = list(messages) + self.tool_turns(
            first.text, call, query, format_search_results(results)
        )
        # Tool calls requested by the second round are not executed.
        async for chunk in self._stream_round(
            model, api_key, follow_up, tools, StreamRound()
        ):
            yield chunk

    async def _stream_round(
        self,
        model: str,
        api_key: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
        state: StreamRound,
    ) -> AsyncIterator[str]:
        body = self.build_body(model, messages, tools)
        headers = self.build_headers(api_key)
        deadline = time.monotonic() + self.timeout

        logger.info(
            "%s: opening stream model=%s messages=%d tools=%s",
            self.name,
            model,
            len(messages),
            bool(tools),
        )
        try:
            async with self.client.stream(
                "POST", self.url, headers=headers, json=body, timeout=self.timeout
            ) as resp:
                if resp.status_code >= 400:
                    text = (await resp.aread()).decode("utf-8", errors="ignore")
                    logger.warning(
                        "%s: upstream HTTP error %s for %s; response=%s",
                        self.name,
                        resp.status_code,
                        self.url,
                        text,
                    )
                    raise UpstreamError(
                        f"{self.label} API error ({resp.status_code}): {text}",
                        status_code=resp.status_code,
                        text=text,
                    )

                async with aclosing(iter_sse_json(resp)) as events:
                    while not state.done:
                        # The whole round shares one deadline; keep-alive
                        # lines do not extend it.
                        try:
                            with anyio.fail_after(max(deadline - time.monotonic(), 0)):
                                event = await events.__anext__()
                        except StopAsyncIteration:
                            break
                        except TimeoutError as exc:
                            raise UpstreamTimeout(
                                f"{self.label} request timed out after {self.timeout:g}s"
                            ) from exc
                        chunk = self.parse_event(event, state)
                        if chunk:
                            state.text_parts.append(chunk)
                            yield chunk
        except httpx.TimeoutException as exc:
            logger.warning("%s: upstream timeout for %s: %s", self.name, self.url, exc)
            raise UpstreamTimeout(
                f"{self.label} request timed out after {self.timeout:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("%s: upstream transport error for %s: %s", self.name, self.url, exc)
            raise UpstreamError(f"{self.label} request failed: {exc}") from exc

        logger.info(
            "%s: stream finished chars=%d tool_call=%s",
            self.name,
            len(state.text),
            state.tool_call.name if state.tool_call else None,
        )


__all__ = [
    "ProviderAdapter",
    "SSEProviderAdapter",
    "StreamRound",
    "ToolCall",
    "search_notice",
    "tool_failure_marker",
]
