from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from clawproxy.settings import settings
from clawproxy.tools.web_search import anthropic_tool_definition

from .base import SSEProviderAdapter, StreamRound, ToolCall

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(SSEProviderAdapter):
    """
    Anthropic Messages API (`stream: true`).

    Text arrives as `content_block_delta` / `text_delta` events; a tool
    call opens with a `content_block_start` of type `tool_use` and its
    input is streamed as `input_json_delta.partial_json` fragments.
    """

    name = "anthropic"
    label = "Anthropic"

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: Optional[str] = None,
        *,
        max_tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client, url or settings.anthropic_messages_url, **kwargs)
        self.max_tokens = settings.max_output_tokens if max_tokens is None else max_tokens

    def build_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def build_body(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "stream": True,
        }
        if tools:
            body["tools"] = tools
        return body

    def tool_definitions(self) -> List[Dict[str, Any]]:
        return [anthropic_tool_definition()]

    def parse_event(self, event: Dict[str, Any], state: StreamRound) -> Optional[str]:
        event_type = event.get("type")
        if event_type == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                state.tool_call = ToolCall(
                    id=block.get("id") or "", name=block.get("name") or ""
                )
            return None

        if event_type != "content_block_delta":
            return None
        delta = event.get("delta") or {}
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            text = delta.get("text")
            return text if isinstance(text, str) else None
        if delta_type == "input_json_delta" and state.tool_call is not None:
            fragment = delta.get("partial_json")
            if isinstance(fragment, str):
                state.tool_call.arguments += fragment
        return None

    def tool_turns(
        self, text: str, call: ToolCall, query: str, result_text: str
    ) -> List[Dict[str, Any]]:
        assistant_content: List[Dict[str, Any]] = []
        if text:
            assistant_content.append({"type": "text", "text": text})
        assistant_content.append(
            {
                "type": "tool_use",
                "id": call.id,
                "name": call.name,
                "input": {"query": query},
            }
        )
        return [
            {"role": "assistant", "content": assistant_content},
            {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": call.id,
                        "content": result_text,
                    }
                ],
            },
        ]


__all__ = ["ANTHROPIC_VERSION", "AnthropicAdapter"]
