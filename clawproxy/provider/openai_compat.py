"""
OpenAI-compatible chat completions streaming.

Shared by every vendor that speaks the `/chat/completions` SSE dialect:
OpenAI itself, OpenRouter, Kimi (Moonshot) and DeepSeek. Vendors differ
only in endpoint and the label used in error messages.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from clawproxy.tools.web_search import openai_tool_definition

from .base import SSEProviderAdapter, StreamRound, ToolCall


class OpenAICompatAdapter(SSEProviderAdapter):
    name = "openai"
    label = "OpenAI"

    def build_headers(self, api_key: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def build_body(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"model": model, "messages": messages, "stream": True}
        if tools:
            body["tools"] = tools
        return body

    def tool_definitions(self) -> List[Dict[str, Any]]:
        return [openai_tool_definition()]

    def parse_event(self, event: Dict[str, Any], state: StreamRound) -> Optional[str]:
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta") or {}

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list) and tool_calls and isinstance(tool_calls[0], dict):
            fragment = tool_calls[0]
            if state.tool_call is None:
                state.tool_call = ToolCall()
            if fragment.get("id"):
                state.tool_call.id = fragment["id"]
            function = fragment.get("function") or {}
            # Names arrive whole in the first fragment; later ones may repeat it.
            if function.get("name") and not state.tool_call.name:
                state.tool_call.name = function["name"]
            if isinstance(function.get("arguments"), str):
                state.tool_call.arguments += function["arguments"]

        if choice.get("finish_reason") == "tool_calls":
            state.done = True

        content = delta.get("content")
        return content if isinstance(content, str) else None

    def tool_turns(
        self, text: str, call: ToolCall, query: str, result_text: str
    ) -> List[Dict[str, Any]]:
        return [
            {
                "role": "assistant",
                "content": text or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": call.arguments},
                    }
                ],
            },
            {"role": "tool", "tool_call_id": call.id, "content": result_text},
        ]


__all__ = ["OpenAICompatAdapter"]
