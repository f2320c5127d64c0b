"""
Provider name -> adapter dispatch.

New vendors are added by registering an adapter instance rather than by
growing a branch on the provider string.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import httpx

from clawproxy.errors import UpstreamError
from clawproxy.settings import settings

from .anthropic import AnthropicAdapter
from .base import ProviderAdapter
from .google_sdk import GoogleSDKAdapter
from .openai_compat import OpenAICompatAdapter


class ProviderRegistry:
    def __init__(self) -> None:
        self._adapters: Dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter, *aliases: str) -> None:
        for name in (adapter.name, *aliases):
            self._adapters[name.lower()] = adapter

    def get(self, provider: str) -> ProviderAdapter:
        adapter = self._adapters.get((provider or "").lower())
        if adapter is None:
            raise UpstreamError(f"Unsupported provider: {provider}")
        return adapter

    def __contains__(self, provider: str) -> bool:
        return (provider or "").lower() in self._adapters

    @property
    def providers(self) -> Iterable[str]:
        return sorted(self._adapters)


def build_default_registry(client: httpx.AsyncClient) -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(AnthropicAdapter(client), "claude")
    registry.register(OpenAICompatAdapter(client, settings.openai_chat_url))
    registry.register(
        OpenAICompatAdapter(
            client, settings.openrouter_chat_url, name="openrouter", label="OpenRouter"
        )
    )
    registry.register(
        OpenAICompatAdapter(client, settings.kimi_chat_url, name="kimi", label="Kimi"),
        "moonshot",
    )
    registry.register(
        OpenAICompatAdapter(
            client, settings.deepseek_chat_url, name="deepseek", label="DeepSeek"
        )
    )
    registry.register(GoogleSDKAdapter(), "gemini")
    return registry


async def stream_completion(
    provider: str,
    model: str,
    api_key: str,
    messages: List[Dict[str, Any]],
    *,
    registry: ProviderRegistry,
    search_key: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    Stream one completion through the adapter registered for `provider`.

    Yields text chunks; raises UpstreamError (including for an unknown
    provider) instead of completing normally on failure.
    """
    adapter = registry.get(provider)
    async for chunk in adapter.stream(model, api_key, messages, search_key=search_key):
        yield chunk


__all__ = ["ProviderRegistry", "build_default_registry", "stream_completion"]
