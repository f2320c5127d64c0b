from .anthropic import AnthropicAdapter
from .base import ProviderAdapter, SSEProviderAdapter, ToolCall
from .google_sdk import GoogleSDKAdapter, GoogleSDKError
from .openai_compat import OpenAICompatAdapter
from .registry import ProviderRegistry, build_default_registry, stream_completion

__all__ = [
    "AnthropicAdapter",
    "GoogleSDKAdapter",
    "GoogleSDKError",
    "OpenAICompatAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "SSEProviderAdapter",
    "ToolCall",
    "build_default_registry",
    "stream_completion",
]
