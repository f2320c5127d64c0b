"""
Gemini adapter built on the official google-genai SDK.

The SDK's streaming iterator is synchronous, so it is consumed in a
background thread and the chunks are handed back to the event loop
through a queue. One streaming call, no tool support.
"""

from __future__ import annotations

import functools
import threading
import time
from queue import Empty, SimpleQueue
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

import anyio

from clawproxy.errors import UpstreamError, UpstreamTimeout
from clawproxy.logging_config import logger
from clawproxy.settings import settings

from .base import ProviderAdapter


class GoogleSDKError(UpstreamError):
    """Raised when the google-genai SDK is unavailable or returns an error."""


def _create_client(api_key: str):
    try:
        from google import genai  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise GoogleSDKError(
            "google-genai is not installed; install it with: pip install google-genai"
        ) from exc

    try:
        return genai.Client(api_key=api_key)
    except Exception as exc:  # pragma: no cover - SDK constructor failures
        raise GoogleSDKError(f"Google client initialisation failed: {exc}") from exc


def messages_to_contents(messages: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Convert role/content history into Gemini `contents` (assistant -> model).
    """
    contents: List[Dict[str, Any]] = []
    for msg in messages:
        role = "model" if msg.get("role") == "assistant" else "user"
        content = msg.get("content")
        text = content if isinstance(content, str) else str(content or "")
        contents.append({"role": role, "parts": [{"text": text}]})
    return contents


class GoogleSDKAdapter(ProviderAdapter):
    name = "google"

    def __init__(
        self,
        *,
        client_factory: Optional[Callable[[str], Any]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._client_factory = client_factory or _create_client
        self.timeout = settings.upstream_timeout if timeout is None else timeout

    async def stream(
        self,
        model: str,
        api_key: str,
        messages: List[Dict[str, Any]],
        *,
        search_key: Optional[str] = None,
    ) -> AsyncIterator[str]:
        client = self._client_factory(api_key)
        contents = messages_to_contents(messages)

        queue: SimpleQueue[Any] = SimpleQueue()
        sentinel = object()

        def _worker():
            try:
                for chunk in client.models.generate_content_stream(
                    model=model, contents=contents
                ):
                    queue.put(chunk)
            except Exception as exc:
                queue.put(exc)
            finally:
                queue.put(sentinel)

        logger.info("google: opening stream model=%s messages=%d", model, len(messages))
        thread = threading.Thread(target=_worker, daemon=True)
        thread.start()

        deadline = time.monotonic() + self.timeout
        chars = 0
        while True:
            remaining = deadline - time.monotonic()
            try:
                if remaining <= 0:
                    raise Empty
                item = await anyio.to_thread.run_sync(
                    functools.partial(queue.get, timeout=remaining)
                )
            except Empty:
                logger.warning("google: stream timed out after %ss", self.timeout)
                raise UpstreamTimeout(
                    f"Google request timed out after {self.timeout:g}s"
                ) from None
            if item is sentinel:
                break
            if isinstance(item, Exception):
                logger.warning("google: streaming call failed: %s", item)
                raise GoogleSDKError(f"Google API error: {item}") from item
            text = getattr(item, "text", None)
            if isinstance(text, str) and text:
                chars += len(text)
                yield text

        logger.info("google: stream finished chars=%d", chars)


__all__ = ["GoogleSDKAdapter", "GoogleSDKError", "messages_to_contents"]
