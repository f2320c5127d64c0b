import json
from typing import Any, AsyncIterator, Dict

import httpx

from clawproxy.logging_config import logger


async def iter_sse_json(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """
    Yield the JSON payload of every `data:` line of an SSE response.

    Comments, `event:` lines, blank lines and the `[DONE]` sentinel are
    skipped. A line whose payload is not a JSON object is dropped without
    aborting the stream; providers occasionally emit keep-alives or
    vendor-specific framing there.
    """
    async for line in response.aiter_lines():
        line = line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("sse: skipping unparseable data line: %r", data[:200])
            continue
        if isinstance(payload, dict):
            yield payload


__all__ = ["iter_sse_json"]
