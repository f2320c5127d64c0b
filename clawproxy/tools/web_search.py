"""
`web_search` tool: schema for both provider families, argument parsing,
the Brave web search call and the plain-text rendering fed back to the
model as the tool result.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from clawproxy.errors import SearchError, ToolCallError
from clawproxy.logging_config import logger
from clawproxy.settings import settings

WEB_SEARCH_TOOL_NAME = "web_search"
WEB_SEARCH_DESCRIPTION = (
    "Search the web for current information. Use this for recent events, "
    "prices, documentation or anything that may have changed after your "
    "training data."
)
_QUERY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "The search query"},
    },
    "required": ["query"],
}


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    description: str = ""


def anthropic_tool_definition() -> Dict[str, Any]:
    return {
        "name": WEB_SEARCH_TOOL_NAME,
        "description": WEB_SEARCH_DESCRIPTION,
        "input_schema": _QUERY_SCHEMA,
    }


def openai_tool_definition() -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": WEB_SEARCH_TOOL_NAME,
            "description": WEB_SEARCH_DESCRIPTION,
            "parameters": _QUERY_SCHEMA,
        },
    }


def parse_tool_query(arguments: str) -> str:
    """
    Extract the `query` string from accumulated tool-call arguments.

    Raises ToolCallError when the arguments are not a JSON object or carry
    no usable query.
    """
    try:
        parsed = json.loads(arguments or "")
    except json.JSONDecodeError as exc:
        raise ToolCallError(f"Invalid web_search arguments: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ToolCallError("Invalid web_search arguments: expected an object")
    query = parsed.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ToolCallError("Invalid web_search arguments: missing query")
    return query.strip()


async def brave_web_search(
    client: httpx.AsyncClient,
    query: str,
    api_key: str,
    count: int = 10,
    freshness: Optional[str] = None,
) -> List[SearchResult]:
    """
    Query the Brave web search API and return its web results.
    """
    params: Dict[str, Any] = {"q": query, "count": count}
    if freshness:
        params["freshness"] = freshness
    headers = {
        "Accept": "application/json",
        "X-Subscription-Token": api_key,
    }

    logger.info("web_search: query=%r count=%d", query, count)
    try:
        resp = await client.get(
            settings.brave_search_url,
            params=params,
            headers=headers,
            timeout=settings.search_timeout,
        )
    except httpx.HTTPError as exc:
        logger.warning("web_search: transport error: %s", exc)
        raise SearchError(f"Brave Search request failed: {exc}") from exc

    if resp.status_code >= 400:
        raise SearchError(f"Brave Search API error ({resp.status_code}): {resp.text}")

    try:
        payload = resp.json()
    except ValueError as exc:
        raise SearchError("Brave Search returned invalid JSON") from exc

    try:
        results = _parse_results(payload, count)
    except (AttributeError, TypeError, ValidationError) as exc:
        logger.warning("web_search: unexpected payload shape: %s", exc)
        raise SearchError("Brave Search returned an unexpected response") from exc
    logger.info("web_search: %d results for %r", len(results), query)
    return results


def _parse_results(payload: Any, count: int) -> List[SearchResult]:
    web = payload.get("web") or {}
    items = web.get("results") or []
    if not isinstance(items, list):
        raise TypeError(f"results is {type(items).__name__}, expected list")
    return [
        SearchResult(
            title=item.get("title") or "",
            url=item.get("url") or "",
            description=item.get("description") or "",
        )
        for item in items[:count]
        if isinstance(item, dict)
    ]


def format_search_results(results: List[SearchResult]) -> str:
    if not results:
        return "No results found."
    return "\n\n".join(
        f"{index}. {result.title}\n   {result.url}\n   {result.description}"
        for index, result in enumerate(results, start=1)
    )


__all__ = [
    "SearchResult",
    "WEB_SEARCH_TOOL_NAME",
    "anthropic_tool_definition",
    "brave_web_search",
    "format_search_results",
    "openai_tool_definition",
    "parse_tool_query",
]
