from .web_search import (
    WEB_SEARCH_TOOL_NAME,
    SearchResult,
    anthropic_tool_definition,
    brave_web_search,
    format_search_results,
    openai_tool_definition,
    parse_tool_query,
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
