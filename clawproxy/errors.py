from typing import Optional


class ProxyError(Exception):
    """
    Base class for failures that end a single client request.

    The message is human-readable and is relayed to the client verbatim
    as an `error` event; the connection and session stay usable.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ProtocolError(ProxyError):
    """Malformed or out-of-order client action."""


class SubscriptionError(ProxyError):
    """Managed-mode request refused: no subscription, expired, or no budget."""


class UpstreamError(ProxyError):
    """
    Wrapper for upstream provider failures (non-success status, transport
    error, timeout). `text` carries the raw provider body when available.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        text: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.text = text


class UpstreamTimeout(UpstreamError):
    """The upstream call exceeded its configured ceiling."""


class ToolCallError(ProxyError):
    """The model requested a tool call whose arguments cannot be used."""


class SearchError(ProxyError):
    """The web search provider failed or returned an unusable payload."""


__all__ = [
    "ProxyError",
    "ProtocolError",
    "SubscriptionError",
    "UpstreamError",
    "UpstreamTimeout",
    "ToolCallError",
    "SearchError",
]
