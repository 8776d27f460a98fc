"""REST client for the chat backend."""

from .client import ChatApiClient, safe_json

__all__ = [
    "ChatApiClient",
    "safe_json",
]
