"""HTTP clients for upstream collaborators."""

from trendarc.clients.base import APIProviderError, BaseAsyncClient, RateLimiter
from trendarc.clients.gdelt import GdeltClient, GdeltEventSearch

__all__ = [
    "APIProviderError",
    "BaseAsyncClient",
    "GdeltClient",
    "GdeltEventSearch",
    "RateLimiter",
]
