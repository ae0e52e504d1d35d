"""Upstream GraphQL access layer."""
from .http import UpstreamHttpClient
from .link import UpstreamLink, is_subscription
from .websocket import UpstreamSubscriptionClient

__all__ = [
    "UpstreamHttpClient",
    "UpstreamLink",
    "UpstreamSubscriptionClient",
    "is_subscription",
]
