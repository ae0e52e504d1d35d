"""Request filter protocol — decides whether an HTTP request is served."""
from typing import Protocol

from aiohttp import web


class RequestFilter(Protocol):
    """Predicate returning True when a request must be rejected."""

    def __call__(self, request: web.Request) -> bool: ...
