"""Request/response channel to the upstream GraphQL endpoint."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Optional

import aiohttp
import certifi

from ..config import UpstreamConfig
from ..errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class UpstreamHttpClient:
    """POSTs GraphQL operations to the upstream query endpoint."""

    def __init__(self, config: UpstreamConfig) -> None:
        self.endpoint = config.query_endpoint
        self.timeout = config.timeout

    async def execute(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """Send one operation and return the decoded GraphQL response."""
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables
        if operation_name:
            payload["operationName"] = operation_name

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        try:
            connector = aiohttp.TCPConnector(ssl=ssl_context)
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.endpoint,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    try:
                        result = await response.json(content_type=None)
                    except ValueError as e:
                        raise UpstreamUnavailable(
                            f"Upstream returned a non-JSON body (HTTP {response.status})"
                        ) from e
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Upstream endpoint %s failed: %s", self.endpoint, e)
            raise UpstreamUnavailable(f"Upstream endpoint unreachable: {e}") from e

        if not isinstance(result, dict) or not ("data" in result or "errors" in result):
            raise UpstreamUnavailable(
                f"Upstream returned HTTP {status} without a GraphQL response"
            )
        if status >= 400:
            logger.debug("Upstream answered HTTP %s with GraphQL errors", status)
        return result
