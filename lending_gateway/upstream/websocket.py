"""Streaming channel to the upstream endpoint (``graphql-ws`` protocol)."""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, AsyncIterator, Optional

import aiohttp
import certifi

from ..config import UpstreamConfig
from ..errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

GRAPHQL_WS = "graphql-ws"

# subscriptions-transport-ws message types
GQL_CONNECTION_INIT = "connection_init"
GQL_CONNECTION_ACK = "connection_ack"
GQL_CONNECTION_ERROR = "connection_error"
GQL_CONNECTION_KEEP_ALIVE = "ka"
GQL_CONNECTION_TERMINATE = "connection_terminate"
GQL_START = "start"
GQL_DATA = "data"
GQL_ERROR = "error"
GQL_COMPLETE = "complete"
GQL_STOP = "stop"

_OPERATION_ID = "1"


class UpstreamSubscriptionClient:
    """Runs each subscription on its own upstream WebSocket connection."""

    def __init__(self, config: UpstreamConfig) -> None:
        self.endpoint = config.subscription_endpoint
        self.timeout = config.timeout

    async def subscribe(
        self,
        query: str,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield one GraphQL response per upstream event.

        The stream ends when upstream completes the operation; a connection
        lost before that raises :class:`UpstreamUnavailable`.
        """
        payload: dict[str, Any] = {"query": query, "variables": variables or {}}
        if operation_name:
            payload["operationName"] = operation_name

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.ws_connect(
                    self.endpoint, protocols=(GRAPHQL_WS,)
                ) as ws:
                    await self._handshake(ws)
                    await ws.send_json(
                        {"id": _OPERATION_ID, "type": GQL_START, "payload": payload}
                    )
                    try:
                        async for message in self._messages(ws):
                            kind = message.get("type")
                            if kind == GQL_DATA:
                                yield message.get("payload") or {}
                            elif kind == GQL_ERROR:
                                yield {"data": None, "errors": _as_error_list(message.get("payload"))}
                                return
                            elif kind == GQL_COMPLETE:
                                return
                            elif kind == GQL_CONNECTION_ERROR:
                                raise UpstreamUnavailable(
                                    f"Upstream connection error: {message.get('payload')}"
                                )
                    finally:
                        if not ws.closed:
                            await ws.send_json({"id": _OPERATION_ID, "type": GQL_STOP})
                            await ws.send_json({"type": GQL_CONNECTION_TERMINATE})
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Upstream subscription endpoint %s failed: %s", self.endpoint, e)
            raise UpstreamUnavailable(f"Upstream subscription endpoint unreachable: {e}") from e

        raise UpstreamUnavailable("Upstream closed the subscription connection")

    async def _handshake(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        await ws.send_json({"type": GQL_CONNECTION_INIT, "payload": {}})
        while True:
            message = await asyncio.wait_for(ws.receive(), self.timeout)
            if message.type != aiohttp.WSMsgType.TEXT:
                raise UpstreamUnavailable(
                    f"Upstream closed the connection during handshake ({message.type.name})"
                )
            kind = message.json().get("type")
            if kind == GQL_CONNECTION_ACK:
                return
            if kind == GQL_CONNECTION_ERROR:
                raise UpstreamUnavailable("Upstream rejected the subscription connection")
            if kind != GQL_CONNECTION_KEEP_ALIVE:
                logger.debug("Ignoring %r before connection_ack", kind)

    @staticmethod
    async def _messages(
        ws: aiohttp.ClientWebSocketResponse,
    ) -> AsyncIterator[dict[str, Any]]:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                message = msg.json()
                if message.get("type") != GQL_CONNECTION_KEEP_ALIVE:
                    yield message
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise UpstreamUnavailable(f"Upstream WebSocket error: {ws.exception()}")


def _as_error_list(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return [payload]
    return [{"message": str(payload)}]
