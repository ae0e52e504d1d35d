"""Server side of the ``graphql-ws`` WebSocket protocol."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from aiohttp import WSMsgType, web
from graphql import ExecutionResult, GraphQLError, GraphQLSchema, execute, parse, subscribe, validate

from ..errors import GatewayError
from ..upstream.link import is_subscription
from ..upstream.websocket import (
    GQL_COMPLETE,
    GQL_CONNECTION_ACK,
    GQL_CONNECTION_ERROR,
    GQL_CONNECTION_INIT,
    GQL_CONNECTION_TERMINATE,
    GQL_DATA,
    GQL_ERROR,
    GQL_START,
    GQL_STOP,
    GRAPHQL_WS,
)

logger = logging.getLogger(__name__)


class SubscriptionServer:
    """Runs client operations received over a WebSocket, one task per operation id."""

    def __init__(
        self,
        schema: GraphQLSchema,
        context_factory: Callable[[web.Request], dict[str, Any]],
    ) -> None:
        self._schema = schema
        self._context_factory = context_factory

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(protocols=(GRAPHQL_WS,))
        await ws.prepare(request)
        context = self._context_factory(request)
        operations: dict[str, asyncio.Task] = {}

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                try:
                    message = msg.json()
                except ValueError:
                    await ws.send_json(
                        {"type": GQL_CONNECTION_ERROR, "payload": {"message": "Invalid JSON"}}
                    )
                    continue

                kind = message.get("type")
                op_id = message.get("id")

                if kind == GQL_CONNECTION_INIT:
                    await ws.send_json({"type": GQL_CONNECTION_ACK})
                elif kind == GQL_START:
                    self._stop(operations, op_id)
                    task = asyncio.create_task(
                        self._run(ws, op_id, message.get("payload") or {}, context)
                    )
                    self._track(operations, op_id, task)
                elif kind == GQL_STOP:
                    self._stop(operations, op_id)
                elif kind == GQL_CONNECTION_TERMINATE:
                    await ws.close()
                    break
                else:
                    await ws.send_json(
                        {
                            "type": GQL_ERROR,
                            "id": op_id,
                            "payload": {"message": f"Unknown message type: {kind}"},
                        }
                    )
        finally:
            pending = list(operations.values())
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        return ws

    @staticmethod
    def _track(operations: dict[str, asyncio.Task], op_id: Any, task: asyncio.Task) -> None:
        """Register ``task`` under ``op_id`` until it finishes."""

        def _done(finished: asyncio.Task) -> None:
            if operations.get(op_id) is finished:
                del operations[op_id]
            _log_failure(finished)

        operations[op_id] = task
        task.add_done_callback(_done)

    @staticmethod
    def _stop(operations: dict[str, asyncio.Task], op_id: Any) -> None:
        task = operations.pop(op_id, None)
        if task is not None:
            task.cancel()

    async def _run(
        self,
        ws: web.WebSocketResponse,
        op_id: str,
        payload: dict[str, Any],
        context: dict[str, Any],
    ) -> None:
        query = payload.get("query")
        variables = payload.get("variables") or None
        operation_name = payload.get("operationName")

        try:
            document = parse(query or "")
        except GraphQLError as e:
            await ws.send_json({"type": GQL_ERROR, "id": op_id, "payload": [e.formatted]})
            return

        errors = validate(self._schema, document)
        if errors:
            await ws.send_json(
                {"type": GQL_ERROR, "id": op_id, "payload": [e.formatted for e in errors]}
            )
            return

        try:
            if is_subscription(document, operation_name):
                await self._stream(ws, op_id, document, variables, operation_name, context)
            else:
                result = execute(
                    self._schema,
                    document,
                    context_value=context,
                    variable_values=variables,
                    operation_name=operation_name,
                )
                if inspect.isawaitable(result):
                    result = await result
                await ws.send_json({"type": GQL_DATA, "id": op_id, "payload": result.formatted})
        except GatewayError as e:
            logger.warning("Operation %s failed: %s", op_id, e)
            await ws.send_json({"type": GQL_ERROR, "id": op_id, "payload": {"message": str(e)}})
            return

        if not ws.closed:
            await ws.send_json({"type": GQL_COMPLETE, "id": op_id})

    async def _stream(
        self,
        ws: web.WebSocketResponse,
        op_id: str,
        document: Any,
        variables: Any,
        operation_name: Any,
        context: dict[str, Any],
    ) -> None:
        result = await subscribe(
            self._schema,
            document,
            context_value=context,
            variable_values=variables,
            operation_name=operation_name,
        )
        if isinstance(result, ExecutionResult):
            await ws.send_json({"type": GQL_DATA, "id": op_id, "payload": result.formatted})
            return

        try:
            async for event in result:
                await ws.send_json({"type": GQL_DATA, "id": op_id, "payload": event.formatted})
        finally:
            await result.aclose()


def _log_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("WebSocket operation crashed", exc_info=task.exception())
