"""aiohttp application serving the composed schema over HTTP and WebSocket."""
from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Optional

from aiohttp import web
from graphql import GraphQLError, GraphQLSchema, execute, parse, validate

from ..config import AppConfig
from ..interfaces.request_filter import RequestFilter
from ..upstream.link import is_subscription
from .middleware import (
    HeaderFilter,
    access_log_middleware,
    cors_middleware,
    request_filter_middleware,
)
from .subscriptions import SubscriptionServer

logger = logging.getLogger(__name__)


def _error_response(messages: list[dict[str, Any]], status: int = 400) -> web.Response:
    return web.json_response({"errors": messages}, status=status)


class GraphQLView:
    """Executes GraphQL requests against the composed schema."""

    def __init__(
        self, schema: GraphQLSchema, request_logger: Optional[logging.Logger] = None
    ) -> None:
        self._schema = schema
        self._logger = request_logger or logger.getChild("graphql")
        self._subscriptions = SubscriptionServer(schema, self.context)

    def context(self, request: web.Request) -> dict[str, Any]:
        return {"request": request, "logger": self._logger}

    async def get(self, request: web.Request) -> web.StreamResponse:
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return await self._subscriptions.handle(request)

        params: dict[str, Any] = dict(request.query)
        raw_variables = params.get("variables")
        if raw_variables:
            try:
                params["variables"] = json.loads(raw_variables)
            except ValueError:
                return _error_response([{"message": "Variables are invalid JSON."}])
        return await self._execute(request, params)

    async def post(self, request: web.Request) -> web.StreamResponse:
        try:
            params = await request.json()
        except ValueError:
            return _error_response([{"message": "POST body is not valid JSON."}])
        if not isinstance(params, dict):
            return _error_response([{"message": "POST body must be a JSON object."}])
        return await self._execute(request, params)

    async def _execute(self, request: web.Request, params: dict[str, Any]) -> web.Response:
        query = params.get("query")
        variables = params.get("variables") or None
        operation_name = params.get("operationName") or None

        if not isinstance(query, str) or not query.strip():
            return _error_response([{"message": "Must provide query string."}])
        if variables is not None and not isinstance(variables, dict):
            return _error_response([{"message": "Variables must be an object."}])

        try:
            document = parse(query)
        except GraphQLError as e:
            return _error_response([e.formatted])

        errors = validate(self._schema, document)
        if errors:
            return _error_response([e.formatted for e in errors])

        if is_subscription(document, operation_name):
            return _error_response(
                [{"message": "Subscriptions are only served over WebSocket."}]
            )

        result = execute(
            self._schema,
            document,
            context_value=self.context(request),
            variable_values=variables,
            operation_name=operation_name,
        )
        if inspect.isawaitable(result):
            result = await result

        if result.errors:
            self._logger.debug(
                "Request finished with %d error(s): %s",
                len(result.errors),
                "; ".join(e.message for e in result.errors),
            )
        return web.json_response(result.formatted)


def create_app(
    schema: GraphQLSchema,
    config: AppConfig,
    request_filter: Optional[RequestFilter] = None,
    request_logger: Optional[logging.Logger] = None,
) -> web.Application:
    """Build the gateway web application.

    ``request_filter`` defaults to rejecting the configured headers;
    ``request_logger`` is handed to resolvers in the request context.
    """
    if request_filter is None:
        request_filter = HeaderFilter(config.filters.rejected_headers)

    app = web.Application(
        middlewares=[
            access_log_middleware,
            request_filter_middleware(request_filter),
            cors_middleware(config.server.cors_origin),
        ]
    )
    view = GraphQLView(schema, request_logger)
    app.router.add_get(config.server.path, view.get)
    app.router.add_post(config.server.path, view.post)
    return app
