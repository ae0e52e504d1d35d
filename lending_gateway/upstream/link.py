"""Dual-channel upstream link: HTTP for queries/mutations, WebSocket for subscriptions."""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional, Union

from graphql import (
    DocumentNode,
    GraphQLError,
    GraphQLSchema,
    OperationType,
    build_client_schema,
    get_introspection_query,
    get_operation_ast,
    print_ast,
)

from ..config import UpstreamConfig
from ..errors import UpstreamUnavailable
from .http import UpstreamHttpClient
from .websocket import UpstreamSubscriptionClient

logger = logging.getLogger(__name__)


def is_subscription(document: DocumentNode, operation_name: Optional[str] = None) -> bool:
    """True when the selected operation of ``document`` is a subscription."""
    operation = get_operation_ast(document, operation_name)
    return operation is not None and operation.operation == OperationType.SUBSCRIPTION


class UpstreamLink:
    """Routes each operation to the channel matching its kind."""

    def __init__(
        self,
        http: UpstreamHttpClient,
        streaming: UpstreamSubscriptionClient,
    ) -> None:
        self._http = http
        self._streaming = streaming

    @classmethod
    def from_config(cls, config: UpstreamConfig) -> UpstreamLink:
        return cls(UpstreamHttpClient(config), UpstreamSubscriptionClient(config))

    async def introspect(self) -> GraphQLSchema:
        """Fetch and build the upstream schema."""
        logger.info("Introspecting upstream schema at %s", self._http.endpoint)
        result = await self._http.execute(get_introspection_query(descriptions=True))

        if result.get("errors") or not result.get("data"):
            raise UpstreamUnavailable(
                f"Upstream introspection failed: {result.get('errors')}"
            )
        try:
            schema = build_client_schema(result["data"])
        except (GraphQLError, TypeError, KeyError, ValueError) as e:
            raise UpstreamUnavailable(f"Invalid upstream introspection: {e}") from e

        logger.info("Upstream schema has %d types", len(schema.type_map))
        return schema

    async def execute(
        self,
        document: DocumentNode,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> Union[dict[str, Any], AsyncIterator[dict[str, Any]]]:
        """Send ``document`` upstream.

        Returns the response dict, or an async iterator of responses when the
        operation is a subscription.
        """
        query = print_ast(document)
        if is_subscription(document, operation_name):
            logger.debug("Streaming upstream subscription %s", operation_name or "")
            return self._streaming.subscribe(query, variables, operation_name)
        return await self._http.execute(query, variables, operation_name)
