"""Upstream link protocol — remote GraphQL endpoint abstraction."""
from typing import Any, AsyncIterator, Optional, Protocol, Union

from graphql import DocumentNode, GraphQLSchema


class UpstreamLink(Protocol):
    """Abstract interface for talking to the upstream GraphQL endpoint."""

    async def introspect(self) -> GraphQLSchema: ...

    async def execute(
        self,
        document: DocumentNode,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> Union[dict[str, Any], AsyncIterator[dict[str, Any]]]: ...
