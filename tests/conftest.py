"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional

import pytest
from graphql import DocumentNode, GraphQLSchema, build_schema, print_ast

from lending_gateway.config import AppConfig, FiltersConfig, ServerConfig, UpstreamConfig
from lending_gateway.protocols.compound import DERIVED_FIELDS, EXTENSION_SDL
from lending_gateway.schema import compose
from lending_gateway.upstream.link import is_subscription

# ---------------------------------------------------------------------------
# Upstream schema
# ---------------------------------------------------------------------------

UPSTREAM_SDL = textwrap.dedent("""\
    scalar BigDecimal

    type Market {
      id: ID!
      symbol: String
      exchangeRate: BigDecimal!
      borrowIndex: BigDecimal!
      collateralFactor: BigDecimal!
      underlyingPrice: BigDecimal!
    }

    type AccountCToken {
      id: ID!
      symbol: String
      cTokenBalance: BigDecimal!
      storedBorrowBalance: BigDecimal!
      accountBorrowIndex: BigDecimal!
      totalUnderlyingSupplied: BigDecimal!
      totalUnderlyingRedeemed: BigDecimal!
      totalUnderlyingBorrowed: BigDecimal!
      totalUnderlyingRepaid: BigDecimal!
      market: Market!
    }

    type Account {
      id: ID!
      hasBorrowed: Boolean!
      tokens(first: Int): [AccountCToken!]
    }

    type Query {
      account(id: ID!): Account
      accounts(first: Int): [Account!]!
    }

    type Subscription {
      account(id: ID!): Account
    }
""")


@pytest.fixture()
def upstream_schema() -> GraphQLSchema:
    return build_schema(UPSTREAM_SDL)


# ---------------------------------------------------------------------------
# Fake upstream link
# ---------------------------------------------------------------------------


class FakeLink:
    """In-memory upstream link recording every delegated document."""

    def __init__(
        self,
        responder: Optional[Callable[[str, dict[str, Any]], dict[str, Any]]] = None,
        events: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.responder = responder or (lambda query, variables: {"data": {}})
        self.events = events or []
        self.requests: list[tuple[str, dict[str, Any], Optional[str]]] = []
        self.closed_streams = 0

    async def introspect(self) -> GraphQLSchema:
        return build_schema(UPSTREAM_SDL)

    async def execute(
        self,
        document: DocumentNode,
        variables: Optional[dict[str, Any]] = None,
        operation_name: Optional[str] = None,
    ) -> Any:
        query = print_ast(document)
        self.requests.append((query, variables or {}, operation_name))
        if is_subscription(document, operation_name):
            return self._stream()
        return self.responder(query, variables or {})

    async def _stream(self) -> AsyncIterator[dict[str, Any]]:
        try:
            for event in self.events:
                yield event
        finally:
            self.closed_streams += 1


@pytest.fixture()
def fake_link() -> FakeLink:
    return FakeLink()


@pytest.fixture()
def make_link() -> type[FakeLink]:
    return FakeLink


@pytest.fixture()
def make_schema(upstream_schema: GraphQLSchema) -> Callable[[FakeLink], GraphQLSchema]:
    def _make(link: FakeLink) -> GraphQLSchema:
        return compose(upstream_schema, EXTENSION_SDL, DERIVED_FIELDS, link=link)

    return _make


# ---------------------------------------------------------------------------
# Sample upstream data
# ---------------------------------------------------------------------------


def _market_data(**overrides: str) -> dict[str, str]:
    data = {
        "exchangeRate": "2",
        "borrowIndex": "1.1",
        "collateralFactor": "0.75",
        "underlyingPrice": "0.5",
    }
    data.update(overrides)
    return data


def _position_data(market: Optional[dict[str, str]] = None, **overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": "0xctoken-0xaccount",
        "cTokenBalance": "10",
        "storedBorrowBalance": "100",
        "accountBorrowIndex": "1.0",
        "totalUnderlyingSupplied": "15",
        "totalUnderlyingRedeemed": "1",
        "totalUnderlyingBorrowed": "100",
        "totalUnderlyingRepaid": "5",
        "market": market if market is not None else _market_data(),
    }
    data.update(overrides)
    return data


@pytest.fixture()
def make_market() -> Callable[..., dict[str, str]]:
    return _market_data


@pytest.fixture()
def make_position() -> Callable[..., dict[str, Any]]:
    return _position_data


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        upstream=UpstreamConfig(
            query_endpoint="https://subgraph.example.com/query",
            subscription_endpoint="wss://subgraph.example.com/ws",
            timeout=5,
        ),
        server=ServerConfig(host="127.0.0.1", port=9500, path="/", cors_origin="*"),
        filters=FiltersConfig(rejected_headers=("challenge-bypass-token", "x_proxy_id")),
    )


SAMPLE_YAML = textwrap.dedent("""\
    upstream:
      query_endpoint: "https://subgraph.example.com/query"
      subscription_endpoint: "wss://subgraph.example.com/ws"
      timeout: 10
    server:
      host: "127.0.0.1"
      port: 9600
      path: "/graphql"
    filters:
      rejected_headers: [Challenge-Bypass-Token]
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
