"""Unit tests for the Decimal scalar."""
from __future__ import annotations

from decimal import Decimal

import pytest
from graphql import BooleanValueNode, GraphQLError, StringValueNode, build_schema

from lending_gateway.errors import CompositionError
from lending_gateway.money import Money
from lending_gateway.schema.scalars import (
    attach_decimal_scalar,
    parse_money_literal,
    parse_money_value,
    serialize_money,
)


class TestSerialize:
    def test_money_serializes_as_string(self) -> None:
        assert serialize_money(Money.parse("110.000000000000000000")) == "110.000000000000000000"

    def test_decimal_and_string_inputs(self) -> None:
        assert serialize_money(Decimal("1.5")) == "1.5"
        assert serialize_money("2.25") == "2.25"

    def test_float_is_rejected(self) -> None:
        with pytest.raises(GraphQLError):
            serialize_money(0.1)


class TestParse:
    def test_parse_value(self) -> None:
        assert parse_money_value("3.5") == Money.parse("3.5")

    def test_parse_value_rejects_garbage(self) -> None:
        with pytest.raises(GraphQLError):
            parse_money_value("three")

    def test_parse_literal(self) -> None:
        assert parse_money_literal(StringValueNode(value="0.75")) == Money.parse("0.75")

    def test_parse_literal_rejects_booleans(self) -> None:
        with pytest.raises(GraphQLError):
            parse_money_literal(BooleanValueNode(value=True))


class TestAttach:
    def test_wires_schema_scalar(self) -> None:
        schema = build_schema("scalar Decimal\ntype Query { value: Decimal }")
        scalar = attach_decimal_scalar(schema)
        assert scalar.serialize is serialize_money
        assert scalar.parse_literal is parse_money_literal

    def test_missing_scalar(self) -> None:
        with pytest.raises(CompositionError):
            attach_decimal_scalar(build_schema("type Query { value: String }"))
