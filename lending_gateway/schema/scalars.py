"""The ``Decimal`` scalar: Money on the inside, decimal strings on the wire."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from graphql import (
    FloatValueNode,
    GraphQLError,
    GraphQLScalarType,
    GraphQLSchema,
    IntValueNode,
    StringValueNode,
    ValueNode,
)

from ..errors import CompositionError, InvalidDecimal
from ..money import Money

DECIMAL_SCALAR = "Decimal"


def serialize_money(value: Any) -> str:
    """Serialize as a decimal string, never a JSON number."""
    if isinstance(value, Money):
        return str(value)
    if isinstance(value, Decimal):
        return str(Money(value))
    try:
        return str(Money.parse(value))
    except InvalidDecimal as e:
        raise GraphQLError(f"Decimal cannot represent {value!r}") from e


def parse_money_value(value: Any) -> Money:
    try:
        return Money.parse(value)
    except InvalidDecimal as e:
        raise GraphQLError(f"Decimal cannot represent {value!r}") from e


def parse_money_literal(
    node: ValueNode, _variables: Optional[dict[str, Any]] = None
) -> Money:
    if isinstance(node, (StringValueNode, IntValueNode, FloatValueNode)):
        return parse_money_value(node.value)
    raise GraphQLError(f"Decimal cannot represent a {node.kind} literal", node)


def attach_decimal_scalar(schema: GraphQLSchema) -> GraphQLScalarType:
    """Wire Money (de)serialization into the schema's ``Decimal`` scalar."""
    scalar = schema.get_type(DECIMAL_SCALAR)
    if not isinstance(scalar, GraphQLScalarType):
        raise CompositionError(f"Schema has no '{DECIMAL_SCALAR}' scalar")
    scalar.serialize = serialize_money
    scalar.parse_value = parse_money_value
    scalar.parse_literal = parse_money_literal
    return scalar
