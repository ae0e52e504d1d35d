"""Upstream records: typed, read-only views limited to a fragment's selection."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Iterator, Mapping, Optional

from graphql import FieldNode, InlineFragmentNode, SelectionSetNode

from .errors import UndeclaredFieldError, UpstreamDataError, UpstreamError
from .money import Money

UPSTREAM_ERRORS_KEY = "__upstream_errors__"


class FieldKind(Enum):
    MONEY = "money"
    FLAG = "flag"
    TEXT = "text"
    RECORD = "record"


def iter_field_nodes(selection_set: SelectionSetNode) -> Iterator[FieldNode]:
    """Yield field nodes of a selection set, flattening inline fragments."""
    for selection in selection_set.selections:
        if isinstance(selection, FieldNode):
            yield selection
        elif isinstance(selection, InlineFragmentNode):
            yield from iter_field_nodes(selection.selection_set)


def response_key(node: FieldNode) -> str:
    return node.alias.value if node.alias else node.name.value


def read_upstream_value(source: Mapping[str, Any], key: str) -> Any:
    """Read ``key`` from an upstream object, raising the upstream error if it failed."""
    value = source.get(key)
    if value is None:
        messages = source.get(UPSTREAM_ERRORS_KEY, {}).get(key)
        if messages:
            raise UpstreamError("; ".join(messages))
    return value


@dataclass(frozen=True)
class RecordField:
    """One upstream field a record can carry."""

    upstream_name: str
    kind: FieldKind
    record: Optional[type["UpstreamRecord"]] = None
    many: bool = False

    def convert(self, raw: Any, node: FieldNode, owner: str) -> Any:
        if self.many:
            if not isinstance(raw, list):
                raise UpstreamDataError(
                    f"{owner}.{self.upstream_name} should be a list, got {raw!r}"
                )
            return tuple(self._convert_one(item, node, owner) for item in raw)
        return self._convert_one(raw, node, owner)

    def _convert_one(self, raw: Any, node: FieldNode, owner: str) -> Any:
        if self.kind is FieldKind.MONEY:
            return Money.parse(raw)
        if self.kind is FieldKind.FLAG:
            if not isinstance(raw, bool):
                raise UpstreamDataError(
                    f"{owner}.{self.upstream_name} should be a boolean, got {raw!r}"
                )
            return raw
        if self.kind is FieldKind.TEXT:
            return raw
        if raw is None:
            raise UpstreamDataError(f"{owner}.{self.upstream_name} is null")
        return self.record.from_upstream(raw, node.selection_set)

    def sample(self, node: FieldNode, money: str = "1", flag: bool = True) -> Any:
        """Synthetic upstream value, used to dry-run compute functions."""
        if self.kind is FieldKind.MONEY:
            value: Any = money
        elif self.kind is FieldKind.FLAG:
            value = flag
        elif self.kind is FieldKind.TEXT:
            value = "sample"
        else:
            value = self.record.sample_source(node.selection_set, money, flag)
        return [value] if self.many else value


class UpstreamRecord:
    """Read-only record projected from upstream JSON through a selection.

    Only fields named by the selection are populated. Reading any other
    declared field raises :class:`UndeclaredFieldError`.
    """

    typename: ClassVar[str] = ""
    fields: ClassVar[dict[str, RecordField]] = {}
    _by_upstream: ClassVar[dict[str, str]] = {}

    __slots__ = ("_values",)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._by_upstream = {f.upstream_name: attr for attr, f in cls.fields.items()}

    def __init__(self, values: Mapping[str, Any]) -> None:
        object.__setattr__(self, "_values", MappingProxyType(dict(values)))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        record_field = type(self).fields.get(name)
        if record_field is None:
            raise AttributeError(f"{type(self).__name__} has no field '{name}'")
        try:
            return self._values[name]
        except KeyError:
            raise UndeclaredFieldError(
                f"{self.typename}.{record_field.upstream_name} was read but not selected"
            ) from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is read-only")

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{type(self).__name__}({inner})"

    @classmethod
    def upstream_field(cls, name: str) -> Optional[RecordField]:
        attr = cls._by_upstream.get(name)
        return cls.fields[attr] if attr else None

    @classmethod
    def from_upstream(
        cls, source: Any, selection_set: SelectionSetNode
    ) -> "UpstreamRecord":
        """Project an upstream object through ``selection_set``."""
        if not isinstance(source, Mapping):
            raise UpstreamDataError(
                f"Expected a {cls.typename} object, got {type(source).__name__}"
            )
        values: dict[str, Any] = {}
        for node in iter_field_nodes(selection_set):
            attr = cls._by_upstream.get(node.name.value)
            if attr is None:
                continue
            key = response_key(node)
            if key not in source:
                raise UpstreamDataError(
                    f"{cls.typename}.{node.name.value} missing from upstream result"
                )
            raw = read_upstream_value(source, key)
            values[attr] = cls.fields[attr].convert(raw, node, cls.typename)
        return cls(values)

    @classmethod
    def sample_source(
        cls, selection_set: SelectionSetNode, money: str = "1", flag: bool = True
    ) -> dict[str, Any]:
        sample: dict[str, Any] = {}
        for node in iter_field_nodes(selection_set):
            record_field = cls.upstream_field(node.name.value)
            sample[response_key(node)] = (
                record_field.sample(node, money, flag) if record_field else None
            )
        return sample


class Market(UpstreamRecord):
    """A lending pool."""

    typename = "Market"
    fields = {
        "exchange_rate": RecordField("exchangeRate", FieldKind.MONEY),
        "borrow_index": RecordField("borrowIndex", FieldKind.MONEY),
        "collateral_factor": RecordField("collateralFactor", FieldKind.MONEY),
        "underlying_price": RecordField("underlyingPrice", FieldKind.MONEY),
    }


class Position(UpstreamRecord):
    """One account's stake in one market (``AccountCToken``)."""

    typename = "AccountCToken"
    fields = {
        "id": RecordField("id", FieldKind.TEXT),
        "ctoken_balance": RecordField("cTokenBalance", FieldKind.MONEY),
        "stored_borrow_balance": RecordField("storedBorrowBalance", FieldKind.MONEY),
        "account_borrow_index": RecordField("accountBorrowIndex", FieldKind.MONEY),
        "total_underlying_supplied": RecordField("totalUnderlyingSupplied", FieldKind.MONEY),
        "total_underlying_redeemed": RecordField("totalUnderlyingRedeemed", FieldKind.MONEY),
        "total_underlying_borrowed": RecordField("totalUnderlyingBorrowed", FieldKind.MONEY),
        "total_underlying_repaid": RecordField("totalUnderlyingRepaid", FieldKind.MONEY),
        "market": RecordField("market", FieldKind.RECORD, record=Market),
    }


class Account(UpstreamRecord):
    """A protocol account and its positions."""

    typename = "Account"
    fields = {
        "id": RecordField("id", FieldKind.TEXT),
        "has_borrowed": RecordField("hasBorrowed", FieldKind.FLAG),
        "positions": RecordField("tokens", FieldKind.RECORD, record=Position, many=True),
    }
