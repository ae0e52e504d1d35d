"""Unit tests for upstream record projection."""
from __future__ import annotations

from typing import Any, Callable

import pytest
from graphql import SelectionSetNode, parse

from lending_gateway.errors import (
    InvalidDecimal,
    UndeclaredFieldError,
    UpstreamDataError,
    UpstreamError,
)
from lending_gateway.models import UPSTREAM_ERRORS_KEY, Account, Market, Position
from lending_gateway.money import Money


def _selection(type_name: str, fields: str) -> SelectionSetNode:
    return parse(f"fragment F on {type_name} {{ {fields} }}").definitions[0].selection_set


MakePosition = Callable[..., dict[str, Any]]


class TestProjection:
    def test_selected_fields_are_converted(self, make_position: MakePosition) -> None:
        position = Position.from_upstream(
            make_position(), _selection("AccountCToken", "id cTokenBalance market { exchangeRate }")
        )
        assert position.id == "0xctoken-0xaccount"
        assert position.ctoken_balance == Money.parse("10")
        assert isinstance(position.market, Market)
        assert position.market.exchange_rate == Money.parse("2")

    def test_unselected_field_raises(self, make_position: MakePosition) -> None:
        position = Position.from_upstream(make_position(), _selection("AccountCToken", "id"))
        with pytest.raises(UndeclaredFieldError, match="cTokenBalance"):
            position.ctoken_balance

    def test_unknown_attribute_is_plain_attribute_error(self, make_position: MakePosition) -> None:
        position = Position.from_upstream(make_position(), _selection("AccountCToken", "id"))
        with pytest.raises(AttributeError) as exc_info:
            position.not_a_field
        assert not isinstance(exc_info.value, UndeclaredFieldError)

    def test_aliased_fields_are_read_by_alias(self, make_position: MakePosition) -> None:
        data = {"id": "0x1", "hasBorrowed": True, "_derivedTokens": [make_position()]}
        account = Account.from_upstream(
            data, _selection("Account", "id hasBorrowed _derivedTokens: tokens { cTokenBalance }")
        )
        assert len(account.positions) == 1
        assert account.positions[0].ctoken_balance == Money.parse("10")

    def test_inline_fragments_are_flattened(self, make_position: MakePosition) -> None:
        position = Position.from_upstream(
            make_position(),
            _selection("AccountCToken", "id ... on AccountCToken { cTokenBalance }"),
        )
        assert position.ctoken_balance == Money.parse("10")

    def test_fields_outside_the_record_are_ignored(self, make_position: MakePosition) -> None:
        data = dict(make_position(), symbol="cDAI")
        position = Position.from_upstream(data, _selection("AccountCToken", "id symbol"))
        assert position.id == "0xctoken-0xaccount"

    def test_records_are_read_only(self, make_position: MakePosition) -> None:
        position = Position.from_upstream(make_position(), _selection("AccountCToken", "id"))
        with pytest.raises(AttributeError):
            position.id = "other"


class TestUpstreamContractViolations:
    def test_non_numeric_money_field(self, make_position: MakePosition) -> None:
        with pytest.raises(InvalidDecimal):
            Position.from_upstream(
                make_position(cTokenBalance="not-a-number"),
                _selection("AccountCToken", "cTokenBalance"),
            )

    def test_null_money_field(self, make_position: MakePosition) -> None:
        with pytest.raises(InvalidDecimal):
            Position.from_upstream(
                make_position(cTokenBalance=None), _selection("AccountCToken", "cTokenBalance")
            )

    def test_null_nested_record(self, make_position: MakePosition) -> None:
        data = make_position()
        data["market"] = None
        with pytest.raises(UpstreamDataError, match="market"):
            Position.from_upstream(data, _selection("AccountCToken", "market { exchangeRate }"))

    def test_missing_key(self) -> None:
        with pytest.raises(UpstreamDataError, match="missing"):
            Position.from_upstream({"id": "0x1"}, _selection("AccountCToken", "id cTokenBalance"))

    def test_non_boolean_flag(self) -> None:
        with pytest.raises(UpstreamDataError, match="boolean"):
            Account.from_upstream({"hasBorrowed": "yes"}, _selection("Account", "hasBorrowed"))

    def test_list_field_not_a_list(self) -> None:
        with pytest.raises(UpstreamDataError, match="list"):
            Account.from_upstream({"tokens": {}}, _selection("Account", "tokens { id }"))

    def test_failed_upstream_field_raises_upstream_error(self) -> None:
        source = {"tokens": None, UPSTREAM_ERRORS_KEY: {"tokens": ["indexer timeout"]}}
        with pytest.raises(UpstreamError, match="indexer timeout"):
            Account.from_upstream(source, _selection("Account", "tokens { id }"))

    def test_failed_nested_field_raises_upstream_error(self, make_position: MakePosition) -> None:
        data = make_position()
        data["market"] = {"exchangeRate": None, UPSTREAM_ERRORS_KEY: {"exchangeRate": ["stale"]}}
        with pytest.raises(UpstreamError, match="stale"):
            Position.from_upstream(data, _selection("AccountCToken", "market { exchangeRate }"))

    def test_source_not_an_object(self) -> None:
        with pytest.raises(UpstreamDataError):
            Account.from_upstream(["0x1"], _selection("Account", "id"))


class TestSampleSource:
    def test_sample_covers_selection(self) -> None:
        selection = _selection("Account", "id hasBorrowed _derivedTokens: tokens { cTokenBalance market { borrowIndex } }")
        sample = Account.sample_source(selection)
        assert sample == {
            "id": "sample",
            "hasBorrowed": True,
            "_derivedTokens": [{"cTokenBalance": "1", "market": {"borrowIndex": "1"}}],
        }
        account = Account.from_upstream(sample, selection)
        assert account.positions[0].market.borrow_index == Money.parse("1")
