"""Pure derived-value functions for Compound-style positions — no I/O.

Every function reads only the record fields it needs; the paired selections
in :mod:`.fields` must name all of them.
"""
from __future__ import annotations

from typing import Optional

from ...models import Account, Position
from ...money import Money, money_sum


def supply_balance_underlying(position: Position) -> Money:
    """cToken balance converted to underlying units."""
    return position.ctoken_balance * position.market.exchange_rate


def borrow_balance_underlying(position: Position) -> Money:
    """Current borrow balance, accrued with the market borrow index.

        borrow = stored_borrow_balance * market.borrow_index / account_borrow_index

    An account that never borrowed in this market has a zero index.
    """
    if position.account_borrow_index.is_zero():
        return Money.zero()
    return (
        position.stored_borrow_balance * position.market.borrow_index
    ).divide(position.account_borrow_index)


def supply_balance_eth(position: Position) -> Money:
    return supply_balance_underlying(position) * position.market.underlying_price


def borrow_balance_eth(position: Position) -> Money:
    return borrow_balance_underlying(position) * position.market.underlying_price


def lifetime_supply_interest(position: Position) -> Money:
    return (
        supply_balance_underlying(position)
        - position.total_underlying_supplied
        + position.total_underlying_redeemed
    )


def lifetime_borrow_interest(position: Position) -> Money:
    return (
        borrow_balance_underlying(position)
        - position.total_underlying_borrowed
        + position.total_underlying_repaid
    )


def collateral_value_eth(position: Position) -> Money:
    market = position.market
    return (
        market.collateral_factor
        * market.exchange_rate
        * market.underlying_price
        * position.ctoken_balance
    )


def total_collateral_value_eth(account: Account) -> Money:
    return money_sum(collateral_value_eth(p) for p in account.positions)


def total_borrow_value_eth(account: Account) -> Money:
    if not account.has_borrowed:
        return Money.zero()
    return money_sum(
        p.market.underlying_price * borrow_balance_underlying(p)
        for p in account.positions
    )


def health_ratio(account: Account) -> Optional[Money]:
    """Collateral value over borrow value, both in ETH.

    Returns None for an account that never borrowed. When the account has
    borrowed but currently owes nothing, the raw collateral value is returned
    instead of a ratio.
    """
    if not account.has_borrowed:
        return None
    total_borrow = total_borrow_value_eth(account)
    if total_borrow.is_zero():
        return total_collateral_value_eth(account)
    return total_collateral_value_eth(account).divide(total_borrow)
