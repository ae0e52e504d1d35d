"""Derived fields added to the Compound subgraph schema.

Each :class:`DerivedField` pairs the upstream selection a field needs with
the pure function computing it. Keep the two in lockstep: ``verify()`` fails
composition if a function reads a field its selection does not name.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Optional

from graphql import GraphQLError, GraphQLResolveInfo, SelectionSetNode, parse

from ...errors import CompositionError, UndeclaredFieldError
from ...models import Account, Position, UpstreamRecord
from ...money import Money
from . import calculations

logger = logging.getLogger(__name__)

# Aliased so the injected selection never merges with a client's own
# ``tokens(...)`` selection carrying different arguments.
POSITIONS_ALIAS = "_derivedTokens"

_SAMPLES = (("1", True), ("0", False))

EXTENSION_SDL = """
scalar Decimal

extend type Account {
  health: Decimal
  totalBorrowValueInEth: Decimal!
  totalCollateralValueInEth: Decimal!
}

extend type AccountCToken {
  supplyBalanceUnderlying: Decimal!
  supplyBalanceETH: Decimal!
  lifetimeSupplyInterestAccrued: Decimal!
  borrowBalanceUnderlying: Decimal!
  borrowBalanceETH: Decimal!
  lifetimeBorrowInterestAccrued: Decimal!
}
"""


@dataclass(frozen=True)
class DerivedField:
    """An extension field: what it needs from upstream and how to compute it."""

    type_name: str
    field_name: str
    selection: str
    record: type[UpstreamRecord]
    compute: Callable[[Any], Optional[Money]]

    @property
    def key(self) -> tuple[str, str]:
        return self.type_name, self.field_name

    @cached_property
    def selection_set(self) -> SelectionSetNode:
        source = f"fragment Requires on {self.type_name} {{ {self.selection} }}"
        try:
            document = parse(source, no_location=True)
        except GraphQLError as e:
            raise CompositionError(
                f"Invalid selection for {self.type_name}.{self.field_name}: {e.message}"
            ) from e
        return document.definitions[0].selection_set

    def resolve(self, source: Any, info: GraphQLResolveInfo, **_args: Any) -> Optional[Money]:
        """GraphQL resolver: project the parent object, then compute."""
        record = self.record.from_upstream(source, self.selection_set)
        return self.compute(record)

    def verify(self) -> None:
        """Dry-run ``compute`` on synthetic objects built from the selection.

        Runs once with non-zero amounts and true flags, once with zero amounts
        and false flags, so both sides of the zero-index and never-borrowed
        branches are checked.
        """
        try:
            for money, flag in _SAMPLES:
                sample = self.record.sample_source(self.selection_set, money, flag)
                self.compute(self.record.from_upstream(sample, self.selection_set))
        except UndeclaredFieldError as e:
            raise CompositionError(
                f"{self.type_name}.{self.field_name} reads an unselected field: {e}"
            ) from e
        logger.debug("Verified selection for %s.%s", self.type_name, self.field_name)


_ACCOUNT_BORROW = f"""
  id
  hasBorrowed
  {POSITIONS_ALIAS}: tokens {{
    cTokenBalance
    storedBorrowBalance
    accountBorrowIndex
    market {{
      borrowIndex
      collateralFactor
      exchangeRate
      underlyingPrice
    }}
  }}
"""

_ACCOUNT_COLLATERAL = f"""
  id
  {POSITIONS_ALIAS}: tokens {{
    cTokenBalance
    market {{
      collateralFactor
      exchangeRate
      underlyingPrice
    }}
  }}
"""

_SUPPLY = "id cTokenBalance market { exchangeRate }"
_BORROW = "id storedBorrowBalance accountBorrowIndex market { borrowIndex }"


DERIVED_FIELDS: tuple[DerivedField, ...] = (
    DerivedField(
        "Account",
        "health",
        _ACCOUNT_BORROW,
        Account,
        calculations.health_ratio,
    ),
    DerivedField(
        "Account",
        "totalBorrowValueInEth",
        _ACCOUNT_BORROW,
        Account,
        calculations.total_borrow_value_eth,
    ),
    DerivedField(
        "Account",
        "totalCollateralValueInEth",
        _ACCOUNT_COLLATERAL,
        Account,
        calculations.total_collateral_value_eth,
    ),
    DerivedField(
        "AccountCToken",
        "supplyBalanceUnderlying",
        _SUPPLY,
        Position,
        calculations.supply_balance_underlying,
    ),
    DerivedField(
        "AccountCToken",
        "supplyBalanceETH",
        "id cTokenBalance market { exchangeRate underlyingPrice }",
        Position,
        calculations.supply_balance_eth,
    ),
    DerivedField(
        "AccountCToken",
        "lifetimeSupplyInterestAccrued",
        _SUPPLY + " totalUnderlyingSupplied totalUnderlyingRedeemed",
        Position,
        calculations.lifetime_supply_interest,
    ),
    DerivedField(
        "AccountCToken",
        "borrowBalanceUnderlying",
        _BORROW,
        Position,
        calculations.borrow_balance_underlying,
    ),
    DerivedField(
        "AccountCToken",
        "borrowBalanceETH",
        "id storedBorrowBalance accountBorrowIndex market { borrowIndex underlyingPrice }",
        Position,
        calculations.borrow_balance_eth,
    ),
    DerivedField(
        "AccountCToken",
        "lifetimeBorrowInterestAccrued",
        _BORROW + " totalUnderlyingBorrowed totalUnderlyingRepaid",
        Position,
        calculations.lifetime_borrow_interest,
    ),
)
