"""Exact decimal money type used by every derived-field computation."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import (
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    ROUND_DOWN,
    Context,
    Decimal,
    InvalidOperation,
)
from typing import Any

from .errors import DivisionByZero, InvalidDecimal

DIVISION_SCALE = 18
ROUNDING = ROUND_DOWN

# Large enough that add/subtract/multiply never round.
_EXACT = Context(prec=MAX_PREC, rounding=ROUNDING, Emax=MAX_EMAX, Emin=MIN_EMIN)


@dataclass(frozen=True)
class Money:
    """Immutable arbitrary-precision decimal.

    Addition, subtraction and multiplication are exact. Division always takes
    an explicit scale and truncates (ROUND_DOWN).
    """

    value: Decimal

    @classmethod
    def parse(cls, raw: Any) -> Money:
        """Parse a decimal string (or int) from upstream.

        Floats are rejected: they have already lost precision.
        """
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            raise InvalidDecimal(f"Expected a decimal string, got {raw!r}")
        if isinstance(raw, str) and "_" in raw:
            raise InvalidDecimal(f"Not a decimal: {raw!r}")
        try:
            value = Decimal(raw.strip() if isinstance(raw, str) else raw)
        except InvalidOperation:
            raise InvalidDecimal(f"Not a decimal: {raw!r}") from None
        if not value.is_finite():
            raise InvalidDecimal(f"Not a finite decimal: {raw!r}")
        return cls(value)

    @classmethod
    def zero(cls) -> Money:
        return cls(Decimal(0))

    def is_zero(self) -> bool:
        return self.value.is_zero()

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(_EXACT.add(self.value, other.value))

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(_EXACT.subtract(self.value, other.value))

    def __mul__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(_EXACT.multiply(self.value, other.value))

    def divide(self, divisor: Money, scale: int = DIVISION_SCALE) -> Money:
        """Divide, truncating the quotient to ``scale`` fractional digits."""
        if divisor.is_zero():
            raise DivisionByZero(f"Cannot divide {self} by zero")

        exponent = Decimal(1).scaleb(-scale)
        if self.is_zero():
            return Money(Decimal(0).quantize(exponent))

        # Enough significant digits to reach 10**-scale plus two guard digits;
        # truncating twice with ROUND_DOWN equals truncating once.
        magnitude = self.value.adjusted() - divisor.value.adjusted()
        ctx = Context(
            prec=max(magnitude + scale + 3, 1),
            rounding=ROUNDING,
            Emax=MAX_EMAX,
            Emin=MIN_EMIN,
        )
        quotient = ctx.divide(self.value, divisor.value)
        return Money(quotient.quantize(exponent, rounding=ROUNDING, context=ctx))

    def __str__(self) -> str:
        return format(self.value, "f")

    def __repr__(self) -> str:
        return f"Money('{self}')"


def money_sum(values: Any) -> Money:
    """Left fold of ``+`` over ``values`` starting from zero."""
    total = Money.zero()
    for value in values:
        total = total + value
    return total
