from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

MICROS = Decimal("1000000")

Amount = Union[int, Decimal]


def to_base(amount: Amount, is_foreign: bool, rate: Decimal) -> Decimal:
    """Convert an amount to the base currency.

    ``rate`` is base units per one foreign unit and is used exactly as entered:
    zero or negative rates give degenerate results rather than errors.
    """
    if is_foreign:
        return Decimal(amount) * rate
    return Decimal(amount)


def to_foreign(amount: Amount, rate: Decimal) -> Decimal:
    # Unguarded: a zero rate raises decimal.DivisionByZero (a ZeroDivisionError).
    return Decimal(amount) / rate


def quantize_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def rate_to_micros(rate: Decimal) -> int:
    return int(
        (Decimal(rate) * MICROS).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )


def micros_to_rate(micros: int) -> Decimal:
    return Decimal(micros) / MICROS
