"""Display helpers for scaled prices.

Prices are stored as decimal odds ×100.  Bettors see either decimal
(``"2.50"``) or fractional profit odds (``"3/2"``).  Missing prices render as
an em dash.
"""

from __future__ import annotations

from math import gcd
from typing import Literal, Optional, Tuple

from wagering.core.engine_config import PRICE_SCALE

MISSING = "—"

OddsDisplayFormat = Literal["fraction", "decimal"]


def format_decimal(price: Optional[int]) -> str:
    if price is None:
        return MISSING
    return f"{price // PRICE_SCALE}.{price % PRICE_SCALE:02d}"


def to_fraction(price: Optional[int]) -> Optional[Tuple[int, int]]:
    """Profit odds as a reduced ``(numerator, denominator)``.

    ``250`` → ``(3, 2)``.  Prices at or below 1.00× (``≤ 100``) read as
    ``(1, 1)``.
    """
    if price is None:
        return None
    if price <= PRICE_SCALE:
        return (1, 1)
    numerator = price - PRICE_SCALE
    divisor = gcd(numerator, PRICE_SCALE)
    return (numerator // divisor, PRICE_SCALE // divisor)


def format_fraction(price: Optional[int]) -> str:
    fraction = to_fraction(price)
    if fraction is None:
        return MISSING
    return f"{fraction[0]}/{fraction[1]}"


def format_price(price: Optional[int], fmt: OddsDisplayFormat = "fraction") -> str:
    if fmt == "decimal":
        return format_decimal(price)
    return format_fraction(price)


def potential_profit(stake: int, price: Optional[int]) -> Optional[int]:
    """Coins won on top of the stake if the pick wins (integer, floored)."""
    fraction = to_fraction(price)
    if fraction is None:
        return None
    if price <= PRICE_SCALE:
        return 0
    return (stake * fraction[0]) // fraction[1]
