"""
ledger/money.py — Currency arithmetic for the ledger engine.

Every amount the engine touches is a Decimal with two decimal places.
Comparisons that decide a business outcome (split sums, overpayment,
"fully settled") all go through the helpers below so the SAME tolerance
is used everywhere. There is exactly one tolerance constant; do not
introduce a second one in a caller.

No Flask imports. No SQLAlchemy imports.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

# One cent. Used as the quantum for rounding.
CENT = Decimal("0.01")

# Absolute difference under which two amounts are treated as equal.
TOLERANCE = Decimal("0.01")

# The balance sum of a closed group must stay within this of zero.
CONSERVATION_TOLERANCE = Decimal("0.001")

ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """
    Coerces `value` to a Decimal rounded to the cent.

    Floats are converted through str() so 0.1 becomes Decimal("0.10"),
    not Decimal("0.1000000000000000055511151231257827021181583404541015625").
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        amount = Decimal(value)
    return round_money(amount)


def round_money(value: Decimal) -> Decimal:
    """Rounds half-up to the cent."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | int | float | str) -> str:
    """String form used in API payloads and CSV files, e.g. "10.50"."""
    return str(to_money(value))


def money_sum(values: Iterable[Decimal]) -> Decimal:
    """Sum that starts from Decimal zero so an empty input returns 0.00."""
    return sum(values, ZERO)


def amounts_match(a: Decimal, b: Decimal) -> bool:
    """True when |a - b| <= TOLERANCE."""
    return abs(a - b) <= TOLERANCE


def exceeds(amount: Decimal, limit: Decimal) -> bool:
    """True when `amount` is more than `limit` by over the tolerance."""
    return amount > limit + TOLERANCE


def is_cleared(remaining: Decimal) -> bool:
    """True when an outstanding remainder is small enough to count as paid."""
    return remaining <= TOLERANCE
