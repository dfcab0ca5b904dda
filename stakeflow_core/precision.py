"""
Fixed-point constants and checked integer helpers for StakeFlow.

The engine never uses floating point.  All amounts, durations and
multipliers are Python ``int`` values constrained to the width of an
unsigned 256-bit word:

    0 <= value <= UINT256_MAX

Any intermediate result outside that range raises
:class:`~stakeflow_core.errors.ArithmeticOverflow` instead of wrapping.
"""

from __future__ import annotations

from stakeflow_core.errors import ArithmeticOverflow

# One day, in the time source's native unit (seconds).
TIME_UNIT: int = 86_400

# Fixed-point scale for the dynamic boost multiplier.
BOOST_PRECISION: int = 10 ** 6

# Denominator for percentage yields.
PERCENT: int = 100

UINT_BITS: int = 256
UINT256_MAX: int = (1 << UINT_BITS) - 1


def checked(value: int, what: str = "value") -> int:
    """Return *value* unchanged if it fits the unsigned width.

    >>> checked(5)
    5
    """
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"{what} out of range: {value}")
    return value


def checked_mul(*factors: int) -> int:
    """Multiply *factors* left to right, checking every partial product."""
    result = 1
    for factor in factors:
        result = checked(result * checked(factor, "factor"), "product")
    return result


def checked_add(a: int, b: int) -> int:
    return checked(checked(a, "addend") + checked(b, "addend"), "sum")


def checked_sub(a: int, b: int) -> int:
    """Subtract, refusing to go below zero."""
    return checked(a - b, "difference")


def days_to_seconds(days: int) -> int:
    """Convert an integer day count into TIME_UNIT seconds."""
    return checked_mul(days, TIME_UNIT)


def format_units(value: int, decimals: int = 0) -> str:
    """Human-readable rendering of an integer amount."""
    if decimals <= 0:
        return f"{value:,}"
    whole, frac = divmod(value, 10 ** decimals)
    return f"{whole:,}.{frac:0{decimals}d}"
