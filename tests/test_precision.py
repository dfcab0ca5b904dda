"""
Tests for stakeflow_core.precision — checked fixed-width integer helpers.
"""

import pytest

from stakeflow_core.errors import ArithmeticOverflow
from stakeflow_core.precision import (
    TIME_UNIT,
    UINT256_MAX,
    checked,
    checked_add,
    checked_mul,
    checked_sub,
    days_to_seconds,
    format_units,
)


class TestChecked:
    def test_bounds(self):
        assert checked(0) == 0
        assert checked(UINT256_MAX) == UINT256_MAX

    def test_out_of_range(self):
        with pytest.raises(ArithmeticOverflow):
            checked(-1)
        with pytest.raises(ArithmeticOverflow):
            checked(UINT256_MAX + 1)

    def test_error_names_the_value(self):
        with pytest.raises(ArithmeticOverflow, match="deposit"):
            checked(-5, "deposit")


class TestArithmetic:
    def test_mul(self):
        assert checked_mul(100, 100, 100, 1_369_863) == 1_369_863_000_000
        assert checked_mul() == 1

    def test_mul_overflow_on_partial_product(self):
        with pytest.raises(ArithmeticOverflow):
            checked_mul(2 ** 200, 2 ** 60, 0)

    def test_add(self):
        assert checked_add(2, 3) == 5
        with pytest.raises(ArithmeticOverflow):
            checked_add(UINT256_MAX, 1)

    def test_sub_never_negative(self):
        assert checked_sub(5, 5) == 0
        with pytest.raises(ArithmeticOverflow):
            checked_sub(1, 2)

    def test_days_to_seconds(self):
        assert days_to_seconds(7) == 7 * TIME_UNIT


class TestFormatUnits:
    def test_whole(self):
        assert format_units(1_000_000) == "1,000,000"

    def test_decimals(self):
        assert format_units(1_234_567, 3) == "1,234.567"
        assert format_units(5, 2) == "0.05"
