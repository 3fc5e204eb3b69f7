"""
Numeric Bridge Conformance Tests

INVARIANTS:

    1. Unsigned and signed amounts convert losslessly where both can hold them:
           u128 -> i128 -> signed decimal -> i128 -> u128  is the identity
       and values above i128::MAX fail loudly instead of wrapping.

    2. Pro-rating never leaves the interval spanned by zero and its total:
           min(0, total) <= prorate(total, slice, size) <= max(0, total)
       and the whole position receives exactly the total.

    3. A weighted average price lies between the prices averaged.
"""

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st
from decimal import Decimal

from solvency import (
    UINT128_MAX, INT128_MIN, INT128_MAX, ConversionOverflow,
    uint128_to_int128, int128_to_uint128, int128_to_signed_decimal,
    signed_decimal_to_int_floor, uint128_to_decimal,
    weighted_avg, prorate_i128_by_amount,
)
from solvency.numeric import to_uint_floor


amounts = st.integers(min_value=0, max_value=10 ** 12)
prices = st.decimals(min_value=Decimal("0.000001"), max_value=Decimal("10000"), places=6,
                     allow_nan=False, allow_infinity=False)


class TestIntegerBridge:
    """Property-based conversion tests."""

    @given(st.integers(min_value=0, max_value=INT128_MAX))
    @settings(max_examples=200)
    def test_unsigned_round_trip(self, value):
        """
        PROPERTY: u128 -> i128 -> signed decimal -> i128 -> u128 is the identity.
        """
        signed = uint128_to_int128(value)
        as_decimal = int128_to_signed_decimal(signed)
        assert int128_to_uint128(signed_decimal_to_int_floor(as_decimal)) == value

    @given(st.integers(min_value=INT128_MAX + 1, max_value=UINT128_MAX))
    @settings(max_examples=50)
    def test_above_signed_range_fails(self, value):
        """
        PROPERTY: u128 values above i128::MAX raise instead of wrapping.
        """
        with pytest.raises(ConversionOverflow):
            uint128_to_int128(value)

    @given(st.integers(min_value=INT128_MIN, max_value=-1))
    @settings(max_examples=50)
    def test_negative_to_unsigned_fails(self, value):
        with pytest.raises(ConversionOverflow):
            int128_to_uint128(value)

    @given(st.integers(min_value=0, max_value=UINT128_MAX // 10 ** 18))
    @settings(max_examples=100)
    def test_whole_decimal_round_trip(self, value):
        """
        PROPERTY: Whole-number decimals convert back to the same amount.
        """
        assert to_uint_floor(uint128_to_decimal(value)) == value


class TestProrating:
    """Property-based pro-rating tests."""

    @given(st.integers(min_value=-(10 ** 24), max_value=10 ** 24), st.integers(min_value=1, max_value=10 ** 15))
    @settings(max_examples=200)
    def test_whole_slice_gets_total(self, total, size):
        """
        PROPERTY: prorate(total, size, size) == total.
        """
        assert prorate_i128_by_amount(total, size, size) == total

    @given(st.integers(min_value=-(10 ** 24), max_value=10 ** 24), amounts)
    def test_empty_position_gets_nothing(self, total, slice_amount):
        assert prorate_i128_by_amount(total, slice_amount, 0) == 0

    @given(
        st.integers(min_value=-(10 ** 24), max_value=10 ** 24),
        st.integers(min_value=0, max_value=10 ** 15),
        st.integers(min_value=1, max_value=10 ** 15),
    )
    @settings(max_examples=300)
    def test_slice_stays_within_total(self, total, slice_amount, size):
        """
        PROPERTY: min(0, total) <= prorate(total, slice, size) <= max(0, total).
        """
        assume(slice_amount <= size)
        result = prorate_i128_by_amount(total, slice_amount, size)
        assert min(0, total) <= result <= max(0, total)


class TestWeightedAverage:
    """Property-based weighted average tests."""

    @given(prices, amounts, prices, amounts)
    @settings(max_examples=200)
    def test_average_between_prices(self, old_price, old_size, new_price, new_size):
        """
        PROPERTY: min(p, q) <= weighted_avg(p, m, q, n) <= max(p, q).
        """
        assume(old_size + new_size > 0)
        avg = weighted_avg(old_price, old_size, new_price, new_size)
        assert min(old_price, new_price) <= avg <= max(old_price, new_price)

    @given(prices, prices, amounts)
    def test_empty_old_position_takes_new_price(self, old_price, new_price, new_size):
        assert weighted_avg(old_price, 0, new_price, new_size) == new_price
