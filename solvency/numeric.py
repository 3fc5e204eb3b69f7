"""
numeric.py - Checked fixed-point arithmetic for amounts and decimals

Every value that crosses a health or liquidation formula is either:
- an amount: a Python int in the unsigned (or signed) 128-bit range, or
- a decimal: a decimal.Decimal with at most 18 fractional digits.

ARCHITECTURE:
=============

Decimals are operated on through their "atomics" (value * 10**18, an exact
integer), so every operation here is exact integer arithmetic followed by an
explicit rounding step:

    dec_mul(a, b)        -> truncate to 18 places
    dec_div(a, b)        -> truncate to 18 places
    from_ratio(n, d)     -> floor(n / d) to 18 places
    mul_floor(amt, dec)  -> floor(amt * dec)          (collateral, profit)
    mul_ceil(amt, dec)   -> ceil(amt * dec)           (debt, loss, fees)
    div_floor(amt, dec)  -> floor(amt / dec)          (max-amount estimates)

Signed decimal products and quotients truncate toward zero; conversion from a
signed decimal to an integer floors toward negative infinity.

Any result outside its range raises a MathError subclass. Nothing here
clamps or saturates silently apart from saturating_sub.
"""

from __future__ import annotations
from decimal import Decimal, localcontext
from typing import Union

from .core import (
    ENGINE_DECIMAL_CONTEXT,
    DECIMAL_PLACES, DECIMAL_FRACTIONAL, DECIMAL_MAX_ATOMICS,
    SIGNED_DECIMAL_MIN_ATOMICS, SIGNED_DECIMAL_MAX_ATOMICS,
    UINT128_MAX, INT128_MIN, INT128_MAX,
    CheckedOverflow, DivideByZero, DecimalRangeExceeded, ConversionOverflow,
)


DecimalLike = Union[Decimal, str, int, float]


# ============================================================================
# DECIMAL PARSING AND ATOMICS
# ============================================================================

def to_decimal(value: DecimalLike, signed: bool = False) -> Decimal:
    """
    Normalise a value to a fixed-point Decimal.

    Floats are converted through str() so that 0.85 means Decimal("0.85").

    Raises:
        DecimalRangeExceeded: more than 18 fractional digits, a non-finite
            value, a negative value where signed=False, or out of range.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a decimal value")
    if isinstance(value, float):
        value = str(value)
    d = value if isinstance(value, Decimal) else Decimal(value)
    if not d.is_finite():
        raise DecimalRangeExceeded(f"decimal must be finite, got {d}")
    atomics = _atomics_of(d)
    _check_decimal_atomics(atomics, signed)
    return d


def _atomics_of(d: Decimal) -> int:
    with localcontext(ENGINE_DECIMAL_CONTEXT):
        scaled = d.scaleb(DECIMAL_PLACES)
        if scaled != scaled.to_integral_value():
            raise DecimalRangeExceeded(
                f"decimal {d} has more than {DECIMAL_PLACES} fractional digits"
            )
        return int(scaled)


def atomics(d: Decimal) -> int:
    """Return the exact integer value * 10**18 of a fixed-point decimal."""
    return _atomics_of(d)


def from_atomics(value: int) -> Decimal:
    """Build a Decimal from its atomics (value * 10**18), exactly."""
    with localcontext(ENGINE_DECIMAL_CONTEXT):
        return Decimal(value).scaleb(-DECIMAL_PLACES)


def _check_decimal_atomics(value: int, signed: bool) -> int:
    if signed:
        if value < SIGNED_DECIMAL_MIN_ATOMICS or value > SIGNED_DECIMAL_MAX_ATOMICS:
            raise DecimalRangeExceeded(f"signed decimal atomics out of range: {value}")
    elif value < 0 or value > DECIMAL_MAX_ATOMICS:
        raise DecimalRangeExceeded(f"decimal atomics out of range: {value}")
    return value


def _tdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(numerator) // abs(denominator)
    return -quotient if (numerator < 0) != (denominator < 0) else quotient


# ============================================================================
# INTEGER RANGE CHECKS
# ============================================================================

def check_uint128(value: int, operation: str = "operation") -> int:
    """Return value if it fits an unsigned 128-bit integer, else raise CheckedOverflow."""
    if value < 0 or value > UINT128_MAX:
        raise CheckedOverflow(f"Cannot {operation} with given operands: result {value} out of u128 range")
    return value


def check_int128(value: int, operation: str = "operation") -> int:
    """Return value if it fits a signed 128-bit integer, else raise CheckedOverflow."""
    if value < INT128_MIN or value > INT128_MAX:
        raise CheckedOverflow(f"Cannot {operation} with given operands: result {value} out of i128 range")
    return value


def checked_add(a: int, b: int) -> int:
    return check_uint128(a + b, "Add")


def checked_sub(a: int, b: int) -> int:
    return check_uint128(a - b, "Sub")


# ============================================================================
# UNSIGNED FIXED-POINT OPERATIONS
# ============================================================================

def dec_add(a: Decimal, b: Decimal) -> Decimal:
    return from_atomics(_check_decimal_atomics(atomics(a) + atomics(b), signed=False))


def dec_sub(a: Decimal, b: Decimal) -> Decimal:
    result = atomics(a) - atomics(b)
    if result < 0:
        raise CheckedOverflow(f"Cannot Sub with given operands: {a} - {b}")
    return from_atomics(result)


def saturating_sub(a: Decimal, b: Decimal) -> Decimal:
    """a - b, or zero when b > a."""
    return from_atomics(max(atomics(a) - atomics(b), 0))


def dec_mul(a: Decimal, b: Decimal) -> Decimal:
    """Product truncated to 18 fractional digits."""
    product = atomics(a) * atomics(b) // DECIMAL_FRACTIONAL
    return from_atomics(_check_decimal_atomics(product, signed=False))


def dec_div(a: Decimal, b: Decimal) -> Decimal:
    """Quotient truncated to 18 fractional digits."""
    divisor = atomics(b)
    if divisor == 0:
        raise DivideByZero(f"Cannot divide {a} by zero")
    quotient = atomics(a) * DECIMAL_FRACTIONAL // divisor
    return from_atomics(_check_decimal_atomics(quotient, signed=False))


def from_ratio(numerator: int, denominator: int) -> Decimal:
    """
    floor(numerator / denominator) as an 18-place decimal.

    Used for health factors and collateralisation ratios, where truncation
    never overstates solvency.
    """
    if denominator == 0:
        raise DivideByZero(f"Denominator must not be zero ({numerator} / 0)")
    quotient = numerator * DECIMAL_FRACTIONAL // denominator
    return from_atomics(_check_decimal_atomics(quotient, signed=False))


def mul_floor(amount: int, ratio: Decimal) -> int:
    """floor(amount * ratio) as a u128 amount."""
    return check_uint128(amount * atomics(ratio) // DECIMAL_FRACTIONAL, "Mul")


def mul_ceil(amount: int, ratio: Decimal) -> int:
    """ceil(amount * ratio) as a u128 amount."""
    return check_uint128(-(-amount * atomics(ratio) // DECIMAL_FRACTIONAL), "Mul")


def div_floor(amount: int, ratio: Decimal) -> int:
    """floor(amount / ratio) as a u128 amount."""
    divisor = atomics(ratio)
    if divisor == 0:
        raise DivideByZero(f"Cannot divide {amount} by zero")
    return check_uint128(amount * DECIMAL_FRACTIONAL // divisor, "Div")


def to_uint_floor(value: Decimal) -> int:
    """Integer part of a non-negative decimal."""
    return check_uint128(atomics(value) // DECIMAL_FRACTIONAL, "Floor")


# ============================================================================
# SIGNED FIXED-POINT OPERATIONS
# ============================================================================

def signed_add(a: Decimal, b: Decimal) -> Decimal:
    return from_atomics(_check_decimal_atomics(atomics(a) + atomics(b), signed=True))


def signed_sub(a: Decimal, b: Decimal) -> Decimal:
    return from_atomics(_check_decimal_atomics(atomics(a) - atomics(b), signed=True))


def signed_mul(a: Decimal, b: Decimal) -> Decimal:
    """Signed product truncated toward zero at 18 fractional digits."""
    product = _tdiv(atomics(a) * atomics(b), DECIMAL_FRACTIONAL)
    return from_atomics(_check_decimal_atomics(product, signed=True))


def signed_div(a: Decimal, b: Decimal) -> Decimal:
    """Signed quotient truncated toward zero at 18 fractional digits."""
    divisor = atomics(b)
    if divisor == 0:
        raise DivideByZero(f"Cannot divide {a} by zero")
    quotient = _tdiv(atomics(a) * DECIMAL_FRACTIONAL, divisor)
    return from_atomics(_check_decimal_atomics(quotient, signed=True))


def signed_from_ratio(numerator: int, denominator: int) -> Decimal:
    """numerator / denominator truncated toward zero at 18 fractional digits."""
    if denominator == 0:
        raise DivideByZero(f"Denominator must not be zero ({numerator} / 0)")
    quotient = _tdiv(numerator * DECIMAL_FRACTIONAL, denominator)
    return from_atomics(_check_decimal_atomics(quotient, signed=True))


def signed_decimal_to_int_floor(value: Decimal) -> int:
    """Floor a signed decimal toward negative infinity into an i128."""
    return check_int128(atomics(value) // DECIMAL_FRACTIONAL, "Floor")


def signed_decimal_to_int_trunc(value: Decimal) -> int:
    """Truncate a signed decimal toward zero into an i128."""
    return check_int128(_tdiv(atomics(value), DECIMAL_FRACTIONAL), "Truncate")


# ============================================================================
# CONVERSIONS
# ============================================================================

def uint128_to_int128(value: int) -> int:
    """Convert a u128 amount to i128, failing above i128::MAX."""
    if value < 0 or value > INT128_MAX:
        raise ConversionOverflow(f"Error converting Uint128 to Int128 for {value}")
    return value


def int128_to_uint128(value: int) -> int:
    """Convert a non-negative i128 to u128, failing on negatives."""
    if value < 0 or value > INT128_MAX:
        raise ConversionOverflow(f"Error converting Int128 to Uint128 for {value}")
    return value


def int128_to_signed_decimal(value: int) -> Decimal:
    """Convert an i128 amount to a whole-number signed decimal."""
    check_int128(value, "Convert")
    return from_atomics(_check_decimal_atomics(value * DECIMAL_FRACTIONAL, signed=True))


def uint128_to_decimal(value: int) -> Decimal:
    """Convert a u128 amount to a whole-number decimal, failing if it does not fit."""
    check_uint128(value, "Convert")
    scaled = value * DECIMAL_FRACTIONAL
    if scaled > DECIMAL_MAX_ATOMICS:
        raise ConversionOverflow(f"Error converting Uint128 to Decimal for {value}")
    return from_atomics(scaled)


# ============================================================================
# POSITION HELPERS
# ============================================================================

def weighted_avg(old_price: Decimal, old_size: int, new_price: Decimal, new_size: int) -> Decimal:
    """
    Size-weighted average of two prices.

        (old_price * old_size + new_price * new_size) / (old_size + new_size)

    Returns new_price unchanged when old_size is zero.
    """
    if old_size == 0:
        return new_price

    total_size = checked_add(old_size, new_size)
    numerator = dec_add(
        dec_mul(old_price, uint128_to_decimal(old_size)),
        dec_mul(new_price, uint128_to_decimal(new_size)),
    )
    return dec_div(numerator, uint128_to_decimal(total_size))


def prorate_i128_by_amount(total: int, slice_amount: int, total_size: int) -> int:
    """
    Pro-rate a signed total by slice_amount / total_size, flooring the result.

    Used to split realised PnL or accrued funding when part of a position is
    closed. Returns 0 when total_size is zero; returns total exactly when the
    slice is the whole position.
    """
    if total_size == 0:
        return 0

    ratio = signed_div(
        int128_to_signed_decimal(uint128_to_int128(slice_amount)),
        int128_to_signed_decimal(uint128_to_int128(total_size)),
    )
    return signed_decimal_to_int_floor(signed_mul(int128_to_signed_decimal(total), ratio))
