"""
pricing.py - Perpetual execution prices and position PnL

Execution prices apply market impact derived from the market skew
(long OI - short OI) relative to the market's skew scale:

    initial_premium = skew / skew_scale
    final_premium   = (skew + size) / skew_scale     (opening)
                    = (skew - size) / skew_scale     (closing)
    avg_premium     = max((initial_premium + final_premium) / 2, -1)
    exec_price      = oracle_price * (1 + avg_premium)

A position's price PnL is size * (exit_price - entry_price), reported in
base-denom amounts with the magnitude floored.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .core import Coin, DECIMAL_ONE, DECIMAL_ZERO
from .numeric import (
    check_int128,
    signed_add, signed_div, signed_from_ratio, signed_mul, signed_sub,
    to_uint_floor, to_decimal,
)


PNL_PROFIT = "PROFIT"
PNL_LOSS = "LOSS"
PNL_BREAK_EVEN = "BREAK_EVEN"

_TWO = Decimal("2")
_MINUS_ONE = Decimal("-1")


@dataclass(frozen=True, slots=True)
class PnL:
    """
    Profit, Loss or BreakEven. Profit and Loss carry a non-zero base-denom coin.
    """
    kind: str
    coin: Optional[Coin] = None

    @classmethod
    def profit(cls, denom: str, amount: int) -> "PnL":
        return cls(PNL_PROFIT, Coin(denom, amount)) if amount else cls.break_even()

    @classmethod
    def loss(cls, denom: str, amount: int) -> "PnL":
        return cls(PNL_LOSS, Coin(denom, amount)) if amount else cls.break_even()

    @classmethod
    def break_even(cls) -> "PnL":
        return cls(PNL_BREAK_EVEN)

    @property
    def amount(self) -> int:
        return self.coin.amount if self.coin is not None else 0

    def to_signed(self) -> int:
        """Profit as a positive amount, loss as a negative amount."""
        return -self.amount if self.kind == PNL_LOSS else self.amount


# ============================================================================
# EXECUTION PRICES
# ============================================================================

def _execution_price(initial_premium: Decimal, final_premium: Decimal, oracle_price: Decimal) -> Decimal:
    avg_premium = signed_div(signed_add(initial_premium, final_premium), _TWO)
    # Market impact can never push the price below zero.
    avg_premium = max(avg_premium, _MINUS_ONE)
    return signed_mul(signed_add(DECIMAL_ONE, avg_premium), oracle_price)


def opening_execution_price(skew: int, skew_scale: int, size: int, oracle_price: Decimal) -> Decimal:
    """Price, with market impact, at which a position of `size` is opened."""
    initial_premium = signed_from_ratio(skew, skew_scale)
    final_premium = signed_from_ratio(check_int128(skew + size, "Add"), skew_scale)
    return _execution_price(initial_premium, final_premium, to_decimal(oracle_price))


def closing_execution_price(skew: int, skew_scale: int, size: int, oracle_price: Decimal) -> Decimal:
    """Price, with market impact, at which a position of `size` is closed."""
    initial_premium = signed_from_ratio(skew, skew_scale)
    final_premium = signed_from_ratio(check_int128(skew - size, "Sub"), skew_scale)
    return _execution_price(initial_premium, final_premium, to_decimal(oracle_price))


# ============================================================================
# PNL
# ============================================================================

def compute_pnl(size: Decimal, entry_price: Decimal, exit_price: Decimal, base_denom: str) -> PnL:
    """
    Price PnL of a position: size * (exit_price - entry_price).

    Args:
        size: Signed position size (negative for shorts).
        entry_price: Price the position was entered at.
        exit_price: Price the position is valued at.
        base_denom: Denom PnL is settled in.

    Returns:
        PnL with its magnitude floored to a whole base-denom amount.

    Example:
        >>> compute_pnl(Decimal("123.45"), Decimal("234.56"), Decimal("250"), "uusdc")
        PnL(kind='PROFIT', coin=Coin(1906uusdc))
    """
    pnl = signed_mul(to_decimal(size, signed=True), signed_sub(to_decimal(exit_price), to_decimal(entry_price)))

    if pnl > DECIMAL_ZERO:
        return PnL.profit(base_denom, to_uint_floor(pnl))
    if pnl < DECIMAL_ZERO:
        return PnL.loss(base_denom, to_uint_floor(-pnl))
    return PnL.break_even()
