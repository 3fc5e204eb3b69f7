"""
Core types, constants and exceptions for the solvency engine.

This module provides the foundational pieces shared by every other module:
1. Decimal context: a private high-precision context for all fixed-point work
2. Constants: 128-bit integer bounds and the 18-place fixed-point scale
3. Exceptions: SolvencyError and the domain-specific error types
4. Immutable data structures: Coin, DebtAmount
5. Type aliases: PriceMap, AssetParamsMap

Amounts are plain Python ints constrained to the unsigned (or signed) 128-bit
range. Prices, ratios and health factors are decimal.Decimal values with at
most DECIMAL_PLACES fractional digits. Every conversion between the two makes
its rounding direction explicit (see numeric.py).
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Context, Decimal, ROUND_DOWN, InvalidOperation, DivisionByZero, Overflow
from typing import Dict, Mapping, Optional


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# The engine never touches the global Decimal context. All arithmetic that is
# not exact integer math runs inside localcontext() with this context.
#
# Context parameters:
#   - prec=100: wide enough for 256-bit intermediates at 18 fractional digits
#   - rounding=ROUND_DOWN: truncation, matching fixed-point integer division
#   - traps: invalid operations and overflow surface as exceptions
#
ENGINE_DECIMAL_CONTEXT = Context(
    prec=100,
    rounding=ROUND_DOWN,
    traps=[InvalidOperation, DivisionByZero, Overflow],
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Fractional digits carried by every fixed-point decimal.
DECIMAL_PLACES = 18
DECIMAL_FRACTIONAL = 10 ** DECIMAL_PLACES

# Unsigned / signed 128-bit integer bounds for amounts.
UINT128_MAX = 2 ** 128 - 1
INT128_MIN = -(2 ** 127)
INT128_MAX = 2 ** 127 - 1

# Bounds on the atomics (value * 10**18) of an unsigned fixed-point decimal.
DECIMAL_MAX_ATOMICS = UINT128_MAX

# Bounds on the atomics of the signed decimal bridge (256-bit, so that every
# 128-bit integer is representable).
SIGNED_DECIMAL_MIN_ATOMICS = -(2 ** 255)
SIGNED_DECIMAL_MAX_ATOMICS = 2 ** 255 - 1

DECIMAL_ZERO = Decimal("0")
DECIMAL_ONE = Decimal("1")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from denom to oracle price (value units per smallest amount unit).
PriceMap = Mapping[str, Decimal]

# Mapping from denom to amount.
AmountMap = Dict[str, int]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class SolvencyError(Exception):
    """Base exception for all solvency-engine errors."""
    pass


class HealthError(SolvencyError):
    """Base exception for errors raised while computing account health."""
    pass


class MissingDataError(HealthError):
    """Raised when an input required for a computation was not provided."""

    message = "{key} is missing"

    def __init__(self, key: str):
        self.key = key
        super().__init__(self.message.format(key=key))


class MissingPrice(MissingDataError):
    """Raised when a denom has no oracle price."""
    message = "{key} was not provided a price to compute health with"


class MissingAssetParams(MissingDataError):
    """Raised when a denom that must be valued has no asset params."""
    message = "{key} was not provided asset params to compute health with"


class MissingPerpParams(MissingDataError):
    """Raised when a perp denom has no perp params."""
    message = "{key} was not provided perp params to compute health with"


class MissingHLSParams(MissingDataError):
    """Raised when a high-levered-strategy account needs HLS params that are absent."""
    message = "{key} does not have HLS parameters"


class MissingUSDCMarginParams(MissingDataError):
    """Raised when a USDC-margin account needs USDC-margin perp params that are absent."""
    message = "{key} does not have USDC margin parameters"


class MissingVaultConfig(MissingDataError):
    """Raised when a vault position has no vault config."""
    message = "{key} was not provided vault config to compute health with"


class MissingVaultValues(MissingDataError):
    """Raised when a vault position has no vault position value."""
    message = "{key} was not provided vault values to compute health with"


class MissingAmount(MissingDataError):
    """Raised when a position needed for an estimate holds no amount."""
    message = "{key} amount was not provided"


class DenomNotPresent(MissingDataError):
    """Raised when a denom is not present in the account's positions."""
    message = "{key} is not present in the positions"


class MathError(HealthError, ArithmeticError):
    """Base exception for checked fixed-point arithmetic failures."""
    pass


class CheckedOverflow(MathError):
    """Raised when an integer result leaves its 128-bit range."""
    pass


class DivideByZero(MathError):
    """Raised when a fixed-point or integer division has a zero divisor."""
    pass


class DecimalRangeExceeded(MathError):
    """Raised when a fixed-point decimal leaves its representable range or precision."""
    pass


class ConversionOverflow(MathError):
    """Raised when converting between amount and decimal types would not fit."""
    pass


class InvalidParams(SolvencyError):
    """Raised when asset, perp or vault parameters violate their invariants."""
    pass


class DuplicateDenom(SolvencyError):
    """Raised when a positions snapshot lists the same denom twice in one category."""
    pass


class HealthGuardError(SolvencyError):
    """Base exception for rejected health transitions."""
    pass


class AboveMaxLTV(HealthGuardError):
    """Raised when an action would take a healthy account above its max LTV."""
    pass


class HealthNotImproved(HealthGuardError):
    """Raised when an unhealthy account's max-LTV health factor decreased."""
    pass


class UnhealthyLiquidationHfDecrease(HealthGuardError):
    """Raised when an unhealthy account's liquidation health factor decreased."""
    pass


class LiquidationError(SolvencyError):
    """Base exception for liquidation calculation errors."""
    pass


class HealthNotAvailable(LiquidationError):
    """Raised when the liquidation health factor is not available."""
    pass


class ZeroDebt(LiquidationError):
    """Raised when a liquidation is computed for an account with no debt or perp loss."""
    pass


class InvalidLiquidationAmounts(LiquidationError):
    """Raised when only one of the repaid debt or the seized collateral is zero."""
    pass


class NotLiquidatable(LiquidationError):
    """Raised when liquidating an account whose liquidation health factor is not below one."""
    pass


class CoinNotAvailable(LiquidationError):
    """Raised when the requested collateral is not held by the liquidatee."""
    pass


class LiquidationNotProfitable(LiquidationError):
    """Raised when the repaid debt is worth at least the collateral received."""
    pass


class SelfLiquidation(LiquidationError):
    """Raised when an account attempts to liquidate itself."""
    pass


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

def _check_amount(amount: int, what: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{what} must be int, got {type(amount).__name__}")
    if amount < 0 or amount > UINT128_MAX:
        raise ValueError(f"{what} must be within the unsigned 128-bit range, got {amount}")


@dataclass(frozen=True, slots=True)
class Coin:
    """
    An amount of a single denom, in the denom's smallest unit.

    Attributes:
        denom: Asset identifier (e.g., "uatom").
        amount: Non-negative integer amount within the unsigned 128-bit range.
    """
    denom: str
    amount: int

    def __post_init__(self):
        if not self.denom or not self.denom.strip():
            raise ValueError("Coin denom cannot be empty")
        _check_amount(self.amount, f"Coin amount for {self.denom}")

    def is_zero(self) -> bool:
        return self.amount == 0

    def __repr__(self) -> str:
        return f"Coin({self.amount}{self.denom})"


@dataclass(frozen=True, slots=True)
class DebtAmount:
    """
    An outstanding debt: the borrowed amount including accrued interest,
    plus the lender's share accounting for it.
    """
    denom: str
    amount: int
    shares: int = 0

    def __post_init__(self):
        if not self.denom or not self.denom.strip():
            raise ValueError("DebtAmount denom cannot be empty")
        _check_amount(self.amount, f"Debt amount for {self.denom}")
        _check_amount(self.shares, f"Debt shares for {self.denom}")

    def to_coin(self) -> Coin:
        return Coin(self.denom, self.amount)


def get_price(prices: PriceMap, denom: str) -> Decimal:
    """Look up an oracle price, raising MissingPrice when absent."""
    price: Optional[Decimal] = prices.get(denom)
    if price is None:
        raise MissingPrice(denom)
    return price
