"""
health.py - Health results, health states and the health-transition guard

Key Formulas:
    max_ltv_health_factor     = (max_ltv_adjusted_collateral + perp_max_ltv_numerator)
                                / (debt + perp_max_ltv_denominator)
    liquidation_health_factor = (liq_adjusted_collateral + perp_liq_numerator)
                                / (debt + perp_liq_denominator)

The perp terms weight each position's notional by its market's LTV (see
PerpHealthFactorValues), so unrealised PnL is already inside them. Both
factors are floored to 18 fractional digits and are None when the max-LTV
denominator is zero (an account with nothing owed cannot be unhealthy).

    liquidatable  = liquidation_health_factor < 1
    above_max_ltv = max_ltv_health_factor < 1
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
import logging
from typing import Optional, Union

from .core import (
    DECIMAL_ONE,
    AboveMaxLTV, HealthNotImproved, UnhealthyLiquidationHfDecrease,
)
from .numeric import to_decimal


logger = logging.getLogger(__name__)


# ============================================================================
# KINDS
# ============================================================================

class SwapKind(Enum):
    """Whether a swap may borrow to increase its size."""
    DEFAULT = "default"
    MARGIN = "margin"


class LiquidationPriceKind(Enum):
    """Which position's price is solved for in liquidation_price()."""
    ASSET = "asset"
    DEBT = "debt"
    PERP = "perp"


class Direction(Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


BORROW_TARGET_DEPOSIT = "deposit"
BORROW_TARGET_WALLET = "wallet"
BORROW_TARGET_VAULT = "vault"
BORROW_TARGET_SWAP = "swap"


@dataclass(frozen=True, slots=True)
class BorrowTarget:
    """
    Where borrowed funds go, which determines how much extra collateral the
    borrow itself creates. Use the factory classmethods.
    """
    kind: str
    vault_address: Optional[str] = None
    denom_out: Optional[str] = None
    slippage: Optional[Decimal] = None

    def __post_init__(self):
        if self.slippage is not None:
            object.__setattr__(self, "slippage", to_decimal(self.slippage))

    @classmethod
    def deposit(cls) -> "BorrowTarget":
        return cls(BORROW_TARGET_DEPOSIT)

    @classmethod
    def wallet(cls) -> "BorrowTarget":
        return cls(BORROW_TARGET_WALLET)

    @classmethod
    def vault(cls, address: str) -> "BorrowTarget":
        return cls(BORROW_TARGET_VAULT, vault_address=address)

    @classmethod
    def swap(cls, denom_out: str, slippage) -> "BorrowTarget":
        return cls(BORROW_TARGET_SWAP, denom_out=denom_out, slippage=slippage)


# ============================================================================
# HEALTH VALUES
# ============================================================================

@dataclass(frozen=True, slots=True)
class CollateralValue:
    total_collateral_value: int = 0
    max_ltv_adjusted_collateral: int = 0
    liquidation_threshold_adjusted_collateral: int = 0

    def __add__(self, other: "CollateralValue") -> "CollateralValue":
        return CollateralValue(
            self.total_collateral_value + other.total_collateral_value,
            self.max_ltv_adjusted_collateral + other.max_ltv_adjusted_collateral,
            self.liquidation_threshold_adjusted_collateral + other.liquidation_threshold_adjusted_collateral,
        )


@dataclass(frozen=True, slots=True)
class PerpPnlValues:
    """Aggregate perp PnL in value terms: profit floored, loss ceiled."""
    profit: int = 0
    loss: int = 0


@dataclass(frozen=True, slots=True)
class PerpHealthFactorValues:
    """
    LTV-weighted perp terms added to the health factor numerators and
    denominators.

        long:  num = |size| * current * (ltv - closing_fee) + funding_max * base_price * ltv
               den = |size| * entry + funding_min * base_price
        short: num = |size| * entry + funding_max * base_price * ltv
               den = |size| * current * (2 - ltv + closing_fee) + funding_min * base_price
    """
    max_ltv_numerator: int = 0
    max_ltv_denominator: int = 0
    liq_ltv_numerator: int = 0
    liq_ltv_denominator: int = 0

    def __add__(self, other: "PerpHealthFactorValues") -> "PerpHealthFactorValues":
        return PerpHealthFactorValues(
            self.max_ltv_numerator + other.max_ltv_numerator,
            self.max_ltv_denominator + other.max_ltv_denominator,
            self.liq_ltv_numerator + other.liq_ltv_numerator,
            self.liq_ltv_denominator + other.liq_ltv_denominator,
        )


@dataclass(frozen=True, slots=True)
class HealthValuesResponse:
    """
    Immutable result of compute_health().

    All values are in oracle value units. Health factors are None when the
    account owes nothing (no debt and no weighted perp exposure). The perp
    profit and loss fields report raw PnL and are not the health factor terms.
    """
    total_debt_value: int
    total_collateral_value: int
    max_ltv_adjusted_collateral: int
    liquidation_threshold_adjusted_collateral: int
    max_ltv_health_factor: Optional[Decimal]
    liquidation_health_factor: Optional[Decimal]
    perps_pnl_profit: int
    perps_pnl_loss: int
    liquidatable: bool
    above_max_ltv: bool
    has_perps: bool

    def net_value(self) -> int:
        """Signed account net value: collateral + profit - debt - loss."""
        return (self.total_collateral_value + self.perps_pnl_profit
                - self.total_debt_value - self.perps_pnl_loss)


def is_below_one(value: Optional[Decimal]) -> bool:
    """True when a health factor exists and is strictly below one."""
    return value is not None and value < DECIMAL_ONE


# ============================================================================
# HEALTH STATE
# ============================================================================

@dataclass(frozen=True, slots=True)
class Healthy:
    pass


@dataclass(frozen=True, slots=True)
class Unhealthy:
    max_ltv_health_factor: Decimal
    liquidation_health_factor: Optional[Decimal] = None


HealthState = Union[Healthy, Unhealthy]


def health_state_from_values(health: HealthValuesResponse) -> HealthState:
    if not health.above_max_ltv:
        return Healthy()
    return Unhealthy(health.max_ltv_health_factor, health.liquidation_health_factor)


def assert_health_not_weakened(prev: HealthState, new: HealthState, account_id: str = "") -> None:
    """
    Reject an account action that weakens health.

    Rules:
        (any, Healthy)            -> allowed
        (Healthy, Unhealthy)      -> AboveMaxLTV
        (Unhealthy, Unhealthy)    -> HealthNotImproved if the max-LTV health
                                     factor decreased, UnhealthyLiquidationHfDecrease
                                     if the liquidation health factor decreased

    Raises:
        AboveMaxLTV, HealthNotImproved, UnhealthyLiquidationHfDecrease
    """
    if isinstance(new, Healthy):
        return

    if isinstance(prev, Healthy):
        logger.debug("account %s: healthy -> unhealthy (max ltv hf %s)", account_id, new.max_ltv_health_factor)
        raise AboveMaxLTV(
            f"Actions resulted in exceeding maximum allowed loan-to-value. "
            f"Max LTV health factor: {new.max_ltv_health_factor}"
        )

    if new.max_ltv_health_factor < prev.max_ltv_health_factor:
        raise HealthNotImproved(
            f"Account {account_id} is unhealthy and the max LTV health factor decreased: "
            f"{prev.max_ltv_health_factor} -> {new.max_ltv_health_factor}"
        )

    if (prev.liquidation_health_factor is not None
            and new.liquidation_health_factor is not None
            and new.liquidation_health_factor < prev.liquidation_health_factor):
        raise UnhealthyLiquidationHfDecrease(
            f"Account {account_id} is unhealthy and the liquidation health factor decreased: "
            f"{prev.liquidation_health_factor} -> {new.liquidation_health_factor}"
        )
