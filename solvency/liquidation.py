"""
liquidation.py - Liquidation amounts, bonus curve and liquidation guards

Given the liquidatee's pre-liquidation health, one collateral asset and one
debt asset, this module decides how much debt the liquidator repays, how much
collateral leaves the liquidatee, how much of it the liquidator receives and
how much goes to the protocol.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES:
   - LiquidationConfig: dust threshold, perps bonus ratio, fee recipient
   - HealthData: the health figures a liquidation needs
   - LiquidationAmounts: amount-level result
   - LiquidationResult: coin-level result

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - calculate_liquidation_bonus: dynamic bonus in [min_lb, max_lb]
   - calculate_liquidation_amounts: the repay / seize / fee split
   - calculate_liquidation: coin-level wrapper with bad-debt handling

3. GUARDS (assert_*):
   - assert_liquidatable, assert_not_self_liquidation,
     assert_liquidation_profitable

Key Formulas:
    lb                = clamp(starting_lb + slope * max(0, 1 - HF), min_lb,
                              max(min(CR - 1, max_lb), min_lb))
    close_limit       = floor(floor(total_debt_value * close_factor) / debt_price)
    collateral_limit  = floor(floor(collateral_value / (1 + lb)) / debt_price)
    repay             = min(requested, close_limit, collateral_limit, debt_amount)
    seize             = floor(floor(repay * debt_price) * (1 + lb) / collateral_price)
    protocol_fee      = floor(ceil(bonus_value * protocol_fee_rate) / collateral_price)
    liquidator_gets   = seize - protocol_fee
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Optional, Union

from .core import (
    DECIMAL_ONE, DECIMAL_ZERO, Coin,
    HealthNotAvailable, ZeroDebt, InvalidLiquidationAmounts, NotLiquidatable,
    CoinNotAvailable, LiquidationNotProfitable, SelfLiquidation,
)
from .numeric import (
    to_decimal, from_ratio, checked_add, dec_add, dec_mul,
    mul_floor, mul_ceil, div_floor,
)
from .params import AssetParams, LiquidationBonus
from .health import HealthValuesResponse, is_below_one


logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class LiquidationConfig:
    """
    Immutable liquidation settings.

    Attributes:
        dust_debt_value: Accounts whose total debt value is below this may be
            repaid in full, bypassing the close factor. 0 disables it.
        perps_lb_ratio: Share of the bonus additionally paid on perp losses.
        rewards_collector_account_id: Recipient of the protocol fee.
    """
    dust_debt_value: int = 0
    perps_lb_ratio: Decimal = DECIMAL_ZERO
    rewards_collector_account_id: str = "rewards-collector"

    def __post_init__(self):
        if self.dust_debt_value < 0:
            raise ValueError("dust_debt_value cannot be negative")
        object.__setattr__(self, "perps_lb_ratio", to_decimal(self.perps_lb_ratio))


DEFAULT_LIQUIDATION_CONFIG = LiquidationConfig()


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class HealthData:
    """Health figures of the liquidatee, taken before the liquidation."""
    liquidation_health_factor: Decimal
    collateralization_ratio: Decimal
    perps_pnl_loss: int
    account_net_value: int
    total_debt_value: int

    @classmethod
    def from_health(cls, health: HealthValuesResponse) -> "HealthData":
        """
        Raises:
            HealthNotAvailable: the liquidation health factor is None.
            ZeroDebt: debt value plus perp loss is zero.
        """
        if health.liquidation_health_factor is None:
            raise HealthNotAvailable("Liquidation health factor not available")

        owed = checked_add(health.total_debt_value, health.perps_pnl_loss)
        if owed == 0:
            raise ZeroDebt("Total debt value is zero")

        return cls(
            liquidation_health_factor=health.liquidation_health_factor,
            collateralization_ratio=from_ratio(
                checked_add(health.total_collateral_value, health.perps_pnl_profit), owed
            ),
            perps_pnl_loss=health.perps_pnl_loss,
            account_net_value=health.net_value(),
            total_debt_value=health.total_debt_value,
        )


@dataclass(frozen=True, slots=True)
class LiquidationAmounts:
    """
    Amount-level liquidation result.

    liquidatee_request is the collateral leaving the liquidatee;
    liquidator_request is what the liquidator receives; the difference is
    protocol_fee.
    """
    debt_amount_to_repay: int
    liquidatee_request: int
    liquidator_request: int
    protocol_fee: int
    debt_price: Decimal
    collateral_price: Decimal


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    debt: Coin
    liquidatee_request: Coin
    liquidator_request: Coin
    debt_price: Decimal
    collateral_price: Decimal

    @property
    def protocol_fee(self) -> Coin:
        return Coin(self.liquidatee_request.denom,
                    self.liquidatee_request.amount - self.liquidator_request.amount)

    @classmethod
    def with_zero_amounts(cls, debt_denom: str, request_denom: str,
                          debt_price: Decimal, collateral_price: Decimal) -> "LiquidationResult":
        return cls(
            debt=Coin(debt_denom, 0),
            liquidatee_request=Coin(request_denom, 0),
            liquidator_request=Coin(request_denom, 0),
            debt_price=debt_price,
            collateral_price=collateral_price,
        )


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_liquidation_bonus(
    liquidation_health_factor: Decimal,
    collateralization_ratio: Decimal,
    bonus: LiquidationBonus,
) -> Decimal:
    """
    Dynamic liquidation bonus.

    Grows linearly as the health factor falls below one, never above what
    the account's collateral can pay for (CR - 1), and always within
    [min_lb, max_lb].
    """
    cr_excess = collateralization_ratio - DECIMAL_ONE if collateralization_ratio > DECIMAL_ONE else DECIMAL_ZERO
    upper = max(min(cr_excess, bonus.max_lb), bonus.min_lb)

    hf_shortfall = (DECIMAL_ONE - liquidation_health_factor
                    if liquidation_health_factor < DECIMAL_ONE else DECIMAL_ZERO)
    calculated = dec_add(bonus.starting_lb, dec_mul(bonus.slope, hf_shortfall))

    return max(min(calculated, upper), bonus.min_lb)


def calculate_liquidation_amounts(
    collateral_amount: int,
    collateral_price: Decimal,
    collateral_params: AssetParams,
    debt_amount: int,
    debt_requested_to_repay: int,
    debt_price: Decimal,
    debt_params: AssetParams,
    health: Union[HealthData, HealthValuesResponse],
    perps_lb_ratio: Decimal = DECIMAL_ZERO,
    config: LiquidationConfig = DEFAULT_LIQUIDATION_CONFIG,
) -> LiquidationAmounts:
    """
    Compute how much debt is repaid and how much collateral is seized.

    PURE FUNCTION - All inputs explicit.

    Args:
        collateral_amount: Liquidatee's balance of the collateral asset.
        collateral_price: Oracle price of the collateral asset.
        collateral_params: Params of the collateral (bonus curve, protocol fee).
        debt_amount: Liquidatee's outstanding amount of the debt asset.
        debt_requested_to_repay: Amount the liquidator offers to repay.
        debt_price: Oracle price of the debt asset.
        debt_params: Params of the debt asset (close factor).
        health: Pre-liquidation HealthData (or raw health values) of the liquidatee.
        perps_lb_ratio: Share of the bonus additionally paid on perp losses.
        config: Dust threshold.

    Returns:
        LiquidationAmounts. The repaid value never exceeds
        close_factor * total_debt_value unless total debt is below the dust
        threshold.

    Raises:
        InvalidLiquidationAmounts: exactly one of repay / seize is zero.
    """
    if isinstance(health, HealthValuesResponse):
        health = HealthData.from_health(health)
    collateral_price = to_decimal(collateral_price)
    debt_price = to_decimal(debt_price)
    perps_lb_ratio = to_decimal(perps_lb_ratio)

    collateral_value = mul_floor(collateral_amount, collateral_price)

    liquidation_bonus = calculate_liquidation_bonus(
        health.liquidation_health_factor,
        health.collateralization_ratio,
        collateral_params.liquidation_bonus,
    )
    one_plus_lb = dec_add(DECIMAL_ONE, liquidation_bonus)

    if health.total_debt_value < config.dust_debt_value:
        close_factor_limit = debt_amount
    else:
        close_factor_limit = div_floor(mul_floor(health.total_debt_value, debt_params.close_factor), debt_price)

    collateral_limit = div_floor(div_floor(collateral_value, one_plus_lb), debt_price)

    debt_amount_to_repay = min(debt_requested_to_repay, close_factor_limit, collateral_limit, debt_amount)

    debt_value_to_repay = mul_floor(debt_amount_to_repay, debt_price)
    collateral_to_liquidate = div_floor(mul_floor(debt_value_to_repay, one_plus_lb), collateral_price)

    if (collateral_to_liquidate == 0) != (debt_amount_to_repay == 0):
        raise InvalidLiquidationAmounts(
            f"Can't process liquidation. Invalid collateral_amount_to_liquidate "
            f"({collateral_to_liquidate}) and debt_amount_to_repay ({debt_amount_to_repay})"
        )

    bonus_value = mul_floor(debt_value_to_repay, liquidation_bonus)

    if health.perps_pnl_loss != 0 and perps_lb_ratio != DECIMAL_ZERO:
        perps_lb_value = mul_floor(health.perps_pnl_loss, dec_mul(perps_lb_ratio, liquidation_bonus))
        perps_lb_amount = div_floor(perps_lb_value, collateral_price)

        previous = collateral_to_liquidate
        collateral_to_liquidate = min(checked_add(previous, perps_lb_amount), collateral_amount)

        perps_lb_amount_capped = max(collateral_to_liquidate - previous, 0)
        bonus_value = checked_add(bonus_value, mul_floor(perps_lb_amount_capped, collateral_price))

    protocol_fee_value = mul_ceil(bonus_value, collateral_params.protocol_liquidation_fee)
    protocol_fee = div_floor(protocol_fee_value, collateral_price)

    amounts = LiquidationAmounts(
        debt_amount_to_repay=debt_amount_to_repay,
        liquidatee_request=collateral_to_liquidate,
        liquidator_request=collateral_to_liquidate - protocol_fee,
        protocol_fee=protocol_fee,
        debt_price=debt_price,
        collateral_price=collateral_price,
    )
    logger.debug(
        "liquidation amounts: lb=%s repay=%s seize=%s fee=%s (close limit %s, collateral limit %s)",
        liquidation_bonus, debt_amount_to_repay, collateral_to_liquidate, protocol_fee,
        close_factor_limit, collateral_limit,
    )
    return amounts


def calculate_liquidation(
    debt_coin: Coin,
    request_denom: str,
    request_balance: int,
    prev_health: HealthValuesResponse,
    debt_price: Decimal,
    request_price: Decimal,
    debt_params: AssetParams,
    request_params: AssetParams,
    total_debt_amount: Optional[int],
    config: LiquidationConfig = DEFAULT_LIQUIDATION_CONFIG,
) -> LiquidationResult:
    """
    Coin-level liquidation of `request_denom` collateral against `debt_coin`.

    Args:
        debt_coin: Debt denom and the amount the liquidator offers to repay.
        request_denom: Collateral denom the liquidator wants.
        request_balance: Liquidatee's balance of request_denom.
        prev_health: Liquidatee's health before the liquidation.
        total_debt_amount: Liquidatee's outstanding debt of the debt denom,
            or None when the account has no such debt.

    Returns:
        LiquidationResult. Zero amounts when the requested collateral is
        exhausted on an account with negative net value (bad debt).

    Raises:
        CoinNotAvailable: request_balance is zero on a solvent account.
        ZeroDebt: no debt of this denom and no perp loss.
        LiquidationNotProfitable: repaid value >= value received.
    """
    debt_price = to_decimal(debt_price)
    request_price = to_decimal(request_price)
    health = HealthData.from_health(prev_health)

    if request_balance == 0 and health.account_net_value < 0:
        logger.debug("bad debt: %s exhausted, returning zero amounts", request_denom)
        return LiquidationResult.with_zero_amounts(debt_coin.denom, request_denom, debt_price, request_price)

    if request_balance == 0:
        raise CoinNotAvailable(f"{request_denom} is not available for liquidation")

    if total_debt_amount is None:
        # Perp losses alone can still be liquidated
        if health.perps_pnl_loss == 0:
            raise ZeroDebt(f"No debt of {debt_coin.denom} to repay")
        total_debt_amount = 0

    amounts = calculate_liquidation_amounts(
        collateral_amount=request_balance,
        collateral_price=request_price,
        collateral_params=request_params,
        debt_amount=total_debt_amount,
        debt_requested_to_repay=debt_coin.amount,
        debt_price=debt_price,
        debt_params=debt_params,
        health=health,
        perps_lb_ratio=config.perps_lb_ratio,
        config=config,
    )

    result = LiquidationResult(
        debt=Coin(debt_coin.denom, amounts.debt_amount_to_repay),
        liquidatee_request=Coin(request_denom, amounts.liquidatee_request),
        liquidator_request=Coin(request_denom, amounts.liquidator_request),
        debt_price=debt_price,
        collateral_price=request_price,
    )
    assert_liquidation_profitable(result)
    return result


# ============================================================================
# GUARDS
# ============================================================================

def assert_liquidatable(health: HealthValuesResponse, account_id: str = "") -> None:
    """Raise NotLiquidatable unless the liquidation health factor is below one."""
    if not is_below_one(health.liquidation_health_factor):
        raise NotLiquidatable(
            f"{account_id} is not liquidatable (liquidation health factor "
            f"{health.liquidation_health_factor})"
        )


def assert_not_self_liquidation(liquidator_account_id: str, liquidatee_account_id: str) -> None:
    if liquidator_account_id == liquidatee_account_id:
        raise SelfLiquidation("Cannot liquidate your own account")


def assert_liquidation_profitable(result: LiquidationResult) -> None:
    """Raise LiquidationNotProfitable when the repaid debt is worth at least what the liquidator receives."""
    debt_value = mul_floor(result.debt.amount, result.debt_price)
    request_value = mul_floor(result.liquidator_request.amount, result.collateral_price)
    if debt_value >= request_value:
        raise LiquidationNotProfitable(
            f"{result.debt!r} for {result.liquidator_request!r} is not profitable"
        )


def protocol_fee_coin(result: LiquidationResult, config: LiquidationConfig = DEFAULT_LIQUIDATION_CONFIG):
    """(recipient account id, fee coin) routing the protocol's share of a liquidation."""
    return config.rewards_collector_account_id, result.protocol_fee
