"""
health_computer.py - Account health and max-amount estimates

This module values an account's positions and derives its health factors,
the maximum amounts it can borrow, withdraw, swap or open in perps, and the
price at which it becomes liquidatable.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN INPUTS:
   - HealthComputer holds one immutable snapshot: account kind, positions,
     asset params, oracle prices, vault data and perp data
   - No hidden state; every method is a pure function of that snapshot

2. VALUATION (rounding always against the account):
   - collateral value   = floor(amount * price)
   - max-LTV weighted   = floor(value * max_ltv)       (0 if de-listed)
   - liq weighted       = floor(value * liquidation_threshold)
   - debt value         = ceil(amount * price)
   - perp profit value  = floor(pnl_amount * base_price)   (reported only)
   - perp loss value    = ceil(pnl_amount * base_price)    (reported only)
   - perp HF terms      = notional weighted by the market's perp LTV,
                          funding split into min / max (PerpHealthFactorValues)

3. ESTIMATORS (closed form, conservative by one value unit):
   - headroom = max_ltv_adjusted + perp_num - debt - perp_den - 1
   - max_borrow / max_withdraw / max_swap divide headroom by the
     per-unit change in (weighted collateral - debt), flooring

4. CONVENIENCE FUNCTIONS:
   - compute_health(...) and compute_health_state(...) build a
     HealthComputer and run it

Key Formulas:
    max_ltv_hf = (max_ltv_adjusted + perp_max_ltv_num) / (debt + perp_max_ltv_den)
    liq_hf     = (liq_adjusted + perp_liq_num) / (debt + perp_liq_den)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
import logging
from typing import Iterable, Mapping, Optional, Tuple

from .core import (
    ENGINE_DECIMAL_CONTEXT, DECIMAL_ONE, DECIMAL_ZERO,
    Coin, PriceMap, get_price,
    MissingAssetParams, MissingPerpParams, MissingHLSParams, MissingUSDCMarginParams,
    MissingVaultConfig, MissingVaultValues, MissingAmount, DenomNotPresent, DivideByZero,
)
from .numeric import (
    to_decimal,
    checked_add, check_int128, from_ratio,
    dec_add, dec_div, dec_mul, dec_sub, saturating_sub, mul_floor, mul_ceil, div_floor,
    uint128_to_decimal,
    int128_to_signed_decimal, signed_sub, signed_mul,
    signed_decimal_to_int_trunc,
)
from .params import AssetParams, PerpParams, VaultConfig
from .positions import (
    AccountKind, Positions, PerpPosition, VaultsData, PerpsData,
    PARAM_TABLE_HLS, PARAM_TABLE_USDC_MARGIN, param_table,
)
from .pricing import closing_execution_price, compute_pnl, PNL_PROFIT, PNL_LOSS
from .health import (
    BorrowTarget, BORROW_TARGET_DEPOSIT, BORROW_TARGET_WALLET, BORROW_TARGET_VAULT, BORROW_TARGET_SWAP,
    CollateralValue, Direction, HealthState, HealthValuesResponse, Healthy,
    LiquidationPriceKind, PerpHealthFactorValues, PerpPnlValues, SwapKind,
    health_state_from_values, is_below_one,
)


logger = logging.getLogger(__name__)

_TWO = Decimal("2")


# ============================================================================
# HEALTH COMPUTER
# ============================================================================

@dataclass(frozen=True, slots=True)
class HealthComputer:
    """
    Immutable snapshot of everything needed to evaluate one account.

    Attributes:
        kind: Account kind; selects the risk-parameter table.
        positions: The account's positions.
        asset_params: denom -> AssetParams. Collateral without params is worthless.
        oracle_prices: denom -> price. Normalised to 18-place Decimals.
        vaults_data: Vault values and configs keyed by vault address.
        perps_data: Perp params keyed by perp denom.
    """
    kind: AccountKind
    positions: Positions
    asset_params: Mapping[str, AssetParams]
    oracle_prices: PriceMap
    vaults_data: VaultsData = field(default_factory=VaultsData)
    perps_data: PerpsData = field(default_factory=PerpsData)

    def __post_init__(self):
        object.__setattr__(
            self, "oracle_prices",
            {denom: to_decimal(price) for denom, price in self.oracle_prices.items()},
        )

    # ------------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------------

    def compute_health(self) -> HealthValuesResponse:
        """Value every position and derive both health factors."""
        collateral = self.total_collateral_value()
        debt_value = self.debt_value()
        perp_hf, pnl = self.perp_hf_values_and_pnl(self.positions.perps)

        if checked_add(debt_value, perp_hf.max_ltv_denominator) == 0:
            max_ltv_hf = None
            liq_hf = None
        else:
            max_ltv_hf = from_ratio(
                checked_add(collateral.max_ltv_adjusted_collateral, perp_hf.max_ltv_numerator),
                checked_add(debt_value, perp_hf.max_ltv_denominator),
            )
            liq_hf = from_ratio(
                checked_add(collateral.liquidation_threshold_adjusted_collateral, perp_hf.liq_ltv_numerator),
                checked_add(debt_value, perp_hf.liq_ltv_denominator),
            )

        health = HealthValuesResponse(
            total_debt_value=debt_value,
            total_collateral_value=collateral.total_collateral_value,
            max_ltv_adjusted_collateral=collateral.max_ltv_adjusted_collateral,
            liquidation_threshold_adjusted_collateral=collateral.liquidation_threshold_adjusted_collateral,
            max_ltv_health_factor=max_ltv_hf,
            liquidation_health_factor=liq_hf,
            perps_pnl_profit=pnl.profit,
            perps_pnl_loss=pnl.loss,
            liquidatable=is_below_one(liq_hf),
            above_max_ltv=is_below_one(max_ltv_hf),
            has_perps=self.positions.has_perps(),
        )
        logger.debug(
            "health for account %s: collateral=%s debt=%s perp_terms=%s profit=%s loss=%s max_ltv_hf=%s liq_hf=%s",
            self.positions.account_id, health.total_collateral_value, debt_value,
            perp_hf, pnl.profit, pnl.loss, max_ltv_hf, liq_hf,
        )
        return health

    def health_state(self) -> HealthState:
        """Healthy unless above max LTV. Accounts with no debts and no perps need no prices."""
        if not self.positions.has_debts() and not self.positions.has_perps():
            return Healthy()
        return health_state_from_values(self.compute_health())

    # ------------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------------

    def total_collateral_value(self) -> CollateralValue:
        total = (
            self.coins_value(self.positions.deposits)
            + self.coins_value(self.positions.lends)
            + self.vaults_value()
            + self.coins_value(self.positions.staked_lps)
        )
        perp_vault = self.positions.perp_vault
        if perp_vault is not None and perp_vault.total_amount() > 0:
            total = total + self.coins_value([Coin(perp_vault.denom, perp_vault.total_amount())])
        return total

    def coins_value(self, coins: Iterable[Coin]) -> CollateralValue:
        total_value = 0
        max_ltv_adjusted = 0
        liq_adjusted = 0

        for coin in coins:
            params = self._coin_contribution_to_collateral(coin.denom)
            if params is None:
                continue

            value = mul_floor(coin.amount, get_price(self.oracle_prices, coin.denom))
            total_value = checked_add(total_value, value)
            max_ltv_adjusted = checked_add(max_ltv_adjusted, mul_floor(value, self.coin_max_ltv(coin.denom)))

            if self._table == PARAM_TABLE_HLS:
                if params.hls is None:
                    raise MissingHLSParams(coin.denom)
                liq_threshold = params.hls.liquidation_threshold
            else:
                liq_threshold = params.liquidation_threshold
            liq_adjusted = checked_add(liq_adjusted, mul_floor(value, liq_threshold))

        return CollateralValue(total_value, max_ltv_adjusted, liq_adjusted)

    def vaults_value(self) -> CollateralValue:
        total = CollateralValue()

        for vault in self.positions.vaults:
            address = vault.vault_address
            values = self.vaults_data.vault_values.get(address)
            if values is None:
                raise MissingVaultValues(address)
            config = self.vaults_data.vault_configs.get(address)
            if config is None:
                raise MissingVaultConfig(address)
            base_params = self.asset_params.get(values.base_coin.denom)
            if base_params is None:
                raise MissingAssetParams(values.base_coin.denom)

            max_ltv, liq_threshold = self._vault_ltvs(config)
            # De-listed vault or base token: max LTV drops to zero
            if not (config.whitelisted and base_params.whitelisted):
                max_ltv = DECIMAL_ZERO

            vault_coin_value = values.vault_coin.value
            total = total + CollateralValue(
                vault_coin_value,
                mul_floor(vault_coin_value, max_ltv),
                mul_floor(vault_coin_value, liq_threshold),
            )

            # Unlocking positions are held in the base token
            total = total + self.coins_value([Coin(values.base_coin.denom, vault.amount.unlocking_total())])

        return total

    def debt_value(self) -> int:
        """Total debt value, each debt rounded up."""
        total = 0
        for debt in self.positions.debts:
            total = checked_add(total, mul_ceil(debt.amount, get_price(self.oracle_prices, debt.denom)))
        return total

    def perp_pnl_values(self, perps: Iterable[PerpPosition]) -> PerpPnlValues:
        """
        Aggregate unrealised price PnL of perp positions.

        PnL is size * (current_exec_price - entry_exec_price) in base-denom
        amounts, valued at the base denom's price: profit rounded down, loss
        rounded up.
        """
        profit = 0
        loss = 0
        for position in perps:
            base_price = get_price(self.oracle_prices, position.base_denom)
            pnl = compute_pnl(
                int128_to_signed_decimal(position.size),
                position.entry_exec_price,
                position.current_exec_price,
                position.base_denom,
            )
            if pnl.kind == PNL_PROFIT:
                profit = checked_add(profit, mul_floor(pnl.amount, base_price))
            elif pnl.kind == PNL_LOSS:
                loss = checked_add(loss, mul_ceil(pnl.amount, base_price))
        return PerpPnlValues(profit, loss)

    def perp_hf_values_and_pnl(
        self, perps: Iterable[PerpPosition],
    ) -> Tuple[PerpHealthFactorValues, PerpPnlValues]:
        """Weighted health factor terms and raw PnL of the given perp positions."""
        perps = list(perps)
        terms = PerpHealthFactorValues()
        for position in perps:
            terms = terms + self.perp_health_factor_values(position)
        return terms, self.perp_pnl_values(perps)

    def perp_health_factor_values(self, position: PerpPosition) -> PerpHealthFactorValues:
        """
        Health factor terms of one perp position.

        Longs earn (ltv - closing_fee) of their current notional against
        their entry notional. Shorts keep their entry notional as collateral
        against (2 - ltv + closing_fee) of their current notional. Positive
        accrued funding joins the numerator at the perp LTV; negative
        funding joins the denominator in full.

        Raises:
            MissingPerpParams: the position's market has no params.
        """
        params = self._perp_params(position.denom)
        base_price = get_price(self.oracle_prices, position.base_denom)
        max_ltv = self.perp_max_ltv(position.denom)
        liq_ltv = self.perp_liq_threshold(position.denom)

        value_entry = mul_floor(abs(position.size), position.entry_exec_price)
        value_current = mul_floor(abs(position.size), position.current_exec_price)

        funding = position.unrealized_pnl.accrued_funding
        funding_min_value = mul_floor(-funding if funding < 0 else 0, base_price)
        funding_max = funding if funding > 0 else 0
        funding_max_value_ltv = mul_floor(funding_max, dec_mul(base_price, max_ltv))
        funding_max_value_liq = mul_floor(funding_max, dec_mul(base_price, liq_ltv))

        if position.size < 0:
            max_ltv_multiplier = dec_add(dec_sub(_TWO, max_ltv), params.closing_fee_rate)
            liq_ltv_multiplier = dec_add(dec_sub(_TWO, liq_ltv), params.closing_fee_rate)
            return PerpHealthFactorValues(
                max_ltv_numerator=checked_add(value_entry, funding_max_value_ltv),
                max_ltv_denominator=checked_add(mul_floor(value_current, max_ltv_multiplier), funding_min_value),
                liq_ltv_numerator=checked_add(value_entry, funding_max_value_liq),
                liq_ltv_denominator=checked_add(mul_floor(value_current, liq_ltv_multiplier), funding_min_value),
            )

        # LTVs below the closing fee weigh nothing
        max_ltv_multiplier = saturating_sub(max_ltv, params.closing_fee_rate)
        liq_ltv_multiplier = saturating_sub(liq_ltv, params.closing_fee_rate)
        denominator = checked_add(value_entry, funding_min_value)
        return PerpHealthFactorValues(
            max_ltv_numerator=checked_add(mul_floor(value_current, max_ltv_multiplier), funding_max_value_ltv),
            max_ltv_denominator=denominator,
            liq_ltv_numerator=checked_add(mul_floor(value_current, liq_ltv_multiplier), funding_max_value_liq),
            liq_ltv_denominator=denominator,
        )

    # ------------------------------------------------------------------------
    # Parameter lookup
    # ------------------------------------------------------------------------

    @property
    def _table(self) -> str:
        return param_table(self.kind)

    def _coin_contribution_to_collateral(self, denom: str) -> Optional[AssetParams]:
        params = self.asset_params.get(denom)
        if params is None:
            return None

        if self._table == PARAM_TABLE_HLS:
            if self.positions.has_debts():
                # Only collateral correlated with a debt counts
                correlated = False
                for debt in self.positions.debts:
                    debt_params = self.asset_params.get(debt.denom)
                    if debt_params is None:
                        raise MissingAssetParams(debt.denom)
                    if debt_params.hls is None:
                        raise MissingHLSParams(debt.denom)
                    if debt_params.hls.correlates_with_coin(denom):
                        correlated = True
                if not correlated:
                    return None
            elif params.hls is None:
                return None

        return params

    def coin_max_ltv(self, denom: str) -> Decimal:
        """Max LTV for a denom under this account's table; zero if unlisted or de-listed."""
        params = self.asset_params.get(denom)
        if params is None or not params.whitelisted:
            return DECIMAL_ZERO
        if self._table == PARAM_TABLE_HLS:
            if params.hls is None:
                raise MissingHLSParams(denom)
            return params.hls.max_loan_to_value
        return params.max_loan_to_value

    def coin_liq_threshold(self, denom: str) -> Decimal:
        """Liquidation threshold for a denom under this account's table; zero if unlisted or de-listed."""
        params = self.asset_params.get(denom)
        if params is None or not params.whitelisted:
            return DECIMAL_ZERO
        if self._table == PARAM_TABLE_HLS:
            if params.hls is None:
                raise MissingHLSParams(denom)
            return params.hls.liquidation_threshold
        return params.liquidation_threshold

    def _vault_ltvs(self, config: VaultConfig) -> Tuple[Decimal, Decimal]:
        if self._table == PARAM_TABLE_HLS:
            if config.hls is None:
                raise MissingHLSParams(config.addr)
            return config.hls.max_loan_to_value, config.hls.liquidation_threshold
        return config.max_loan_to_value, config.liquidation_threshold

    def _perp_params(self, denom: str) -> PerpParams:
        params = self.perps_data.params.get(denom)
        if params is None:
            raise MissingPerpParams(denom)
        return params

    def _perp_table_max_ltv(self, params: PerpParams) -> Decimal:
        if self._table == PARAM_TABLE_USDC_MARGIN:
            if params.max_loan_to_value_usdc is None:
                raise MissingUSDCMarginParams(str(self.kind))
            return params.max_loan_to_value_usdc
        return params.max_loan_to_value

    def perp_max_ltv(self, denom: str) -> Decimal:
        """Perp max LTV under this account's table; zero while the market is disabled."""
        params = self._perp_params(denom)
        if not params.enabled:
            return DECIMAL_ZERO
        return self._perp_table_max_ltv(params)

    def perp_liq_threshold(self, denom: str) -> Decimal:
        """Perp liquidation threshold under this account's table; zero while the market is disabled."""
        params = self._perp_params(denom)
        if not params.enabled:
            return DECIMAL_ZERO
        if self._table == PARAM_TABLE_USDC_MARGIN:
            if params.liquidation_threshold_usdc is None:
                raise MissingUSDCMarginParams(str(self.kind))
            return params.liquidation_threshold_usdc
        return params.liquidation_threshold

    # ------------------------------------------------------------------------
    # Estimators
    # ------------------------------------------------------------------------

    def _max_ltv_aggregates(self) -> Tuple[int, int, int]:
        """(max-LTV weighted collateral, HF numerator, HF denominator)."""
        max_ltv_adjusted = self.total_collateral_value().max_ltv_adjusted_collateral
        perp_hf, _ = self.perp_hf_values_and_pnl(self.positions.perps)
        numerator = checked_add(max_ltv_adjusted, perp_hf.max_ltv_numerator)
        denominator = checked_add(self.debt_value(), perp_hf.max_ltv_denominator)
        return max_ltv_adjusted, numerator, denominator

    def max_withdraw_amount_estimate(self, denom: str) -> int:
        """
        Max amount of `denom` (deposits + lends + staked LP) that can be
        withdrawn while keeping the max-LTV health factor at or above one.
        """
        available = self.positions.collateral_amount(denom)
        if available == 0:
            return 0

        params = self.asset_params.get(denom)
        if params is None:
            return available
        if (not self.positions.has_debts() and not self.positions.has_perps()) or not params.whitelisted:
            return available

        _, numerator, denominator = self._max_ltv_aggregates()
        if _at_or_below_one(numerator, denominator):
            return 0

        weighted_price = dec_mul(get_price(self.oracle_prices, denom), self.coin_max_ltv(denom))
        if weighted_price == DECIMAL_ZERO:
            # Carries no borrowing power, so withdrawing it cannot lower the HF
            return available

        return min(div_floor(_headroom(numerator, denominator), weighted_price), available)

    def max_swap_amount_estimate(
        self,
        from_denom: str,
        to_denom: str,
        kind: SwapKind,
        slippage: Decimal,
        is_repaying_debt: bool = False,
    ) -> int:
        """
        Max amount of `from_denom` that can be swapped into `to_denom`.

        Margin swaps may additionally borrow `from_denom`; the result then
        includes the borrowable amount on top of the held balance.
        """
        slippage = to_decimal(slippage)
        available = self.positions.collateral_amount(from_denom)

        no_exposure = not self.positions.has_debts() and not self.positions.has_perps()
        if (kind is SwapKind.DEFAULT and no_exposure) or is_repaying_debt:
            return available

        max_ltv_adjusted, numerator, denominator = self._max_ltv_aggregates()
        if max_ltv_adjusted == 0:
            return 0
        if _at_or_below_one(numerator, denominator):
            return 0

        from_ltv = self.coin_max_ltv(from_denom)
        to_ltv = self.coin_max_ltv(to_denom)
        to_ltv_after_slippage = dec_mul(to_ltv, dec_sub(DECIMAL_ONE, slippage))

        if to_ltv_after_slippage >= from_ltv:
            swappable = available
        else:
            from_price = get_price(self.oracle_prices, from_denom)
            amount = div_floor(
                _headroom(numerator, denominator),
                dec_mul(from_price, dec_sub(from_ltv, to_ltv_after_slippage)),
            )
            swappable = min(amount, available)

        if kind is SwapKind.DEFAULT or swappable < available:
            return swappable

        # Margin: swap the full balance, then borrow more of from_denom
        from_price = get_price(self.oracle_prices, from_denom)
        from_value = mul_floor(available, from_price)
        adjusted_after_swap = (max_ltv_adjusted + mul_floor(from_value, to_ltv)
                               - mul_floor(from_value, from_ltv))
        numerator_after_swap = adjusted_after_swap + (numerator - max_ltv_adjusted)
        borrow_amount = div_floor(
            _headroom(numerator_after_swap, denominator),
            dec_mul(dec_sub(DECIMAL_ONE, to_ltv_after_slippage), from_price),
        )
        return checked_add(borrow_amount, available)

    def max_borrow_amount_estimate(self, denom: str, target: BorrowTarget) -> int:
        """
        Max amount of `denom` that can be borrowed to `target` while keeping
        the max-LTV health factor at or above one.

        Raises:
            MissingAssetParams: `denom` has no asset params.
            MissingVaultConfig: a vault target has no vault config.
        """
        max_ltv_adjusted, numerator, denominator = self._max_ltv_aggregates()

        params = self.asset_params.get(denom)
        if params is None:
            raise MissingAssetParams(denom)
        if not params.whitelisted or max_ltv_adjusted == 0:
            return 0
        if _at_or_below_one(numerator, denominator):
            return 0

        borrow_ltv = self.coin_max_ltv(denom)
        price = get_price(self.oracle_prices, denom)
        headroom = _headroom(numerator, denominator)

        if target.kind == BORROW_TARGET_DEPOSIT:
            return div_floor(headroom, dec_mul(price, dec_sub(DECIMAL_ONE, borrow_ltv)))

        if target.kind == BORROW_TARGET_WALLET:
            return div_floor(headroom, price)

        if target.kind == BORROW_TARGET_VAULT:
            config = self.vaults_data.vault_configs.get(target.vault_address)
            if config is None:
                raise MissingVaultConfig(target.vault_address)
            vault_ltv = self._vault_ltvs(config)[0] if config.whitelisted else DECIMAL_ZERO
            return div_floor(headroom, dec_mul(price, dec_sub(DECIMAL_ONE, vault_ltv)))

        if target.kind == BORROW_TARGET_SWAP:
            out_ltv = dec_mul(self.coin_max_ltv(target.denom_out), dec_sub(DECIMAL_ONE, target.slippage))
            return div_floor(headroom, dec_mul(price, dec_sub(DECIMAL_ONE, out_ltv)))

        raise ValueError(f"Unknown borrow target: {target.kind}")

    def max_perp_size_estimate(
        self,
        denom: str,
        base_denom: str,
        long_oi_amount: int,
        short_oi_amount: int,
        direction: Direction,
    ) -> int:
        """
        Max signed size change for a perp position in `direction`.

        The bound is the smaller of the remaining open-interest capacity and
        the account-level bound solved from

            a*q^2 + b*q + c = 0

            z = ltv_p - closing_fee - opening_fee - 1
            a = sign * z * P / (2*S)
            b = z * P * (1 + (k - q_old) / S)
            c = y + i * opening_fee * |q_old| * P * (1 + (k - q_old/2) / S)
            y = RWA - debt + max(0, C) * ltv_base - max(0, -C)
            C = base-denom collateral value + unrealised PnL of the position

        where P is the oracle price, S the skew scale, k the market skew and
        i is 1 when the position grows in its current direction. The current
        size is subtracted from the result; a position already past the
        bound yields 0.
        """
        oracle_price = get_price(self.oracle_prices, denom)
        base_price = get_price(self.oracle_prices, base_denom)
        params = self._perp_params(denom)
        ltv_base = self.coin_max_ltv(base_denom)
        ltv_p = self._perp_table_max_ltv(params)

        max_oi_change = calculate_remaining_oi_amount(
            long_oi_amount, short_oi_amount, oracle_price, params, direction
        )

        skew = check_int128(long_oi_amount - short_oi_amount, "Sub")

        existing = self.positions.find_perp(denom)
        if existing is None:
            funding, q_old, entry_exec = 0, 0, DECIMAL_ZERO
        else:
            funding, q_old, entry_exec = (existing.unrealized_pnl.accrued_funding, existing.size,
                                          existing.entry_exec_price)

        if direction is Direction.LONG:
            increasing = q_old >= 0
        else:
            increasing = q_old < 0

        if max_oi_change == 0:
            return 0 if increasing else -q_old

        exit_exec = closing_execution_price(skew, params.skew_scale, q_old, oracle_price)
        closing_fee_value = mul_floor(abs(q_old), dec_mul(exit_exec, params.closing_fee_rate))

        opposite = (q_old < 0 and direction is Direction.LONG) or (q_old >= 0 and direction is Direction.SHORT)
        same_direction = 0 if opposite else 1

        if q_old == 0:
            unrealized_pnl = 0
        else:
            funding_value = _mul_signed_trunc(funding, base_price)
            price_diff = signed_sub(exit_exec, entry_exec)
            unrealized_pnl = check_int128(
                _mul_signed_trunc(q_old, price_diff)
                - (closing_fee_value if opposite else 0)
                + funding_value,
                "Add",
            )

        base_collateral_value, rwa_value, debt_value = self._account_composition(base_denom, denom, base_price)

        with localcontext(ENGINE_DECIMAL_CONTEXT) as ctx:
            price = Decimal(oracle_price)
            skew_scale = Decimal(params.skew_scale)
            z = ltv_p - params.closing_fee_rate - params.opening_fee_rate - DECIMAL_ONE
            a = Decimal(direction.sign) * z * price / (2 * skew_scale)
            if a == 0:
                raise DivideByZero(f"Perp size quadratic for {denom} is degenerate")
            b = z * price * (DECIMAL_ONE + (Decimal(skew) - Decimal(q_old)) / skew_scale)

            collateral_c = Decimal(base_collateral_value) + Decimal(unrealized_pnl)
            y = (Decimal(rwa_value) - Decimal(debt_value)
                 + max(DECIMAL_ZERO, collateral_c) * ltv_base
                 + min(DECIMAL_ZERO, collateral_c))
            c = y + (Decimal(same_direction) * params.opening_fee_rate * Decimal(abs(q_old)) * price
                     * (DECIMAL_ONE + (Decimal(skew) - Decimal(q_old) / 2) / skew_scale))

            discriminant = b * b - 4 * a * c
            root = ctx.sqrt(discriminant) if discriminant >= 0 else DECIMAL_ZERO
            q_max = int((-(b + root) / (2 * a)).to_integral_value())

        # The OI cap already accounts for the current position when growing it
        oi_cap = max_oi_change + abs(q_old) if (q_old != 0 and increasing) else max_oi_change
        if abs(q_max) > oi_cap:
            q_max = oi_cap
        if direction is Direction.SHORT:
            q_max = -q_max
        q_max = check_int128(q_max, "Cast")

        if (direction is Direction.LONG and q_old > q_max) or (direction is Direction.SHORT and q_old < q_max):
            return 0

        return check_int128(q_max - q_old, "Sub")

    def _account_composition(self, base_denom: str, denom: str, base_price: Decimal) -> Tuple[int, int, int]:
        """
        (base-denom collateral value, other max-LTV weighted collateral + other
        perp numerators, debt + other perp denominators), excluding the perp
        at `denom`. Staked LP positions are not counted.
        """
        positions = self.positions
        base_amount = checked_add(positions.deposit_amount(base_denom), positions.lend_amount(base_denom))
        base_collateral_value = mul_floor(base_amount, base_price)

        other_deposits = [c for c in positions.deposits if c.denom != base_denom]
        other_lends = [c for c in positions.lends if c.denom != base_denom]
        weighted = self.coins_value(other_deposits) + self.coins_value(other_lends) + self.vaults_value()

        others, _ = self.perp_hf_values_and_pnl(p for p in positions.perps if p.denom != denom)
        rwa_value = checked_add(weighted.max_ltv_adjusted_collateral, others.max_ltv_numerator)
        debt_value = checked_add(self.debt_value(), others.max_ltv_denominator)
        return base_collateral_value, rwa_value, debt_value

    # ------------------------------------------------------------------------
    # Liquidation price
    # ------------------------------------------------------------------------

    def liquidation_price(self, denom: str, kind: LiquidationPriceKind) -> Decimal:
        """
        Price of `denom` at which the liquidation health factor reaches one,
        all other prices held constant.

        Returns 0 when the account owes nothing or no price of `denom` can
        make it liquidatable (including an asset whose liquidation threshold
        is zero), and the current price when it is already liquidatable.

        Raises:
            MissingAmount: the account holds none of the asset, debt or perp.
            DenomNotPresent: no perp position exists for `denom`.
            DivideByZero, CheckedOverflow: a long perp whose liquidation
                threshold does not exceed its closing fee.
        """
        debt_value = self.debt_value()
        current_price = get_price(self.oracle_prices, denom)
        liq_adjusted = self.total_collateral_value().liquidation_threshold_adjusted_collateral
        perp_hf, _ = self.perp_hf_values_and_pnl(self.positions.perps)

        denominator = checked_add(debt_value, perp_hf.liq_ltv_denominator)
        if denominator == 0:
            return DECIMAL_ZERO

        numerator = checked_add(liq_adjusted, perp_hf.liq_ltv_numerator)
        if from_ratio(numerator, denominator) < DECIMAL_ONE:
            return current_price

        if kind is LiquidationPriceKind.ASSET:
            amount = self.positions.collateral_amount(denom)
            if amount == 0:
                raise MissingAmount(denom)
            liq_threshold = self.coin_liq_threshold(denom)
            weighted_amount = mul_floor(amount, liq_threshold)
            if weighted_amount == 0:
                # Its price does not move the health factor
                return DECIMAL_ZERO
            asset_liq_value = mul_floor(amount, dec_mul(current_price, liq_threshold))

            positives = denominator + asset_liq_value
            if numerator >= positives:
                return DECIMAL_ZERO
            return from_ratio(positives - numerator, weighted_amount)

        if kind is LiquidationPriceKind.DEBT:
            amount = self.positions.debt_amount(denom)
            if amount == 0:
                raise MissingAmount(denom)
            asset_debt_value = mul_ceil(amount, current_price)

            positives = numerator + asset_debt_value
            if denominator >= positives:
                return DECIMAL_ZERO
            return from_ratio(positives - denominator, amount)

        if kind is LiquidationPriceKind.PERP:
            position = self.positions.find_perp(denom)
            if position is None:
                raise DenomNotPresent(denom)
            if position.size == 0:
                raise MissingAmount(denom)
            return self._perp_liquidation_price(position, numerator, denominator)

        raise ValueError(f"Unknown liquidation price kind: {kind}")

    def _perp_liquidation_price(self, position: PerpPosition, numerator: int, denominator: int) -> Decimal:
        """
        Solve the liquidation health factor for one perp's execution price.

            long:  p = (den + own_num - num) / (|size| * (ltv - closing_fee))
            short: p = (num + |size| * current * m - den) / (|size| * m)
                   m = 2 - ltv + closing_fee

        num and den are the account-wide liquidation terms, own_num is the
        position's own liquidation numerator.
        """
        closing_fee_rate = self._perp_params(position.denom).closing_fee_rate
        liq_ltv = self.perp_liq_threshold(position.denom)
        size = abs(position.size)

        if position.size > 0:
            own_numerator = self.perp_health_factor_values(position).liq_ltv_numerator
            positives = checked_add(denominator, own_numerator)
            if numerator >= positives:
                return DECIMAL_ZERO
            weighted_size = dec_mul(uint128_to_decimal(size), dec_sub(liq_ltv, closing_fee_rate))
            return dec_div(uint128_to_decimal(positives - numerator), weighted_size)

        multiplier = dec_add(dec_sub(_TWO, liq_ltv), closing_fee_rate)
        exposure = mul_ceil(size, dec_mul(position.current_exec_price, multiplier))
        positives = checked_add(numerator, exposure)
        if denominator >= positives:
            return DECIMAL_ZERO
        return from_ratio(positives - denominator, mul_ceil(size, multiplier))


# ============================================================================
# PURE HELPERS
# ============================================================================

def _at_or_below_one(numerator: int, denominator: int) -> bool:
    if numerator != 0 and denominator != 0:
        return from_ratio(numerator, denominator) <= DECIMAL_ONE
    return numerator == 0 and denominator != 0


def _headroom(numerator: int, denominator: int) -> int:
    """numerator - denominator - 1, the value that can still be added to debt."""
    if numerator <= denominator:
        return 0
    return numerator - denominator - 1


def _mul_signed_trunc(amount: int, ratio: Decimal) -> int:
    """amount * ratio for a signed amount, truncated toward zero."""
    return signed_decimal_to_int_trunc(signed_mul(int128_to_signed_decimal(amount), ratio))


def calculate_remaining_oi_amount(
    long_oi_amount: int,
    short_oi_amount: int,
    oracle_price: Decimal,
    params: PerpParams,
    direction: Direction,
) -> int:
    """
    Remaining open-interest capacity in `direction`, as an unsigned amount.

    Zero once total OI value reaches the net cap or the direction's OI value
    reaches its cap.
    """
    long_value = mul_floor(long_oi_amount, oracle_price)
    short_value = mul_floor(short_oi_amount, oracle_price)

    if long_value + short_value >= params.max_net_oi_value:
        return 0

    if direction is Direction.LONG:
        current, cap = long_value, params.max_long_oi_value
    else:
        current, cap = short_value, params.max_short_oi_value

    if current >= cap:
        return 0
    return div_floor(cap - current, oracle_price)


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def compute_health(
    positions: Positions,
    asset_params: Mapping[str, AssetParams],
    oracle_prices: PriceMap,
    vaults_data: Optional[VaultsData] = None,
    perps_data: Optional[PerpsData] = None,
    account_kind: Optional[AccountKind] = None,
) -> HealthValuesResponse:
    """Build a HealthComputer for one snapshot and compute its health."""
    return _computer(positions, asset_params, oracle_prices, vaults_data, perps_data, account_kind).compute_health()


def compute_health_state(
    positions: Positions,
    asset_params: Mapping[str, AssetParams],
    oracle_prices: PriceMap,
    vaults_data: Optional[VaultsData] = None,
    perps_data: Optional[PerpsData] = None,
    account_kind: Optional[AccountKind] = None,
) -> HealthState:
    """Healthy/Unhealthy for one snapshot; short-circuits without prices when nothing is owed."""
    return _computer(positions, asset_params, oracle_prices, vaults_data, perps_data, account_kind).health_state()


def _computer(positions, asset_params, oracle_prices, vaults_data, perps_data, account_kind) -> HealthComputer:
    return HealthComputer(
        kind=account_kind if account_kind is not None else AccountKind.default(),
        positions=positions,
        asset_params=asset_params,
        oracle_prices=oracle_prices,
        vaults_data=vaults_data if vaults_data is not None else VaultsData(),
        perps_data=perps_data if perps_data is not None else PerpsData(),
    )
