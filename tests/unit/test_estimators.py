"""
test_estimators.py - Unit tests for max-amount estimates and liquidation prices

Tests:
- max_borrow_amount_estimate for every borrow target
- max_withdraw_amount_estimate
- max_swap_amount_estimate for default and margin swaps
- max_perp_size_estimate and remaining open interest
- liquidation_price for assets, debts and perps

Expected values are worked by hand from the fixture market, e.g.

    1200 udai @ 0.313451, max LTV 0.85:
        value 376, weighted 319, headroom 318
        318 / (0.313451 * 0.15) = 6763.4 -> 6763
"""

import pytest
from decimal import Decimal

from solvency import (
    Coin, DebtAmount, Positions, BorrowTarget, SwapKind, Direction, LiquidationPriceKind,
    VaultConfig, VaultsData, PerpsData,
    MissingAssetParams, MissingVaultConfig, MissingAmount, DenomNotPresent,
    calculate_remaining_oi_amount,
)


# ============================================================================
# MAX BORROW TESTS
# ============================================================================

class TestMaxBorrow:
    """Tests for max_borrow_amount_estimate."""

    def test_deposit_udai(self, make_computer):
        """1200 udai collateral can borrow 6763 more udai into the account."""
        positions = Positions("1", deposits=[Coin("udai", 1200)])
        computer = make_computer(positions)
        assert computer.max_borrow_amount_estimate("udai", BorrowTarget.deposit()) == 6763

    def test_deposit_umars(self, make_computer):
        """959 of headroom over a 0.2 unweighted share; the naive answer would be 4800."""
        positions = Positions("1", deposits=[Coin("umars", 1200)])
        computer = make_computer(positions)
        assert computer.max_borrow_amount_estimate("umars", BorrowTarget.deposit()) == 4795

    def test_wallet(self, make_computer, healthy_positions):
        """Borrowed funds leaving the account add no collateral: 800 - 500 - 1."""
        computer = make_computer(healthy_positions)
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.wallet()) == 299

    def test_deposit_with_existing_debt(self, make_computer, healthy_positions):
        computer = make_computer(healthy_positions)
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.deposit()) == 2990

    def test_swap(self, make_computer, healthy_positions):
        """299 / (1 - 0.8 * 0.99) = 1437.5 -> 1437."""
        computer = make_computer(healthy_positions)
        target = BorrowTarget.swap("umars", Decimal("0.01"))
        assert computer.max_borrow_amount_estimate("uusdc", target) == 1437

    def test_vault(self, make_computer, healthy_positions):
        data = VaultsData(vault_configs={"vault_a": VaultConfig("vault_a", "0.5", "0.6")})
        computer = make_computer(healthy_positions, vaults_data=data)
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.vault("vault_a")) == 598

    def test_delisted_vault(self, make_computer, healthy_positions):
        data = VaultsData(vault_configs={"vault_a": VaultConfig("vault_a", "0.5", "0.6", whitelisted=False)})
        computer = make_computer(healthy_positions, vaults_data=data)
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.vault("vault_a")) == 299

    def test_vault_without_config(self, make_computer, healthy_positions):
        with pytest.raises(MissingVaultConfig):
            make_computer(healthy_positions).max_borrow_amount_estimate("uusdc", BorrowTarget.vault("vault_a"))

    def test_unknown_denom(self, make_computer, healthy_positions):
        with pytest.raises(MissingAssetParams):
            make_computer(healthy_positions).max_borrow_amount_estimate("ujunk", BorrowTarget.wallet())

    def test_delisted_denom(self, make_computer, make_params, asset_params, healthy_positions):
        params = dict(asset_params, udai=make_params("udai", "0.85", "0.9", whitelisted=False))
        computer = make_computer(healthy_positions, params=params)
        assert computer.max_borrow_amount_estimate("udai", BorrowTarget.deposit()) == 0

    def test_no_collateral(self, make_computer):
        computer = make_computer(Positions("1"))
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.deposit()) == 0

    def test_unhealthy(self, make_computer, unhealthy_positions):
        computer = make_computer(unhealthy_positions)
        assert computer.max_borrow_amount_estimate("uusdc", BorrowTarget.wallet()) == 0

    def test_exactly_at_max_ltv(self, make_computer):
        """A max-LTV health factor of exactly one leaves nothing to borrow."""
        positions = Positions("1", deposits=[Coin("umars", 1000)], debts=[DebtAmount("uusdc", 800)])
        assert make_computer(positions).max_borrow_amount_estimate("uusdc", BorrowTarget.wallet()) == 0


# ============================================================================
# MAX WITHDRAW TESTS
# ============================================================================

class TestMaxWithdraw:
    """Tests for max_withdraw_amount_estimate."""

    def test_with_debt(self, make_computer, healthy_positions):
        """299 of headroom at 0.8 per umars: 373.75 -> 373."""
        assert make_computer(healthy_positions).max_withdraw_amount_estimate("umars") == 373

    def test_deposits_and_lends_combined(self, make_computer):
        positions = Positions(
            "1",
            deposits=[Coin("umars", 500)],
            lends=[Coin("umars", 500)],
            debts=[DebtAmount("uusdc", 500)],
        )
        assert make_computer(positions).max_withdraw_amount_estimate("umars") == 373

    def test_no_debt_withdraws_everything(self, make_computer, collateral_only_positions):
        assert make_computer(collateral_only_positions).max_withdraw_amount_estimate("umars") == 1200

    def test_not_held(self, make_computer, healthy_positions):
        assert make_computer(healthy_positions).max_withdraw_amount_estimate("udai") == 0

    def test_at_or_below_one(self, make_computer):
        positions = Positions("1", deposits=[Coin("umars", 1000)], debts=[DebtAmount("uusdc", 800)])
        assert make_computer(positions).max_withdraw_amount_estimate("umars") == 0

    def test_delisted_withdraws_everything(self, make_computer, make_params, asset_params):
        params = dict(asset_params, udai=make_params("udai", "0.85", "0.9", whitelisted=False))
        positions = Positions(
            "1",
            deposits=[Coin("umars", 1000), Coin("udai", 100)],
            debts=[DebtAmount("uusdc", 500)],
        )
        assert make_computer(positions, params=params).max_withdraw_amount_estimate("udai") == 100

    def test_no_params_withdraws_everything(self, make_computer, oracle_prices):
        positions = Positions(
            "1",
            deposits=[Coin("umars", 1000), Coin("ujunk", 77)],
            debts=[DebtAmount("uusdc", 500)],
        )
        prices = dict(oracle_prices, ujunk=Decimal("1"))
        assert make_computer(positions, prices=prices).max_withdraw_amount_estimate("ujunk") == 77


# ============================================================================
# MAX SWAP TESTS
# ============================================================================

class TestMaxSwap:
    """Tests for max_swap_amount_estimate."""

    def test_no_debt_swaps_everything(self, make_computer, collateral_only_positions):
        computer = make_computer(collateral_only_positions)
        assert computer.max_swap_amount_estimate("umars", "uluna", SwapKind.DEFAULT, Decimal("0.01")) == 1200

    def test_repaying_debt_swaps_everything(self, make_computer, unhealthy_positions):
        computer = make_computer(unhealthy_positions)
        amount = computer.max_swap_amount_estimate(
            "uluna", "uusdc", SwapKind.DEFAULT, Decimal("0.01"), is_repaying_debt=True,
        )
        assert amount == 100

    def test_into_higher_ltv(self, make_computer, healthy_positions):
        """udai after slippage (0.8415) is worth more than umars (0.8)."""
        computer = make_computer(healthy_positions)
        assert computer.max_swap_amount_estimate("umars", "udai", SwapKind.DEFAULT, Decimal("0.01")) == 1000

    def test_into_lower_ltv(self, make_computer):
        """49 of headroom over a 0.1 LTV drop: 490."""
        positions = Positions("1", deposits=[Coin("umars", 1000)], debts=[DebtAmount("uusdc", 750)])
        computer = make_computer(positions)
        assert computer.max_swap_amount_estimate("umars", "uluna", SwapKind.DEFAULT, Decimal("0")) == 490
        assert computer.max_swap_amount_estimate("umars", "uluna", SwapKind.MARGIN, Decimal("0")) == 490

    def test_margin_adds_borrowable(self, make_computer, healthy_positions):
        """
        Full 1000 umars swapped into uluna leaves 700 weighted; 700 - 500 - 1
        = 199 more can be borrowed at 0.3 per unit: 663 on top of 1000.
        """
        computer = make_computer(healthy_positions)
        assert computer.max_swap_amount_estimate("umars", "uluna", SwapKind.MARGIN, Decimal("0")) == 1663

    def test_unhealthy(self, make_computer, unhealthy_positions):
        computer = make_computer(unhealthy_positions)
        assert computer.max_swap_amount_estimate("uluna", "umars", SwapKind.DEFAULT, Decimal("0")) == 0


# ============================================================================
# MAX PERP SIZE TESTS
# ============================================================================

class TestRemainingOpenInterest:
    """Tests for calculate_remaining_oi_amount."""

    def test_direction_caps(self, make_perp_params):
        params = make_perp_params(max_net_oi_value=3000, max_long_oi_value=5000, max_short_oi_value=3000)
        assert calculate_remaining_oi_amount(100, 50, Decimal("10"), params, Direction.LONG) == 400
        assert calculate_remaining_oi_amount(100, 50, Decimal("10"), params, Direction.SHORT) == 250

    def test_net_cap_reached(self, make_perp_params):
        params = make_perp_params(max_net_oi_value=1500, max_long_oi_value=5000, max_short_oi_value=3000)
        assert calculate_remaining_oi_amount(100, 50, Decimal("10"), params, Direction.LONG) == 0

    def test_direction_cap_reached(self, make_perp_params):
        params = make_perp_params(max_net_oi_value=1000, max_long_oi_value=1000, max_short_oi_value=1000)
        assert calculate_remaining_oi_amount(0, 100, Decimal("10"), params, Direction.SHORT) == 0


@pytest.fixture
def perp_market(make_perp_params, oracle_prices):
    params = make_perp_params(max_net_oi_value=3000, max_long_oi_value=5000, max_short_oi_value=3000)
    prices = dict(oracle_prices, ueth=Decimal("10"))
    return PerpsData({"ueth": params}), prices


class TestMaxPerpSize:
    """Tests for max_perp_size_estimate."""

    def test_open_interest_binds(self, make_computer, perp_market):
        """Ample collateral: the 400 remaining long OI is the limit."""
        perps_data, prices = perp_market
        positions = Positions("1", deposits=[Coin("uusdc", 1_000_000)])
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.LONG) == 400

    def test_collateral_binds_long(self, make_computer, perp_market):
        """
        90 of borrowing power, each unit of size costs (1 - 0.8) * 10 = 2:
        a little under 45, truncated to 44.
        """
        perps_data, prices = perp_market
        positions = Positions("1", deposits=[Coin("uusdc", 100)])
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.LONG) == 44

    def test_collateral_binds_short(self, make_computer, perp_market):
        perps_data, prices = perp_market
        positions = Positions("1", deposits=[Coin("uusdc", 100)])
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.SHORT) == -44

    def test_staked_lps_do_not_count(self, make_computer, perp_market):
        perps_data, prices = perp_market
        positions = Positions("1", deposits=[Coin("uusdc", 100)], staked_lps=[Coin("umars", 1000)])
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.LONG) == 44

    def test_other_perps_are_weighted(self, make_computer, make_perp, make_perp_params, perp_market):
        """
        A flat 100 uatom long adds 80 to RWA and 100 to debt, taking 20 of
        the 90 of borrowing power: (90 - 20) / 2 = 35, truncated to 34.
        """
        perps_data, prices = perp_market
        perps_data = PerpsData(dict(perps_data.params, uatom=make_perp_params("uatom")))
        positions = Positions("1", deposits=[Coin("uusdc", 100)], perps=[make_perp(100, "1", "1", denom="uatom")])
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.LONG) == 34

    def test_existing_position_is_deducted(self, make_computer, make_perp, perp_market):
        """
        A 50 long already inside the 100 long OI raises the cap to 450;
        the current size is then deducted.
        """
        perps_data, prices = perp_market
        positions = Positions(
            "1",
            deposits=[Coin("uusdc", 1_000_000)],
            perps=[make_perp(50, "10", "10")],
        )
        computer = make_computer(positions, perps_data=perps_data, prices=prices)
        assert computer.max_perp_size_estimate("ueth", "uusdc", 100, 50, Direction.LONG) == 400

    def test_no_open_interest_left_closes_only(self, make_computer, make_perp, make_perp_params, oracle_prices):
        """With the caps reached, only the opposite direction (closing) is allowed."""
        params = make_perp_params(max_net_oi_value=100, max_long_oi_value=100, max_short_oi_value=100)
        prices = dict(oracle_prices, ueth=Decimal("10"))
        positions = Positions("1", deposits=[Coin("uusdc", 1000)], perps=[make_perp(5, "10", "10")])
        computer = make_computer(positions, perps_data=PerpsData({"ueth": params}), prices=prices)

        assert computer.max_perp_size_estimate("ueth", "uusdc", 10, 10, Direction.LONG) == 0
        assert computer.max_perp_size_estimate("ueth", "uusdc", 10, 10, Direction.SHORT) == -5


# ============================================================================
# LIQUIDATION PRICE TESTS
# ============================================================================

class TestLiquidationPrice:
    """Tests for liquidation_price."""

    def test_asset(self, make_computer, healthy_positions):
        """840 * p = 500 at p = 0.595238..."""
        price = make_computer(healthy_positions).liquidation_price("umars", LiquidationPriceKind.ASSET)
        assert price == Decimal("0.595238095238095238")

    def test_debt(self, make_computer, healthy_positions):
        """500 * p = 840 at p = 1.68."""
        price = make_computer(healthy_positions).liquidation_price("uusdc", LiquidationPriceKind.DEBT)
        assert price == Decimal("1.68")

    def test_no_debt(self, make_computer, collateral_only_positions):
        computer = make_computer(collateral_only_positions)
        assert computer.liquidation_price("umars", LiquidationPriceKind.ASSET) == Decimal("0")

    def test_already_liquidatable_returns_current_price(self, make_computer, unhealthy_positions):
        computer = make_computer(unhealthy_positions)
        assert computer.liquidation_price("uluna", LiquidationPriceKind.ASSET) == Decimal("10")

    def test_asset_not_held(self, make_computer, healthy_positions):
        with pytest.raises(MissingAmount):
            make_computer(healthy_positions).liquidation_price("udai", LiquidationPriceKind.ASSET)

    def test_debt_not_owed(self, make_computer, healthy_positions):
        with pytest.raises(MissingAmount):
            make_computer(healthy_positions).liquidation_price("umars", LiquidationPriceKind.DEBT)

    def test_asset_without_liquidation_weight(self, make_computer, make_params, asset_params):
        """A de-listed asset no longer moves the liquidation health factor."""
        params = dict(asset_params, umars=make_params("umars", "0.8", "0.84", whitelisted=False))
        positions = Positions(
            "1",
            deposits=[Coin("umars", 1000), Coin("uusdc", 1000)],
            debts=[DebtAmount("uusdc", 500)],
        )
        price = make_computer(positions, params=params).liquidation_price("umars", LiquidationPriceKind.ASSET)
        assert price == Decimal("0")

    def test_perp_long(self, make_computer, make_perp, perps_data):
        """
        (950 + 1000 * p * 0.85) / (500 + 2000) = 1 at p = 1550 / 850.
        """
        positions = Positions(
            "1",
            deposits=[Coin("uusdc", 1000)],
            debts=[DebtAmount("uusdc", 500)],
            perps=[make_perp(1000, "2", "2")],
        )
        price = make_computer(positions, perps_data=perps_data).liquidation_price("ueth", LiquidationPriceKind.PERP)
        assert price == Decimal("1.823529411764705882")

    def test_perp_short(self, make_computer, make_perp, perps_data):
        """
        (950 + 2000) / (500 + 1000 * p * 1.15) = 1 at p = 2450 / 1150.
        """
        positions = Positions(
            "1",
            deposits=[Coin("uusdc", 1000)],
            debts=[DebtAmount("uusdc", 500)],
            perps=[make_perp(-1000, "2", "2")],
        )
        price = make_computer(positions, perps_data=perps_data).liquidation_price("ueth", LiquidationPriceKind.PERP)
        assert price == Decimal("2.130434782608695652")

    def test_perp_price_floored_at_zero(self, make_computer, make_perp, perps_data):
        positions = Positions(
            "1",
            deposits=[Coin("uusdc", 1000)],
            debts=[DebtAmount("uusdc", 500)],
            perps=[make_perp(100, "2", "2")],
        )
        price = make_computer(positions, perps_data=perps_data).liquidation_price("ueth", LiquidationPriceKind.PERP)
        assert price == Decimal("0")

    def test_perp_without_debt_weighs_its_notional(self, make_computer, make_perp, perps_data):
        """A lone long is owed its entry notional, so it has a liquidation price."""
        positions = Positions("1", deposits=[Coin("uusdc", 100)], perps=[make_perp(100, "2", "2")])
        price = make_computer(positions, perps_data=perps_data).liquidation_price("ueth", LiquidationPriceKind.PERP)
        assert price == Decimal("1.235294117647058823")

    def test_perp_not_present(self, make_computer, healthy_positions):
        with pytest.raises(DenomNotPresent):
            make_computer(healthy_positions).liquidation_price("ueth", LiquidationPriceKind.PERP)
