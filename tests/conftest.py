"""
conftest.py - Shared pytest fixtures for solvency tests

Provides common fixtures used across unit tests:
- A market of listed assets (prices and asset params)
- Factories for asset params, perp params and perp positions
- Typical account snapshots (healthy, unhealthy, collateral-only)
"""

import pytest
from decimal import Decimal

from solvency import (
    AssetParams, LiquidationBonus, CmSettings, HlsParams,
    PerpParams, PerpPosition, Positions, Coin, DebtAmount,
    HealthComputer, AccountKind, VaultsData, PerpsData,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

DEFAULT_BONUS = LiquidationBonus(
    starting_lb=Decimal("0.01"),
    slope=Decimal("2"),
    min_lb=Decimal("0.02"),
    max_lb=Decimal("0.1"),
)


def create_asset_params(
    denom: str,
    max_ltv: str,
    liq_threshold: str,
    whitelisted: bool = True,
    hls: HlsParams = None,
    protocol_fee: str = "0.02",
    close_factor: str = "0.8",
) -> AssetParams:
    """Create asset params with the shared bonus curve."""
    return AssetParams(
        denom=denom,
        max_loan_to_value=Decimal(max_ltv),
        liquidation_threshold=Decimal(liq_threshold),
        liquidation_bonus=DEFAULT_BONUS,
        credit_manager=CmSettings(whitelisted=whitelisted, hls=hls),
        protocol_liquidation_fee=Decimal(protocol_fee),
        close_factor=Decimal(close_factor),
    )


def create_perp_params(denom: str = "ueth", **overrides) -> PerpParams:
    """Create perp params for a deep, fee-free market."""
    values = dict(
        denom=denom,
        max_loan_to_value=Decimal("0.8"),
        liquidation_threshold=Decimal("0.85"),
        skew_scale=1_000_000_000,
        max_net_oi_value=10_000,
        max_long_oi_value=10_000,
        max_short_oi_value=10_000,
    )
    values.update(overrides)
    return PerpParams(**values)


def create_perp(size: int, entry: str, current: str, denom: str = "ueth", base_denom: str = "uusdc") -> PerpPosition:
    """Perp position whose oracle and execution prices coincide."""
    return PerpPosition(
        denom=denom,
        base_denom=base_denom,
        size=size,
        entry_price=Decimal(entry),
        current_price=Decimal(current),
        entry_exec_price=Decimal(entry),
        current_exec_price=Decimal(current),
    )


# =============================================================================
# MARKET FIXTURES
# =============================================================================

@pytest.fixture
def oracle_prices():
    """Oracle prices for the listed test assets."""
    return {
        "umars": Decimal("1"),
        "udai": Decimal("0.313451"),
        "uluna": Decimal("10"),
        "uatom": Decimal("0.941236"),
        "uusdc": Decimal("1"),
        "ueth": Decimal("2"),
    }


@pytest.fixture
def asset_params():
    """Asset params for the listed test assets."""
    return {
        "umars": create_asset_params("umars", "0.8", "0.84"),
        "udai": create_asset_params("udai", "0.85", "0.9"),
        "uluna": create_asset_params("uluna", "0.7", "0.78"),
        "uatom": create_asset_params("uatom", "0.65", "0.7", hls=HlsParams(Decimal("0.71"), Decimal("0.74"))),
        "uusdc": create_asset_params("uusdc", "0.9", "0.95"),
    }


@pytest.fixture
def make_params():
    """Factory fixture for custom asset params."""
    return create_asset_params


@pytest.fixture
def perp_params():
    """Perp params for the ueth market."""
    return create_perp_params()


@pytest.fixture
def perps_data(perp_params):
    """PerpsData holding the ueth market."""
    return PerpsData({"ueth": perp_params})


@pytest.fixture
def make_perp_params():
    """Factory fixture for custom perp params."""
    return create_perp_params


@pytest.fixture
def make_perp():
    """Factory fixture for perp positions."""
    return create_perp


@pytest.fixture
def make_computer(asset_params, oracle_prices):
    """
    Factory fixture for HealthComputer over the shared market.

    Usage:
        computer = make_computer(positions)
        computer = make_computer(positions, kind=AccountKind.usdc_margin())
    """
    def _make(positions, kind=None, vaults_data=None, perps_data=None, params=None, prices=None):
        return HealthComputer(
            kind=kind if kind is not None else AccountKind.default(),
            positions=positions,
            asset_params=params if params is not None else asset_params,
            oracle_prices=prices if prices is not None else oracle_prices,
            vaults_data=vaults_data if vaults_data is not None else VaultsData(),
            perps_data=perps_data if perps_data is not None else PerpsData(),
        )
    return _make


# =============================================================================
# ACCOUNT FIXTURES
# =============================================================================

@pytest.fixture
def healthy_positions():
    """1000 umars deposited against 500 uusdc of debt."""
    return Positions(
        account_id="1",
        deposits=[Coin("umars", 1000)],
        debts=[DebtAmount("uusdc", 500)],
    )


@pytest.fixture
def unhealthy_positions():
    """100 uluna (value 1000) deposited against 800 uusdc of debt."""
    return Positions(
        account_id="2",
        deposits=[Coin("uluna", 100)],
        debts=[DebtAmount("uusdc", 800)],
    )


@pytest.fixture
def collateral_only_positions():
    """Deposits and lends, nothing owed."""
    return Positions(
        account_id="3",
        deposits=[Coin("umars", 1200)],
        lends=[Coin("udai", 1200)],
    )
