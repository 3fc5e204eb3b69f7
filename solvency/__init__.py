"""
solvency - Account health and liquidation engine

Pure, deterministic risk computations for margin accounts holding spot
deposits, debts, lends, vault shares, staked LP tokens and perpetual
positions.

Usage:
    from solvency import (
        AssetParams, LiquidationBonus, Positions, Coin, DebtAmount,
        compute_health, HealthComputer, AccountKind, BorrowTarget,
    )

    params = {
        "uatom": AssetParams(
            denom="uatom",
            max_loan_to_value="0.65",
            liquidation_threshold="0.7",
            liquidation_bonus=LiquidationBonus("0.01", "2", "0.02", "0.1"),
        ),
    }
    positions = Positions(
        account_id="1",
        deposits=[Coin("uatom", 1000)],
        debts=[DebtAmount("uatom", 300)],
    )
    health = compute_health(positions, params, {"uatom": "0.941236"})

    computer = HealthComputer(AccountKind.default(), positions, params, {"uatom": "0.941236"})
    computer.max_borrow_amount_estimate("uatom", BorrowTarget.deposit())
"""

import logging

# Core types
from .core import (
    Coin,
    DebtAmount,
    DECIMAL_PLACES,
    UINT128_MAX,
    INT128_MIN,
    INT128_MAX,
    SolvencyError,
    HealthError,
    MissingDataError,
    MissingPrice,
    MissingAssetParams,
    MissingPerpParams,
    MissingHLSParams,
    MissingUSDCMarginParams,
    MissingVaultConfig,
    MissingVaultValues,
    MissingAmount,
    DenomNotPresent,
    MathError,
    CheckedOverflow,
    DivideByZero,
    DecimalRangeExceeded,
    ConversionOverflow,
    InvalidParams,
    DuplicateDenom,
    HealthGuardError,
    AboveMaxLTV,
    HealthNotImproved,
    UnhealthyLiquidationHfDecrease,
    LiquidationError,
    HealthNotAvailable,
    ZeroDebt,
    InvalidLiquidationAmounts,
    NotLiquidatable,
    CoinNotAvailable,
    LiquidationNotProfitable,
    SelfLiquidation,
)

# Fixed-point helpers
from .numeric import (
    to_decimal,
    from_ratio,
    mul_floor,
    mul_ceil,
    div_floor,
    weighted_avg,
    prorate_i128_by_amount,
    uint128_to_int128,
    int128_to_uint128,
    int128_to_signed_decimal,
    signed_decimal_to_int_floor,
    uint128_to_decimal,
)

# Parameters
from .params import (
    LiquidationBonus,
    HlsAssetType,
    HlsParams,
    CmSettings,
    AssetParams,
    PerpParams,
    VaultConfig,
    validate_asset_params,
    validate_perp_params,
    validate_vault_config,
    validate_liquidation_bonus,
)

# Positions
from .positions import (
    AccountKind,
    param_table,
    PARAM_TABLE_GENERAL,
    PARAM_TABLE_HLS,
    PARAM_TABLE_USDC_MARGIN,
    Positions,
    VaultPosition,
    VaultPositionAmount,
    VaultUnlockingPosition,
    VaultPositionValue,
    CoinValue,
    VaultsData,
    PerpPosition,
    PnlAmounts,
    PerpsData,
    PerpVaultPosition,
    PerpVaultDeposit,
    PerpVaultUnlock,
)

# Perps pricing
from .pricing import (
    PnL,
    PNL_PROFIT,
    PNL_LOSS,
    PNL_BREAK_EVEN,
    compute_pnl,
    opening_execution_price,
    closing_execution_price,
)

# Health
from .health import (
    BorrowTarget,
    SwapKind,
    LiquidationPriceKind,
    Direction,
    CollateralValue,
    PerpPnlValues, PerpHealthFactorValues,
    HealthValuesResponse,
    HealthState,
    Healthy,
    Unhealthy,
    is_below_one,
    assert_health_not_weakened,
)

# Health computer
from .health_computer import (
    HealthComputer,
    compute_health,
    compute_health_state,
    calculate_remaining_oi_amount,
)

# Liquidation
from .liquidation import (
    LiquidationConfig,
    DEFAULT_LIQUIDATION_CONFIG,
    HealthData,
    LiquidationAmounts,
    LiquidationResult,
    calculate_liquidation_bonus,
    calculate_liquidation_amounts,
    calculate_liquidation,
    assert_liquidatable,
    assert_not_self_liquidation,
    assert_liquidation_profitable,
    protocol_fee_coin,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Core
    'Coin', 'DebtAmount', 'DECIMAL_PLACES', 'UINT128_MAX', 'INT128_MIN', 'INT128_MAX',
    # Exceptions
    'SolvencyError', 'HealthError', 'MissingDataError', 'MissingPrice', 'MissingAssetParams',
    'MissingPerpParams', 'MissingHLSParams', 'MissingUSDCMarginParams', 'MissingVaultConfig',
    'MissingVaultValues', 'MissingAmount', 'DenomNotPresent', 'MathError', 'CheckedOverflow',
    'DivideByZero', 'DecimalRangeExceeded', 'ConversionOverflow', 'InvalidParams', 'DuplicateDenom',
    'HealthGuardError', 'AboveMaxLTV', 'HealthNotImproved', 'UnhealthyLiquidationHfDecrease',
    'LiquidationError', 'HealthNotAvailable', 'ZeroDebt', 'InvalidLiquidationAmounts',
    'NotLiquidatable', 'CoinNotAvailable', 'LiquidationNotProfitable', 'SelfLiquidation',
    # Numeric
    'to_decimal', 'from_ratio', 'mul_floor', 'mul_ceil', 'div_floor',
    'weighted_avg', 'prorate_i128_by_amount',
    'uint128_to_int128', 'int128_to_uint128', 'int128_to_signed_decimal',
    'signed_decimal_to_int_floor', 'uint128_to_decimal',
    # Params
    'LiquidationBonus', 'HlsAssetType', 'HlsParams', 'CmSettings', 'AssetParams', 'PerpParams',
    'VaultConfig', 'validate_asset_params', 'validate_perp_params', 'validate_vault_config',
    'validate_liquidation_bonus',
    # Positions
    'AccountKind', 'param_table', 'PARAM_TABLE_GENERAL', 'PARAM_TABLE_HLS', 'PARAM_TABLE_USDC_MARGIN',
    'Positions', 'VaultPosition', 'VaultPositionAmount', 'VaultUnlockingPosition',
    'VaultPositionValue', 'CoinValue', 'VaultsData', 'PerpPosition', 'PnlAmounts', 'PerpsData',
    'PerpVaultPosition', 'PerpVaultDeposit', 'PerpVaultUnlock',
    # Pricing
    'PnL', 'PNL_PROFIT', 'PNL_LOSS', 'PNL_BREAK_EVEN', 'compute_pnl',
    'opening_execution_price', 'closing_execution_price',
    # Health
    'BorrowTarget', 'SwapKind', 'LiquidationPriceKind', 'Direction', 'CollateralValue',
    'PerpPnlValues', 'PerpHealthFactorValues', 'HealthValuesResponse', 'HealthState', 'Healthy', 'Unhealthy',
    'is_below_one', 'assert_health_not_weakened',
    'HealthComputer', 'compute_health', 'compute_health_state', 'calculate_remaining_oi_amount',
    # Liquidation
    'LiquidationConfig', 'DEFAULT_LIQUIDATION_CONFIG', 'HealthData', 'LiquidationAmounts',
    'LiquidationResult', 'calculate_liquidation_bonus', 'calculate_liquidation_amounts',
    'calculate_liquidation', 'assert_liquidatable', 'assert_not_self_liquidation',
    'assert_liquidation_profitable', 'protocol_fee_coin',
]

__version__ = '0.1.0'
