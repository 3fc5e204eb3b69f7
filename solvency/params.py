"""
params.py - Risk parameters for assets, perpetual markets and vaults

ARCHITECTURE:
=============

1. FROZEN DATACLASSES (explicit inputs):
   - LiquidationBonus: the dynamic bonus curve of an asset
   - HlsParams: high-levered-strategy overrides and correlated collateral
   - CmSettings: account-manager settings (whitelist, HLS overrides)
   - AssetParams: per-asset LTV, liquidation threshold, bonus and fees
   - PerpParams: per-market LTVs, fees, skew scale and open-interest caps
   - VaultConfig: per-vault LTVs and whitelist

2. VALIDATION FUNCTIONS (validate_*):
   - Raise InvalidParams naming the offending parameter
   - Pure; the engine itself does not call them on every computation,
     callers validate when parameters are registered

Decimal fields accept Decimal, str, int or float and are normalised to
18-place Decimals on construction.

Key Invariants:
    max_loan_to_value < liquidation_threshold <= 1
    min_lb <= max_lb
    close_factor <= 1
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from .core import DECIMAL_ONE, DECIMAL_ZERO, InvalidParams
from .numeric import to_decimal


HLS_ASSET_COIN = "coin"
HLS_ASSET_VAULT = "vault"


def _normalise(obj, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is not None:
            object.__setattr__(obj, name, to_decimal(value))


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LiquidationBonus:
    """
    Dynamic liquidation bonus curve.

        bonus = starting_lb + slope * (1 - HF), bounded to [min_lb, max_lb]
    """
    starting_lb: Decimal
    slope: Decimal
    min_lb: Decimal
    max_lb: Decimal

    def __post_init__(self):
        _normalise(self, "starting_lb", "slope", "min_lb", "max_lb")


@dataclass(frozen=True, slots=True)
class HlsAssetType:
    """A correlated collateral for HLS accounts: either a coin denom or a vault address."""
    kind: str  # HLS_ASSET_COIN or HLS_ASSET_VAULT
    key: str

    @classmethod
    def coin(cls, denom: str) -> "HlsAssetType":
        return cls(HLS_ASSET_COIN, denom)

    @classmethod
    def vault(cls, addr: str) -> "HlsAssetType":
        return cls(HLS_ASSET_VAULT, addr)


@dataclass(frozen=True, slots=True)
class HlsParams:
    max_loan_to_value: Decimal
    liquidation_threshold: Decimal
    correlations: Tuple[HlsAssetType, ...] = ()

    def __post_init__(self):
        _normalise(self, "max_loan_to_value", "liquidation_threshold")
        object.__setattr__(self, "correlations", tuple(self.correlations))

    def correlates_with_coin(self, denom: str) -> bool:
        return HlsAssetType.coin(denom) in self.correlations

    def correlates_with_vault(self, addr: str) -> bool:
        return HlsAssetType.vault(addr) in self.correlations


@dataclass(frozen=True, slots=True)
class CmSettings:
    """Account-manager settings for an asset."""
    whitelisted: bool = True
    withdraw_enabled: bool = True
    hls: Optional[HlsParams] = None


@dataclass(frozen=True, slots=True)
class AssetParams:
    """
    Immutable risk parameters for a single asset.

    Attributes:
        denom: Asset identifier.
        credit_manager: Whitelist and HLS settings.
        max_loan_to_value: Weight applied to collateral for borrowing power.
        liquidation_threshold: Weight applied to collateral for liquidation.
        liquidation_bonus: Bonus curve paid to liquidators seizing this asset.
        protocol_liquidation_fee: Share of the bonus value taken by the protocol.
        close_factor: Fraction of total debt value repayable per liquidation.
        deposit_cap: Informational; not enforced by the engine.
    """
    denom: str
    max_loan_to_value: Decimal
    liquidation_threshold: Decimal
    liquidation_bonus: LiquidationBonus
    credit_manager: CmSettings = field(default_factory=CmSettings)
    protocol_liquidation_fee: Decimal = DECIMAL_ZERO
    close_factor: Decimal = DECIMAL_ONE
    deposit_cap: int = 0

    def __post_init__(self):
        if not self.denom or not self.denom.strip():
            raise ValueError("AssetParams denom cannot be empty")
        _normalise(self, "max_loan_to_value", "liquidation_threshold",
                   "protocol_liquidation_fee", "close_factor")

    @property
    def whitelisted(self) -> bool:
        return self.credit_manager.whitelisted

    @property
    def hls(self) -> Optional[HlsParams]:
        return self.credit_manager.hls


@dataclass(frozen=True, slots=True)
class PerpParams:
    """
    Immutable parameters of a perpetual market.

    Open-interest caps are expressed in value (oracle price units). The
    *_usdc LTV variants apply to USDC-margin accounts.
    """
    denom: str
    max_loan_to_value: Decimal
    liquidation_threshold: Decimal
    skew_scale: int
    max_net_oi_value: int
    max_long_oi_value: int
    max_short_oi_value: int
    enabled: bool = True
    closing_fee_rate: Decimal = DECIMAL_ZERO
    opening_fee_rate: Decimal = DECIMAL_ZERO
    min_position_value: int = 0
    max_position_value: Optional[int] = None
    max_loan_to_value_usdc: Optional[Decimal] = None
    liquidation_threshold_usdc: Optional[Decimal] = None

    def __post_init__(self):
        if not self.denom or not self.denom.strip():
            raise ValueError("PerpParams denom cannot be empty")
        _normalise(self, "max_loan_to_value", "liquidation_threshold", "closing_fee_rate",
                   "opening_fee_rate", "max_loan_to_value_usdc", "liquidation_threshold_usdc")


@dataclass(frozen=True, slots=True)
class VaultConfig:
    addr: str
    max_loan_to_value: Decimal
    liquidation_threshold: Decimal
    whitelisted: bool = True
    hls: Optional[HlsParams] = None
    deposit_cap: Optional[int] = None

    def __post_init__(self):
        _normalise(self, "max_loan_to_value", "liquidation_threshold")


# ============================================================================
# VALIDATION
# ============================================================================

def _lt_one(value: Decimal, name: str) -> None:
    if value >= DECIMAL_ONE:
        raise InvalidParams(f"{name} must be less than 1, got {value}")


def _le_one(value: Decimal, name: str) -> None:
    if value > DECIMAL_ONE:
        raise InvalidParams(f"{name} must be less than or equal to 1, got {value}")


def _lqt_gt_max_ltv(max_ltv: Decimal, liq_threshold: Decimal, prefix: str = "") -> None:
    if liq_threshold <= max_ltv:
        raise InvalidParams(
            f"{prefix}liquidation_threshold ({liq_threshold}) must be greater than "
            f"{prefix}max_loan_to_value ({max_ltv})"
        )


def validate_liquidation_bonus(bonus: LiquidationBonus) -> None:
    """
    Validate a bonus curve.

    starting_lb and min_lb in [0, 10%], slope in [1, 5], max_lb in [5%, 30%],
    and min_lb <= max_lb.
    """
    if bonus.starting_lb > Decimal("0.1"):
        raise InvalidParams(f"starting_lb must be at most 10%, got {bonus.starting_lb}")
    if bonus.slope < DECIMAL_ONE or bonus.slope > Decimal("5"):
        raise InvalidParams(f"slope must be within [1, 5], got {bonus.slope}")
    if bonus.min_lb > Decimal("0.1"):
        raise InvalidParams(f"min_lb must be at most 10%, got {bonus.min_lb}")
    if bonus.max_lb < Decimal("0.05") or bonus.max_lb > Decimal("0.3"):
        raise InvalidParams(f"max_lb must be within [5%, 30%], got {bonus.max_lb}")
    if bonus.min_lb > bonus.max_lb:
        raise InvalidParams(f"max_lb ({bonus.max_lb}) must be at least min_lb ({bonus.min_lb})")


def validate_asset_params(params: AssetParams) -> AssetParams:
    """Validate asset params, returning them unchanged when valid."""
    _lt_one(params.max_loan_to_value, "max_loan_to_value")
    _le_one(params.liquidation_threshold, "liquidation_threshold")
    _lqt_gt_max_ltv(params.max_loan_to_value, params.liquidation_threshold)
    _le_one(params.close_factor, "close_factor")
    validate_liquidation_bonus(params.liquidation_bonus)
    _lt_one(params.protocol_liquidation_fee, "protocol_liquidation_fee")

    hls = params.credit_manager.hls
    if hls is not None:
        _lt_one(hls.max_loan_to_value, "hls_max_loan_to_value")
        _le_one(hls.liquidation_threshold, "hls_liquidation_threshold")
        _lqt_gt_max_ltv(hls.max_loan_to_value, hls.liquidation_threshold, "hls_")
    return params


def validate_perp_params(params: PerpParams) -> PerpParams:
    """Validate perp params, returning them unchanged when valid."""
    _lt_one(params.max_loan_to_value, "max_loan_to_value")
    _le_one(params.liquidation_threshold, "liquidation_threshold")
    _lqt_gt_max_ltv(params.max_loan_to_value, params.liquidation_threshold)
    if (params.max_loan_to_value_usdc is None) != (params.liquidation_threshold_usdc is None):
        raise InvalidParams("max_loan_to_value_usdc and liquidation_threshold_usdc must be set together")
    if params.max_loan_to_value_usdc is not None:
        _lt_one(params.max_loan_to_value_usdc, "max_loan_to_value_usdc")
        _le_one(params.liquidation_threshold_usdc, "liquidation_threshold_usdc")
        _lqt_gt_max_ltv(params.max_loan_to_value_usdc, params.liquidation_threshold_usdc, "usdc_")
    if params.max_net_oi_value > params.max_long_oi_value:
        raise InvalidParams("max_net_oi_value must be at most max_long_oi_value")
    if params.max_net_oi_value > params.max_short_oi_value:
        raise InvalidParams("max_net_oi_value must be at most max_short_oi_value")
    if params.max_position_value is not None and params.max_position_value < params.min_position_value:
        raise InvalidParams("max_position_value must be at least min_position_value")
    if params.skew_scale == 0:
        raise InvalidParams("skew_scale must be greater than zero")
    return params


def validate_vault_config(config: VaultConfig) -> VaultConfig:
    """Validate a vault config, returning it unchanged when valid."""
    _lt_one(config.max_loan_to_value, "max_loan_to_value")
    _le_one(config.liquidation_threshold, "liquidation_threshold")
    _lqt_gt_max_ltv(config.max_loan_to_value, config.liquidation_threshold)
    if config.hls is not None:
        _lt_one(config.hls.max_loan_to_value, "hls_max_loan_to_value")
        _le_one(config.hls.liquidation_threshold, "hls_liquidation_threshold")
        _lqt_gt_max_ltv(config.hls.max_loan_to_value, config.hls.liquidation_threshold, "hls_")
    return config
