"""
positions.py - Account position snapshots and account kinds

A Positions value is a complete, immutable snapshot of one account:
spot deposits, debts, lends, vault positions, staked LP tokens, perpetual
positions and an optional perp-vault position. The engine never mutates it;
callers build a fresh snapshot for every computation.

Account kinds select which risk-parameter table applies:

    Default, FundManager(vault) -> general table
    UsdcMargin                  -> general table, USDC-margin perp LTVs
    HighLeveredStrategy         -> HLS table (correlated collateral only)
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence, Tuple

from .core import Coin, DebtAmount, DuplicateDenom, INT128_MAX, INT128_MIN
from .numeric import to_decimal
from .params import PerpParams, VaultConfig


# Account kind tags (strings, not enum, like the other tag constants).
ACCOUNT_KIND_DEFAULT = "default"
ACCOUNT_KIND_USDC_MARGIN = "usdc_margin"
ACCOUNT_KIND_HIGH_LEVERED_STRATEGY = "high_levered_strategy"
ACCOUNT_KIND_FUND_MANAGER = "fund_manager"

# Risk parameter tables.
PARAM_TABLE_GENERAL = "general"
PARAM_TABLE_HLS = "hls"
PARAM_TABLE_USDC_MARGIN = "usdc_margin"


# ============================================================================
# ACCOUNT KIND
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountKind:
    """
    Tagged account kind. Only FundManager carries a payload (its vault address).

    Use the factory classmethods rather than the constructor.
    """
    tag: str
    vault_addr: Optional[str] = None

    @classmethod
    def default(cls) -> "AccountKind":
        return cls(ACCOUNT_KIND_DEFAULT)

    @classmethod
    def usdc_margin(cls) -> "AccountKind":
        return cls(ACCOUNT_KIND_USDC_MARGIN)

    @classmethod
    def high_levered_strategy(cls) -> "AccountKind":
        return cls(ACCOUNT_KIND_HIGH_LEVERED_STRATEGY)

    @classmethod
    def fund_manager(cls, vault_addr: str) -> "AccountKind":
        return cls(ACCOUNT_KIND_FUND_MANAGER, vault_addr)

    def __post_init__(self):
        if self.tag not in (ACCOUNT_KIND_DEFAULT, ACCOUNT_KIND_USDC_MARGIN,
                            ACCOUNT_KIND_HIGH_LEVERED_STRATEGY, ACCOUNT_KIND_FUND_MANAGER):
            raise ValueError(f"Unknown account kind: {self.tag}")
        if (self.tag == ACCOUNT_KIND_FUND_MANAGER) != (self.vault_addr is not None):
            raise ValueError("Only fund manager accounts carry a vault address")

    def __str__(self) -> str:
        if self.vault_addr is not None:
            return f"{self.tag}({self.vault_addr})"
        return self.tag


def param_table(kind: AccountKind) -> str:
    """Select the risk-parameter table that applies to an account kind."""
    if kind.tag == ACCOUNT_KIND_HIGH_LEVERED_STRATEGY:
        return PARAM_TABLE_HLS
    if kind.tag == ACCOUNT_KIND_USDC_MARGIN:
        return PARAM_TABLE_USDC_MARGIN
    return PARAM_TABLE_GENERAL


# ============================================================================
# VAULT POSITIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultUnlockingPosition:
    id: int
    coin: Coin


@dataclass(frozen=True, slots=True)
class VaultPositionAmount:
    """
    Vault shares held by an account.

    unlocked and locked are vault-share amounts, valued via the vault's
    VaultPositionValue. Unlocking positions are already denominated in the
    vault's base token.
    """
    unlocked: int = 0
    locked: int = 0
    unlocking: Tuple[VaultUnlockingPosition, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "unlocking", tuple(self.unlocking))

    def unlocking_total(self) -> int:
        return sum(u.coin.amount for u in self.unlocking)


@dataclass(frozen=True, slots=True)
class VaultPosition:
    vault_address: str
    amount: VaultPositionAmount


@dataclass(frozen=True, slots=True)
class CoinValue:
    denom: str
    amount: int
    value: int


@dataclass(frozen=True, slots=True)
class VaultPositionValue:
    """Externally supplied valuation of a vault position."""
    vault_coin: CoinValue
    base_coin: CoinValue


@dataclass(frozen=True, slots=True)
class VaultsData:
    """Vault valuations and configs keyed by vault address."""
    vault_values: Mapping[str, VaultPositionValue] = field(default_factory=dict)
    vault_configs: Mapping[str, VaultConfig] = field(default_factory=dict)


# ============================================================================
# PERPS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PnlAmounts:
    """Signed PnL components of a perp position, in base-denom amounts."""
    price_pnl: int = 0
    accrued_funding: int = 0
    opening_fee: int = 0
    closing_fee: int = 0
    pnl: int = 0


@dataclass(frozen=True, slots=True)
class PerpPosition:
    """
    An open perpetual position.

    size is signed: positive for long, negative for short. Execution prices
    include market impact (see pricing.py).
    """
    denom: str
    base_denom: str
    size: int
    entry_price: Decimal
    current_price: Decimal
    entry_exec_price: Decimal
    current_exec_price: Decimal
    unrealized_pnl: PnlAmounts = field(default_factory=PnlAmounts)
    realized_pnl: PnlAmounts = field(default_factory=PnlAmounts)

    def __post_init__(self):
        if self.size < INT128_MIN or self.size > INT128_MAX:
            raise ValueError(f"Perp size for {self.denom} out of i128 range: {self.size}")
        for name in ("entry_price", "current_price", "entry_exec_price", "current_exec_price"):
            object.__setattr__(self, name, to_decimal(getattr(self, name)))


@dataclass(frozen=True, slots=True)
class PerpsData:
    """Perp market params keyed by perp denom."""
    params: Mapping[str, PerpParams] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PerpVaultDeposit:
    amount: int
    shares: int = 0


@dataclass(frozen=True, slots=True)
class PerpVaultUnlock:
    amount: int
    created_at: int = 0
    cooldown_end: int = 0


@dataclass(frozen=True, slots=True)
class PerpVaultPosition:
    """Liquidity provided to the perps counterparty vault, including pending unlocks."""
    denom: str
    deposit: PerpVaultDeposit
    unlocks: Tuple[PerpVaultUnlock, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "unlocks", tuple(self.unlocks))

    def total_amount(self) -> int:
        return self.deposit.amount + sum(u.amount for u in self.unlocks)


# ============================================================================
# POSITIONS SNAPSHOT
# ============================================================================

def _unique_by_denom(items: Iterable, category: str, key=lambda x: x.denom) -> None:
    seen = set()
    for item in items:
        k = key(item)
        if k in seen:
            raise DuplicateDenom(f"{k} appears more than once in {category}")
        seen.add(k)


@dataclass(frozen=True, slots=True)
class Positions:
    """
    Immutable snapshot of an account's positions.

    Each denom appears at most once per category; vault addresses appear at
    most once among vaults.
    """
    account_id: str
    deposits: Sequence[Coin] = ()
    debts: Sequence[DebtAmount] = ()
    lends: Sequence[Coin] = ()
    vaults: Sequence[VaultPosition] = ()
    staked_lps: Sequence[Coin] = ()
    perps: Sequence[PerpPosition] = ()
    perp_vault: Optional[PerpVaultPosition] = None

    def __post_init__(self):
        for name in ("deposits", "debts", "lends", "vaults", "staked_lps", "perps"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        _unique_by_denom(self.deposits, "deposits")
        _unique_by_denom(self.debts, "debts")
        _unique_by_denom(self.lends, "lends")
        _unique_by_denom(self.staked_lps, "staked_lps")
        _unique_by_denom(self.perps, "perps")
        _unique_by_denom(self.vaults, "vaults", key=lambda v: v.vault_address)

    def has_debts(self) -> bool:
        return len(self.debts) > 0

    def has_perps(self) -> bool:
        return len(self.perps) > 0

    def deposit_amount(self, denom: str) -> int:
        return _amount_of(self.deposits, denom)

    def lend_amount(self, denom: str) -> int:
        return _amount_of(self.lends, denom)

    def staked_lp_amount(self, denom: str) -> int:
        return _amount_of(self.staked_lps, denom)

    def debt_amount(self, denom: str) -> int:
        return _amount_of(self.debts, denom)

    def collateral_amount(self, denom: str) -> int:
        """Amount of a denom held across deposits, lends and staked LP."""
        return self.deposit_amount(denom) + self.lend_amount(denom) + self.staked_lp_amount(denom)

    def find_perp(self, denom: str) -> Optional[PerpPosition]:
        for perp in self.perps:
            if perp.denom == denom:
                return perp
        return None

    def debt_denoms(self) -> Tuple[str, ...]:
        return tuple(d.denom for d in self.debts)


def _amount_of(items: Sequence, denom: str) -> int:
    for item in items:
        if item.denom == denom:
            return item.amount
    return 0
