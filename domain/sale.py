"""
Domain: Sale configuration, global counters and the full sale state.

Contract excerpts implemented here:
- SaleConfig is created once; only the admin control replaces it or its flags.
- SaleCounters hold the only cross-participant shared mutable values
  (total_raised, total_tokens_sold, flags). The cap ledger is the only writer of
  the raise/sold counters; the admin control is the only writer of the flags.
- is_finalized is a terminal, one-way transition.

A sale runs in exactly one mode, chosen at configuration time:
- VESTING_LOCKUP: ramp price + discount bands; tokens vest (cliff + duration) or
  are locked for a flat period.
- STAGED_DISTRIBUTION: time-window tiers with fixed prices; half the tokens are
  delivered at purchase and the rest in dated tranches.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional

from .participant import ParticipantAccount
from .tier import DiscountBand, TimeWindowTier
from .time import DAY, HOUR, require_utc_timestamp


class SaleMode(str, Enum):
    VESTING_LOCKUP = "vesting_lockup"
    STAGED_DISTRIBUTION = "staged_distribution"


@dataclass(frozen=True, slots=True)
class StagedTranche:
    """Share of a purchase released `delay` after the purchase."""

    percent: Decimal
    delay: timedelta


DEFAULT_STAGED_SCHEDULE: tuple[StagedTranche, ...] = (
    StagedTranche(percent=Decimal("25"), delay=30 * DAY),
    StagedTranche(percent=Decimal("25"), delay=60 * DAY),
)


@dataclass(frozen=True, slots=True)
class SaleConfig:
    """
    Sale configuration (singleton).

    `sale_account` is the identity that holds unsold tokens and collected payments
    on the external balance ledgers.
    """

    owner: str
    sale_account: str
    mode: SaleMode
    base_price: Decimal
    soft_cap: Decimal
    hard_cap: Decimal
    min_purchase: Decimal
    max_purchase: Decimal
    start_time: datetime
    end_time: datetime
    token_supply: Optional[Decimal] = None

    cooldown_interval: timedelta = HOUR
    vesting_cliff: timedelta = 90 * DAY
    vesting_duration: timedelta = 365 * DAY
    lockup_duration: timedelta = 180 * DAY
    immediate_release_percent: Decimal = Decimal("0")

    price_ramp_duration: timedelta = 30 * DAY
    price_ramp_percent: Decimal = Decimal("50")

    referral_rate_percent: Decimal = Decimal("5")

    staged_immediate_percent: Decimal = Decimal("50")
    staged_schedule: tuple[StagedTranche, ...] = DEFAULT_STAGED_SCHEDULE

    def __post_init__(self) -> None:
        require_utc_timestamp("start_time", self.start_time)
        require_utc_timestamp("end_time", self.end_time)

        if not self.owner or not self.sale_account:
            raise ValueError("owner and sale_account are required")
        if self.owner == self.sale_account:
            raise ValueError("owner and sale_account must differ")
        if self.base_price <= 0:
            raise ValueError("base_price must be positive")
        if self.soft_cap < 0 or self.soft_cap >= self.hard_cap:
            raise ValueError("Soft cap must be less than hard cap")
        if self.min_purchase <= 0 or self.min_purchase > self.max_purchase:
            raise ValueError("Invalid purchase range")
        if self.start_time >= self.end_time:
            raise ValueError("Invalid time range")
        if self.token_supply is not None and self.token_supply <= 0:
            raise ValueError("token_supply must be positive")
        if self.vesting_duration <= timedelta(0) or self.price_ramp_duration <= timedelta(0):
            raise ValueError("Durations must be positive")
        if self.vesting_cliff > self.vesting_duration:
            raise ValueError("vesting_cliff must not exceed vesting_duration")
        for name in ("immediate_release_percent", "price_ramp_percent", "referral_rate_percent",
                     "staged_immediate_percent"):
            value = getattr(self, name)
            if value < 0 or value > 100:
                raise ValueError(f"{name} must be between 0 and 100")
        staged_total = self.staged_immediate_percent + sum(t.percent for t in self.staged_schedule)
        if staged_total != Decimal("100"):
            raise ValueError("Staged schedule must sum to 100%")

    @property
    def price_ceiling(self) -> Decimal:
        return self.base_price * (Decimal("100") + self.price_ramp_percent) / Decimal("100")


@dataclass(frozen=True, slots=True)
class SaleCounters:
    """Global counters and flags."""

    total_raised: Decimal = Decimal("0")
    total_tokens_sold: Decimal = Decimal("0")
    is_active: bool = True
    cooldown_enabled: bool = False
    vesting_enabled: bool = True
    paused: bool = False
    is_finalized: bool = False
    current_tier_index: int = 0

    def accepting_purchases(self) -> bool:
        return self.is_active and not self.paused and not self.is_finalized


@dataclass(frozen=True, slots=True)
class SaleState:
    """
    Everything the engine owns, as one immutable value.

    The engine replaces its SaleState wholesale at the end of each committed
    transition.
    """

    config: SaleConfig
    counters: SaleCounters = field(default_factory=SaleCounters)
    tiers: tuple[TimeWindowTier, ...] = ()
    bands: tuple[DiscountBand, ...] = ()
    accounts: Mapping[str, ParticipantAccount] = field(default_factory=dict)

    def account(self, participant: str) -> ParticipantAccount:
        existing = self.accounts.get(participant)
        if existing is not None:
            return existing
        return ParticipantAccount.empty(participant)

    def with_accounts(self, *updated: ParticipantAccount) -> "SaleState":
        accounts = dict(self.accounts)
        for account in updated:
            accounts[account.participant] = account
        return replace(self, accounts=accounts)

    @property
    def final_sale_end_time(self) -> datetime:
        """End of the sale window: the last tier's end in staged mode, else the configured end."""

        if self.config.mode is SaleMode.STAGED_DISTRIBUTION and self.tiers:
            return max(self.config.end_time, self.tiers[-1].end_time)
        return self.config.end_time

    def has_started(self, now: datetime) -> bool:
        return now >= self.config.start_time

    def has_ended(self, now: datetime) -> bool:
        return now > self.final_sale_end_time

    def soft_cap_reached(self) -> bool:
        return self.counters.total_raised >= self.config.soft_cap

    def hard_cap_reached(self) -> bool:
        return self.counters.total_raised >= self.config.hard_cap


__all__ = [
    "SaleMode",
    "StagedTranche",
    "DEFAULT_STAGED_SCHEDULE",
    "SaleConfig",
    "SaleCounters",
    "SaleState",
]
