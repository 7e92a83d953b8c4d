"""
Domain: Sale tiers.

Two tier models exist, one per sale mode:

- TimeWindowTier (staged-distribution sales): a fixed per-tier price, a token
  capacity and a `[start_time, end_time)` window. Windows are non-overlapping and
  increasing in start time; `tokens_sold <= max_tokens` always.
- DiscountBand (vesting sales): a purchase-amount band `[min_purchase, max_purchase]`
  granting `discount_percent` extra tokens.

Tiers are never deleted; the list is append-only and the engine only ever
advances past a time-window tier.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from .errors import InvalidTier
from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class TimeWindowTier:
    """
    A time-bounded tier with its own price and token capacity.

    Only the cap ledger produces tiers with a larger `tokens_sold`, via `with_sold`.
    """

    price: Decimal
    max_tokens: Decimal
    start_time: datetime
    end_time: datetime
    tokens_sold: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        require_utc_timestamp("start_time", self.start_time)
        require_utc_timestamp("end_time", self.end_time)
        if self.price <= 0:
            raise InvalidTier("Tier price must be positive")
        if self.max_tokens <= 0:
            raise InvalidTier("Tier max_tokens must be positive")
        if self.start_time >= self.end_time:
            raise InvalidTier("Tier start_time must be before end_time")
        if self.tokens_sold < 0 or self.tokens_sold > self.max_tokens:
            raise InvalidTier("Tier tokens_sold must be within [0, max_tokens]")

    def contains(self, now: datetime) -> bool:
        return self.start_time <= now < self.end_time

    @property
    def remaining(self) -> Decimal:
        return self.max_tokens - self.tokens_sold

    def with_sold(self, tokens: Decimal) -> "TimeWindowTier":
        """Return a new tier with `tokens` more sold."""

        return replace(self, tokens_sold=self.tokens_sold + tokens)


@dataclass(frozen=True, slots=True)
class DiscountBand:
    """A purchase-amount band granting extra tokens."""

    min_purchase: Decimal
    max_purchase: Decimal
    discount_percent: Decimal

    def __post_init__(self) -> None:
        if self.min_purchase < 0:
            raise InvalidTier("Band min_purchase must be >= 0")
        if self.min_purchase > self.max_purchase:
            raise InvalidTier("Band min_purchase must be <= max_purchase")
        if self.discount_percent < 0 or self.discount_percent > 100:
            raise InvalidTier("Band discount_percent must be between 0 and 100")

    def contains(self, amount: Decimal) -> bool:
        return self.min_purchase <= amount <= self.max_purchase


def append_tier(tiers: Sequence[TimeWindowTier], tier: TimeWindowTier) -> tuple[TimeWindowTier, ...]:
    """
    Append a time-window tier, enforcing ordering.

    The new window must start at or after the previous window's end.
    """

    if tiers and tier.start_time < tiers[-1].end_time:
        raise InvalidTier("Tier windows must not overlap and must increase in start time")
    return tuple(tiers) + (tier,)


def append_band(bands: Sequence[DiscountBand], band: DiscountBand) -> tuple[DiscountBand, ...]:
    """Append a discount band; bands are ordered by min_purchase."""

    if bands and band.min_purchase < bands[-1].min_purchase:
        raise InvalidTier("Bands must be added in increasing min_purchase order")
    return tuple(bands) + (band,)


def replace_tier(
    tiers: Sequence[TimeWindowTier], index: int, tier: Optional[TimeWindowTier]
) -> tuple[TimeWindowTier, ...]:
    if tier is None:
        return tuple(tiers)
    updated = list(tiers)
    updated[index] = tier
    return tuple(updated)


__all__ = [
    "TimeWindowTier",
    "DiscountBand",
    "append_tier",
    "append_band",
    "replace_tier",
]
