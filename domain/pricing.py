"""
Domain: Pricing.

Pure functions of the sale configuration and an explicit `now`:

- current_price: linear ramp from base_price at sale start to
  base_price * (1 + ramp%) at start + ramp duration, then constant.
  Before the sale starts the base price applies. The price never decreases.
- tier_for: the time-window tier whose [start_time, end_time) contains `now`.
- band_for: the discount band whose [min_purchase, max_purchase] contains the amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from .errors import NoActiveTier
from .sale import SaleConfig
from .tier import DiscountBand, TimeWindowTier
from .time import seconds

HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class TierSelection:
    index: int
    tier: TimeWindowTier


class PricingEngine:
    """Price curve and tier lookup for one sale configuration."""

    def __init__(self, config: SaleConfig) -> None:
        self._config = config

    def current_price(self, now: datetime) -> Decimal:
        config = self._config
        if now <= config.start_time:
            return config.base_price

        elapsed = now - config.start_time
        if elapsed >= config.price_ramp_duration:
            return config.price_ceiling

        increase = config.base_price * config.price_ramp_percent / HUNDRED
        return config.base_price + increase * seconds(elapsed) / seconds(config.price_ramp_duration)

    @staticmethod
    def tier_for(
        tiers: Sequence[TimeWindowTier],
        now: datetime,
        start_index: int = 0,
    ) -> TierSelection:
        """
        Select the active time-window tier.

        Tiers before `start_index` have been advanced past and are never selected
        again. Raises NoActiveTier when no window contains `now`.
        """

        for index in range(start_index, len(tiers)):
            tier = tiers[index]
            if tier.contains(now):
                return TierSelection(index=index, tier=tier)
        raise NoActiveTier()

    @staticmethod
    def band_for(bands: Sequence[DiscountBand], amount: Decimal) -> Optional[DiscountBand]:
        """First band containing `amount`, or None (no discount)."""

        for band in bands:
            if band.contains(amount):
                return band
        return None


__all__ = [
    "PricingEngine",
    "TierSelection",
]
