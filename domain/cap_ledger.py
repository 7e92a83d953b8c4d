"""
Domain: Capacity accounting.

The cap ledger is the only writer of total_raised, total_tokens_sold and
tier.tokens_sold. A reservation is computed in full and returned as new values;
if any cap would be exceeded nothing is returned and nothing changes, so there is
never a partial fill.

Caps enforced:
- total_raised + amount <= hard_cap
- tier.tokens_sold + tokens <= tier.max_tokens (time-window tiers)
- total_tokens_sold + tokens <= token_supply (when a supply is configured)
- staged sales: amount == token_amount * tier.price exactly
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .errors import HardCapExceeded, IncorrectPayment, InvalidAmount, SupplyExceeded, TierCapExceeded
from .sale import SaleConfig, SaleCounters
from .tier import DiscountBand, TimeWindowTier

HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class Reservation:
    """
    Outcome of a successful reserve.

    `counters` and `tier` are the values to swap in on commit.
    """

    amount: Decimal
    tokens: Decimal
    price: Decimal
    discount_percent: Decimal
    counters: SaleCounters
    tier_index: Optional[int] = None
    tier: Optional[TimeWindowTier] = None


class CapLedger:
    def __init__(self, config: SaleConfig, counters: SaleCounters) -> None:
        self._config = config
        self._counters = counters

    def reserve_priced(
        self,
        amount: Decimal,
        price: Decimal,
        band: Optional[DiscountBand] = None,
    ) -> Reservation:
        """
        Reserve capacity at a dynamic price (vesting sales).

        tokens = amount / price, plus band.discount_percent% extra when a band applies.
        """

        if amount <= 0:
            raise InvalidAmount("Purchase amount must be positive")

        tokens = amount / price
        discount = Decimal("0")
        if band is not None:
            discount = band.discount_percent
            tokens = tokens * (HUNDRED + discount) / HUNDRED

        self._check_hard_cap(amount)
        self._check_supply(tokens)

        return Reservation(
            amount=amount,
            tokens=tokens,
            price=price,
            discount_percent=discount,
            counters=self._advance(amount, tokens),
        )

    def reserve_tier(
        self,
        amount: Decimal,
        token_amount: Decimal,
        tier_index: int,
        tier: TimeWindowTier,
    ) -> Reservation:
        """
        Reserve `token_amount` tokens from a time-window tier (staged sales).

        The payment must equal token_amount * tier.price exactly.
        """

        if amount <= 0 or token_amount <= 0:
            raise InvalidAmount("Purchase amount and token amount must be positive")

        expected = token_amount * tier.price
        if amount != expected:
            raise IncorrectPayment(amount, expected)

        self._check_hard_cap(amount)
        if token_amount > tier.remaining:
            raise TierCapExceeded(token_amount, tier.remaining)
        self._check_supply(token_amount)

        return Reservation(
            amount=amount,
            tokens=token_amount,
            price=tier.price,
            discount_percent=Decimal("0"),
            counters=self._advance(amount, token_amount),
            tier_index=tier_index,
            tier=tier.with_sold(token_amount),
        )

    def _check_hard_cap(self, amount: Decimal) -> None:
        remaining = self._config.hard_cap - self._counters.total_raised
        if amount > remaining:
            raise HardCapExceeded(amount, remaining)

    def _check_supply(self, tokens: Decimal) -> None:
        supply = self._config.token_supply
        if supply is None:
            return
        remaining = supply - self._counters.total_tokens_sold
        if tokens > remaining:
            raise SupplyExceeded(tokens, remaining)

    def _advance(self, amount: Decimal, tokens: Decimal) -> SaleCounters:
        return replace(
            self._counters,
            total_raised=self._counters.total_raised + amount,
            total_tokens_sold=self._counters.total_tokens_sold + tokens,
        )


__all__ = [
    "CapLedger",
    "Reservation",
]
