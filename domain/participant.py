"""
Domain: Participant accounts.

One ParticipantAccount per participant identity. Accounts are plain frozen
records; every transition returns a new instance and leaves the original
untouched, so a rejected transition never leaves a half-updated account behind.

Invariants held here:
- VestingSchedule.released_amount <= total_amount, and never decreases.
- Distribution.claimed only moves False -> True.
- refunded is set at most once.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from .time import require_utc_timestamp, seconds

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class VestingSchedule:
    """
    Cliff + linear vesting.

    vested(now) = total_amount * min(now - start_time, duration) / duration,
    and nothing is releasable before start_time + cliff.
    """

    total_amount: Decimal
    released_amount: Decimal
    start_time: datetime
    duration: timedelta
    cliff: timedelta

    def __post_init__(self) -> None:
        require_utc_timestamp("start_time", self.start_time)
        if self.duration <= timedelta(0):
            raise ValueError("duration must be positive")
        if self.released_amount < 0 or self.released_amount > self.total_amount:
            raise ValueError("released_amount must be within [0, total_amount]")

    @property
    def cliff_end(self) -> datetime:
        return self.start_time + self.cliff

    def vested_amount(self, now: datetime) -> Decimal:
        if now < self.start_time:
            return ZERO
        elapsed = min(now - self.start_time, self.duration)
        if elapsed == self.duration:
            return self.total_amount
        return self.total_amount * seconds(elapsed) / seconds(self.duration)

    def releasable_amount(self, now: datetime) -> Decimal:
        return max(self.vested_amount(now) - self.released_amount, ZERO)

    def add(self, amount: Decimal) -> "VestingSchedule":
        return replace(self, total_amount=self.total_amount + amount)

    def released_to(self, vested: Decimal) -> "VestingSchedule":
        return replace(self, released_amount=max(vested, self.released_amount))


@dataclass(frozen=True, slots=True)
class Distribution:
    """A dated tranche of a staged-distribution purchase."""

    amount: Decimal
    release_time: datetime
    claimed: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("release_time", self.release_time)

    def is_releasable(self, now: datetime) -> bool:
        return now >= self.release_time


@dataclass(frozen=True, slots=True)
class ParticipantAccount:
    """
    Per-participant ledger record.

    Keyed by participant identity. No participant can reach another's record;
    the engine addresses accounts only by the caller's identity.
    """

    participant: str
    whitelisted: bool = False
    total_invested: Decimal = ZERO
    tokens_purchased: Decimal = ZERO
    last_purchase_time: Optional[datetime] = None
    locked_tokens: Decimal = ZERO
    lock_start_time: Optional[datetime] = None
    vesting: Optional[VestingSchedule] = None
    distributions: tuple[Distribution, ...] = ()
    referrer: Optional[str] = None
    referral_bonus_accrued: Decimal = ZERO
    refunded: bool = False

    def __post_init__(self) -> None:
        if self.last_purchase_time is not None:
            require_utc_timestamp("last_purchase_time", self.last_purchase_time)
        if self.lock_start_time is not None:
            require_utc_timestamp("lock_start_time", self.lock_start_time)

    @staticmethod
    def empty(participant: str) -> "ParticipantAccount":
        return ParticipantAccount(participant=participant)

    def with_whitelist(self, whitelisted: bool) -> "ParticipantAccount":
        return replace(self, whitelisted=whitelisted)

    def with_purchase(self, *, amount: Decimal, tokens: Decimal, now: datetime) -> "ParticipantAccount":
        require_utc_timestamp("now", now)
        return replace(
            self,
            total_invested=self.total_invested + amount,
            tokens_purchased=self.tokens_purchased + tokens,
            last_purchase_time=now,
        )

    def with_distribution(self, index: int, distribution: Distribution) -> "ParticipantAccount":
        updated = list(self.distributions)
        updated[index] = distribution
        return replace(self, distributions=tuple(updated))


__all__ = [
    "ZERO",
    "VestingSchedule",
    "Distribution",
    "ParticipantAccount",
]
