"""
Domain: Token release scheduling.

A purchase's tokens are split into an immediately delivered part and a scheduled
part. Which schedule applies is fixed by the sale mode:

Policy A (VESTING_LOCKUP)
- `immediate_release_percent` of the tokens is delivered at purchase.
- With vesting enabled the rest joins the participant's vesting schedule
  (start_time fixed by the first allocation, fixed cliff and duration).
- With vesting disabled the rest is locked for a flat `lockup_duration`,
  measured from the most recent lock.

Policy B (STAGED_DISTRIBUTION)
- `staged_immediate_percent` (50%) is delivered at purchase.
- The rest becomes dated tranches (25% at +30 days, 25% at +60 days).
  The last tranche absorbs any rounding remainder.

Claims are pure too: each returns the updated account and the amount to
transfer, or raises without changing anything.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Union

from .errors import (
    AlreadyClaimed,
    AlreadyRefunded,
    CliffNotOver,
    DistributionNotFound,
    DistributionNotYetReleasable,
    LockupNotOver,
    NothingLocked,
    NoVestingSchedule,
)
from .participant import ZERO, Distribution, ParticipantAccount, VestingSchedule
from .sale import SaleConfig, SaleMode

HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class Allocation:
    """How a purchase's tokens were split."""

    account: ParticipantAccount
    immediate: Decimal
    vested: Decimal = ZERO
    locked: Decimal = ZERO
    distributed: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class Release:
    account: ParticipantAccount
    amount: Decimal


def _require_not_refunded(account: ParticipantAccount) -> None:
    if account.refunded:
        raise AlreadyRefunded("Participant was refunded; pending releases are forfeited")


class VestingLockupPolicy:
    """Policy A: immediate share + vesting schedule or flat lockup."""

    mode = SaleMode.VESTING_LOCKUP

    def __init__(self, config: SaleConfig) -> None:
        self._config = config

    def allocate(
        self,
        account: ParticipantAccount,
        tokens: Decimal,
        now: datetime,
        *,
        vesting_enabled: bool,
    ) -> Allocation:
        config = self._config
        immediate = tokens * config.immediate_release_percent / HUNDRED
        remainder = tokens - immediate

        if remainder <= 0:
            return Allocation(account=account, immediate=immediate)

        if vesting_enabled:
            schedule = account.vesting
            if schedule is None:
                schedule = VestingSchedule(
                    total_amount=remainder,
                    released_amount=ZERO,
                    start_time=now,
                    duration=config.vesting_duration,
                    cliff=config.vesting_cliff,
                )
            else:
                schedule = schedule.add(remainder)
            return Allocation(
                account=replace(account, vesting=schedule),
                immediate=immediate,
                vested=remainder,
            )

        return Allocation(
            account=replace(
                account,
                locked_tokens=account.locked_tokens + remainder,
                lock_start_time=now,
            ),
            immediate=immediate,
            locked=remainder,
        )

    def release_vested(self, account: ParticipantAccount, now: datetime) -> Release:
        """
        Release everything vested so far.

        Calling again before more time has passed releases zero; that is not an error.
        """

        _require_not_refunded(account)
        schedule = account.vesting
        if schedule is None or schedule.total_amount <= 0:
            raise NoVestingSchedule()
        if now < schedule.cliff_end:
            raise CliffNotOver()

        vested = schedule.vested_amount(now)
        releasable = schedule.releasable_amount(now)
        return Release(
            account=replace(account, vesting=schedule.released_to(vested)),
            amount=releasable,
        )

    def unlock(self, account: ParticipantAccount, now: datetime) -> Release:
        """Release the whole locked balance once the lockup has elapsed."""

        _require_not_refunded(account)
        if account.locked_tokens <= 0 or account.lock_start_time is None:
            raise NothingLocked()
        if now < account.lock_start_time + self._config.lockup_duration:
            raise LockupNotOver()

        return Release(
            account=replace(account, locked_tokens=ZERO, lock_start_time=None),
            amount=account.locked_tokens,
        )


class StagedDistributionPolicy:
    """Policy B: immediate half + dated tranches."""

    mode = SaleMode.STAGED_DISTRIBUTION

    def __init__(self, config: SaleConfig) -> None:
        self._config = config

    def allocate(
        self,
        account: ParticipantAccount,
        tokens: Decimal,
        now: datetime,
        *,
        vesting_enabled: bool = False,
    ) -> Allocation:
        config = self._config
        immediate = tokens * config.staged_immediate_percent / HUNDRED

        tranches: list[Distribution] = []
        scheduled = ZERO
        remaining = tokens - immediate
        for position, tranche in enumerate(config.staged_schedule):
            if position == len(config.staged_schedule) - 1:
                amount = remaining - scheduled
            else:
                amount = tokens * tranche.percent / HUNDRED
            scheduled += amount
            tranches.append(Distribution(amount=amount, release_time=now + tranche.delay))

        return Allocation(
            account=replace(account, distributions=account.distributions + tuple(tranches)),
            immediate=immediate,
            distributed=remaining,
        )

    def claim(self, account: ParticipantAccount, index: int, now: datetime) -> Release:
        _require_not_refunded(account)
        if index < 0 or index >= len(account.distributions):
            raise DistributionNotFound(f"Distribution {index} does not exist")

        distribution = account.distributions[index]
        if distribution.claimed:
            raise AlreadyClaimed()
        if not distribution.is_releasable(now):
            raise DistributionNotYetReleasable()

        return Release(
            account=account.with_distribution(index, replace(distribution, claimed=True)),
            amount=distribution.amount,
        )


ReleasePolicy = Union[VestingLockupPolicy, StagedDistributionPolicy]


def release_policy_for(config: SaleConfig) -> ReleasePolicy:
    if config.mode is SaleMode.STAGED_DISTRIBUTION:
        return StagedDistributionPolicy(config)
    return VestingLockupPolicy(config)


__all__ = [
    "Allocation",
    "Release",
    "ReleasePolicy",
    "VestingLockupPolicy",
    "StagedDistributionPolicy",
    "release_policy_for",
]
