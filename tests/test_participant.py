"""
Tests for `domain/participant.py`.

Covers contract rules:
- Vesting is linear between start and start + duration, full afterwards.
- released_amount never exceeds total_amount and never decreases.
- Participant records are immutable and timestamps must be UTC.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.participant import Distribution, ParticipantAccount, VestingSchedule


def _schedule(start: datetime, total: str = "1000") -> VestingSchedule:
    return VestingSchedule(
        total_amount=Decimal(total),
        released_amount=Decimal("0"),
        start_time=start,
        duration=timedelta(days=365),
        cliff=timedelta(days=90),
    )


def test_vested_amount_is_linear(sale_start) -> None:
    """Verify 73 of 365 days vests exactly one fifth."""

    schedule = _schedule(sale_start)

    assert schedule.vested_amount(sale_start) == Decimal("0")
    assert schedule.vested_amount(sale_start + timedelta(days=73)) == Decimal("200")


def test_vested_amount_is_total_after_duration(sale_start) -> None:
    """Verify everything is vested once the duration elapsed."""

    schedule = _schedule(sale_start)

    assert schedule.vested_amount(sale_start + timedelta(days=365)) == Decimal("1000")
    assert schedule.vested_amount(sale_start + timedelta(days=1000)) == Decimal("1000")


def test_cliff_end(sale_start) -> None:
    """Verify the cliff ends cliff after the schedule start."""

    assert _schedule(sale_start).cliff_end == sale_start + timedelta(days=90)


def test_released_to_never_moves_backwards(sale_start) -> None:
    """Verify released_amount is monotonic."""

    schedule = _schedule(sale_start).released_to(Decimal("400"))

    assert schedule.released_to(Decimal("300")).released_amount == Decimal("400")
    assert schedule.releasable_amount(sale_start + timedelta(days=73)) == Decimal("0")


def test_released_amount_cannot_exceed_total(sale_start) -> None:
    """Verify an over-released schedule cannot be constructed."""

    with pytest.raises(ValueError):
        VestingSchedule(
            total_amount=Decimal("10"),
            released_amount=Decimal("11"),
            start_time=sale_start,
            duration=timedelta(days=1),
            cliff=timedelta(0),
        )


def test_with_purchase_accumulates(sale_start) -> None:
    """Verify purchases add to invested and purchased totals and stamp the time."""

    account = ParticipantAccount.empty("alice")
    account = account.with_purchase(amount=Decimal("10"), tokens=Decimal("1000"), now=sale_start)
    account = account.with_purchase(
        amount=Decimal("5"), tokens=Decimal("400"), now=sale_start + timedelta(hours=2)
    )

    assert account.total_invested == Decimal("15")
    assert account.tokens_purchased == Decimal("1400")
    assert account.last_purchase_time == sale_start + timedelta(hours=2)


def test_account_is_immutable() -> None:
    """Verify ParticipantAccount cannot be mutated after creation."""

    account = ParticipantAccount.empty("alice")

    with pytest.raises(FrozenInstanceError):
        account.whitelisted = True  # type: ignore[misc]


def test_timestamps_must_be_utc() -> None:
    """Verify naive and non-UTC timestamps are rejected."""

    with pytest.raises(ValueError):
        Distribution(amount=Decimal("1"), release_time=datetime(2025, 1, 1))

    with pytest.raises(ValueError):
        ParticipantAccount(
            participant="alice",
            last_purchase_time=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=2))),
        )
