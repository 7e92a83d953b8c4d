"""
Tests for `services/admin_control.py`.

Covers contract rules:
- Owner-only: every operation rejects other callers with Unauthorized.
- Pause/unpause are not idempotent; finalize is terminal.
- Tiers advance strictly one at a time, only after the current one ended.
- Funds can be withdrawn only once the soft cap is reached.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from domain.errors import (
    AlreadyFinalized,
    CurrentTierNotEnded,
    InvalidSaleState,
    InvalidTier,
    NothingToWithdraw,
    SaleInactive,
    SaleNotEnded,
    SoftCapNotReached,
    Unauthorized,
    UnsupportedOperation,
)
from domain.events import SaleEventType


@pytest.mark.parametrize(
    "operation",
    [
        lambda admin: admin.toggle_active("mallory"),
        lambda admin: admin.toggle_cooldown("mallory"),
        lambda admin: admin.toggle_vesting("mallory"),
        lambda admin: admin.pause("mallory"),
        lambda admin: admin.finalize("mallory"),
        lambda admin: admin.add_band("mallory", Decimal("1"), Decimal("2"), Decimal("5")),
        lambda admin: admin.update_whitelist("mallory", ["mallory"], True),
        lambda admin: admin.withdraw_funds("mallory"),
    ],
)
def test_owner_only(vesting_engine, operation) -> None:
    """Verify non-owners are rejected and nothing changes."""

    before = vesting_engine.snapshot()

    with pytest.raises(Unauthorized):
        operation(vesting_engine.admin)
    assert vesting_engine.snapshot() is before


def test_toggles_flip_flags_and_emit_events(vesting_engine) -> None:
    """Verify toggles return the new value and notify."""

    assert vesting_engine.admin.toggle_cooldown("owner") is True
    assert vesting_engine.cooldown_enabled() is True
    assert vesting_engine.admin.toggle_vesting("owner") is False
    assert vesting_engine.admin.toggle_active("owner") is False

    types = [event.type for event in vesting_engine.events]
    assert SaleEventType.COOLDOWN_TOGGLED in types
    assert SaleEventType.VESTING_TOGGLED in types
    assert SaleEventType.ICO_STATUS_UPDATED in types


def test_pause_blocks_purchases_and_is_not_idempotent(vesting_engine) -> None:
    """Verify pause/unpause transitions and the purchase gate."""

    vesting_engine.admin.pause("owner")
    with pytest.raises(InvalidSaleState):
        vesting_engine.admin.pause("owner")
    with pytest.raises(SaleInactive):
        vesting_engine.buy_tokens("alice", Decimal("10"))

    vesting_engine.admin.unpause("owner")
    with pytest.raises(InvalidSaleState):
        vesting_engine.admin.unpause("owner")
    vesting_engine.buy_tokens("alice", Decimal("10"))


def test_finalize_requires_end_or_hard_cap(vesting_engine, clock) -> None:
    """Verify finalize waits for the sale to close, then is terminal."""

    with pytest.raises(SaleNotEnded):
        vesting_engine.admin.finalize("owner")

    clock.advance(timedelta(days=31))
    vesting_engine.admin.finalize("owner")

    assert vesting_engine.is_finalized() is True
    assert vesting_engine.is_active() is False
    with pytest.raises(AlreadyFinalized):
        vesting_engine.admin.finalize("owner")
    with pytest.raises(AlreadyFinalized):
        vesting_engine.admin.toggle_active("owner")


def test_finalize_after_hard_cap(make_engine) -> None:
    """Verify reaching the hard cap allows early finalization."""

    engine = make_engine(hard_cap=Decimal("150"), soft_cap=Decimal("50"))
    engine.buy_tokens("alice", Decimal("100"))
    engine.buy_tokens("bob", Decimal("50"))

    engine.admin.finalize("owner")
    assert engine.is_finalized() is True


def test_bands_only_for_vesting_sales(staged_engine, vesting_engine) -> None:
    """Verify each tier model is tied to its sale mode."""

    assert vesting_engine.admin.add_band("owner", Decimal("10"), Decimal("50"), Decimal("10")) == 0
    assert vesting_engine.get_tier_count() == 1

    with pytest.raises(UnsupportedOperation):
        staged_engine.admin.add_band("owner", Decimal("10"), Decimal("50"), Decimal("10"))
    with pytest.raises(UnsupportedOperation):
        vesting_engine.admin.add_tier(
            "owner", Decimal("0.01"), Decimal("10"), vesting_engine.now(), vesting_engine.now() + timedelta(days=1)
        )
    with pytest.raises(UnsupportedOperation):
        staged_engine.admin.toggle_vesting("owner")


def test_add_tier_rejects_overlap(staged_engine, sale_start) -> None:
    """Verify tier windows must not overlap."""

    with pytest.raises(InvalidTier):
        staged_engine.admin.add_tier(
            "owner",
            Decimal("0.03"),
            Decimal("1000"),
            sale_start + timedelta(days=15),
            sale_start + timedelta(days=25),
        )
    assert staged_engine.get_tier_count() == 2


def test_advance_tier_is_sequential(staged_engine, clock) -> None:
    """Verify advance waits for the current tier to end and stops at the last."""

    with pytest.raises(CurrentTierNotEnded):
        staged_engine.admin.advance_tier("owner")

    clock.advance(timedelta(days=10, seconds=1))
    assert staged_engine.admin.advance_tier("owner") == 1
    assert staged_engine.current_tier().price == Decimal("0.02")

    clock.advance(timedelta(days=10))
    with pytest.raises(InvalidSaleState):
        staged_engine.admin.advance_tier("owner")


def test_update_whitelist_adds_and_removes(vesting_engine) -> None:
    """Verify whitelist updates apply to every listed participant."""

    vesting_engine.admin.update_whitelist("owner", ["dave", "erin"], True)
    assert vesting_engine.is_whitelisted("dave") is True

    vesting_engine.admin.update_whitelist("owner", ["dave"], False)
    assert vesting_engine.is_whitelisted("dave") is False
    assert vesting_engine.is_whitelisted("erin") is True


def test_withdraw_requires_soft_cap(vesting_engine, payment_ledger) -> None:
    """Verify funds stay in the sale until the soft cap is reached."""

    vesting_engine.buy_tokens("alice", Decimal("50"))
    with pytest.raises(SoftCapNotReached):
        vesting_engine.admin.withdraw_funds("owner")

    vesting_engine.buy_tokens("bob", Decimal("50"))
    assert vesting_engine.admin.withdraw_funds("owner") == Decimal("100")
    assert payment_ledger.balance_of("owner") == Decimal("100")
    assert payment_ledger.balance_of("sale") == Decimal("0")

    with pytest.raises(NothingToWithdraw):
        vesting_engine.admin.withdraw_funds("owner")
