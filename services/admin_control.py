"""
Admin control: owner-only sale operations.

Every operation:
- rejects callers other than the configured owner with Unauthorized
- runs as a single serialized engine transition (same lock, one `now`)
- emits its notification on commit

Flag and tier changes are refused once the sale is finalized; whitelist updates
and fund withdrawal stay available for the sale's audit/refund lifetime.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

from domain.errors import (
    AlreadyFinalized,
    CurrentTierNotEnded,
    InvalidSaleState,
    NothingToWithdraw,
    SaleNotEnded,
    SoftCapNotReached,
    Unauthorized,
    UnsupportedOperation,
)
from domain.events import SaleEventType, plain
from domain.sale import SaleMode, SaleState
from domain.tier import DiscountBand, TimeWindowTier, append_band, append_tier

if TYPE_CHECKING:
    from services.sale_engine import SaleEngine

logger = logging.getLogger(__name__)


class AdminControl:
    def __init__(self, engine: "SaleEngine") -> None:
        self._engine = engine

    def _require_owner(self, caller: str) -> SaleState:
        state = self._engine._state
        if caller != state.config.owner:
            raise Unauthorized()
        return state

    def _require_open(self, caller: str) -> SaleState:
        state = self._require_owner(caller)
        if state.counters.is_finalized:
            raise AlreadyFinalized()
        return state

    def _set_counters(self, state: SaleState, now: datetime, event_type: SaleEventType, **changes) -> SaleState:
        updated = replace(state, counters=replace(state.counters, **changes))
        data = {name: value for name, value in changes.items()}
        self._engine._commit(updated, [self._engine._event(event_type, now, **data)])
        logger.info(f"Sale flags updated: {data}")
        return updated

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------

    def toggle_active(self, caller: str) -> bool:
        with self._engine._transition("toggle_active", caller) as now:
            state = self._require_open(caller)
            updated = self._set_counters(
                state, now, SaleEventType.ICO_STATUS_UPDATED, is_active=not state.counters.is_active
            )
            return updated.counters.is_active

    def toggle_cooldown(self, caller: str) -> bool:
        with self._engine._transition("toggle_cooldown", caller) as now:
            state = self._require_open(caller)
            updated = self._set_counters(
                state, now, SaleEventType.COOLDOWN_TOGGLED, cooldown_enabled=not state.counters.cooldown_enabled
            )
            return updated.counters.cooldown_enabled

    def toggle_vesting(self, caller: str) -> bool:
        with self._engine._transition("toggle_vesting", caller) as now:
            state = self._require_open(caller)
            if state.config.mode is not SaleMode.VESTING_LOCKUP:
                raise UnsupportedOperation("Vesting is only used by vesting/lockup sales")
            updated = self._set_counters(
                state, now, SaleEventType.VESTING_TOGGLED, vesting_enabled=not state.counters.vesting_enabled
            )
            return updated.counters.vesting_enabled

    def pause(self, caller: str) -> None:
        with self._engine._transition("pause", caller) as now:
            state = self._require_open(caller)
            if state.counters.paused:
                raise InvalidSaleState("Sale is already paused")
            self._set_counters(state, now, SaleEventType.ICO_STATUS_UPDATED, paused=True)

    def unpause(self, caller: str) -> None:
        with self._engine._transition("unpause", caller) as now:
            state = self._require_open(caller)
            if not state.counters.paused:
                raise InvalidSaleState("Sale is not paused")
            self._set_counters(state, now, SaleEventType.ICO_STATUS_UPDATED, paused=False)

    def finalize(self, caller: str) -> None:
        """
        Close the sale for good.

        Allowed once the sale window has closed or the hard cap was reached.
        """

        with self._engine._transition("finalize", caller) as now:
            state = self._require_open(caller)
            if not state.has_ended(now) and not state.hard_cap_reached():
                raise SaleNotEnded()
            updated = replace(state, counters=replace(state.counters, is_finalized=True, is_active=False))
            self._engine._commit(updated, [
                self._engine._event(
                    SaleEventType.SALE_FINALIZED,
                    now,
                    total_raised=plain(state.counters.total_raised),
                    soft_cap_reached=state.soft_cap_reached(),
                ),
                self._engine._event(SaleEventType.ICO_STATUS_UPDATED, now, is_active=False),
            ])
            logger.info(f"Sale finalized with {state.counters.total_raised} raised")

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def add_tier(
        self,
        caller: str,
        price: Decimal,
        max_tokens: Decimal,
        start_time: datetime,
        end_time: datetime,
    ) -> int:
        """Append a time-window tier (staged sales). Returns its index."""

        with self._engine._transition("add_tier", caller) as now:
            state = self._require_open(caller)
            if state.config.mode is not SaleMode.STAGED_DISTRIBUTION:
                raise UnsupportedOperation("Time-window tiers are only used by staged-distribution sales")

            tier = TimeWindowTier(price=price, max_tokens=max_tokens, start_time=start_time, end_time=end_time)
            tiers = append_tier(state.tiers, tier)
            index = len(tiers) - 1
            self._engine._commit(replace(state, tiers=tiers), [
                self._engine._event(
                    SaleEventType.TIER_ADDED,
                    now,
                    index=index,
                    price=plain(price),
                    max_tokens=plain(max_tokens),
                    start_time=start_time.isoformat(),
                    end_time=end_time.isoformat(),
                ),
            ])
            logger.info(f"Tier {index} added at price {price}")
            return index

    def add_band(
        self,
        caller: str,
        min_purchase: Decimal,
        max_purchase: Decimal,
        discount_percent: Decimal,
    ) -> int:
        """Append a discount band (vesting sales). Returns its index."""

        with self._engine._transition("add_band", caller) as now:
            state = self._require_open(caller)
            if state.config.mode is not SaleMode.VESTING_LOCKUP:
                raise UnsupportedOperation("Discount bands are only used by vesting/lockup sales")

            band = DiscountBand(
                min_purchase=min_purchase,
                max_purchase=max_purchase,
                discount_percent=discount_percent,
            )
            bands = append_band(state.bands, band)
            index = len(bands) - 1
            self._engine._commit(replace(state, bands=bands), [
                self._engine._event(
                    SaleEventType.TIER_ADDED,
                    now,
                    index=index,
                    min_purchase=plain(min_purchase),
                    max_purchase=plain(max_purchase),
                    discount_percent=plain(discount_percent),
                ),
            ])
            logger.info(f"Discount band {index} added ({discount_percent}%)")
            return index

    def advance_tier(self, caller: str) -> int:
        """
        Move to the next time-window tier.

        Strictly sequential: only after the current tier's window has ended, and
        never past the last tier.
        """

        with self._engine._transition("advance_tier", caller) as now:
            state = self._require_open(caller)
            if state.config.mode is not SaleMode.STAGED_DISTRIBUTION:
                raise UnsupportedOperation("Time-window tiers are only used by staged-distribution sales")

            index = state.counters.current_tier_index
            if index >= len(state.tiers):
                raise InvalidSaleState("No tiers configured")
            if now <= state.tiers[index].end_time:
                raise CurrentTierNotEnded()
            if index + 1 >= len(state.tiers):
                raise InvalidSaleState("Already at the last tier")

            self._set_counters(state, now, SaleEventType.TIER_ADVANCED, current_tier_index=index + 1)
            return index + 1

    # ------------------------------------------------------------------
    # Whitelist / funds
    # ------------------------------------------------------------------

    def update_whitelist(self, caller: str, participants: Iterable[str], whitelisted: bool) -> None:
        with self._engine._transition("update_whitelist", caller) as now:
            state = self._require_owner(caller)
            identities = [p for p in participants if p]
            accounts = [state.account(p).with_whitelist(whitelisted) for p in identities]
            self._engine._commit(state.with_accounts(*accounts), [
                self._engine._event(
                    SaleEventType.WHITELIST_UPDATED,
                    now,
                    participants=",".join(identities),
                    whitelisted=whitelisted,
                ),
            ])
            logger.info(f"Whitelist updated for {len(identities)} participants (whitelisted={whitelisted})")

    def withdraw_funds(self, caller: str) -> Decimal:
        """
        Move the collected payment balance to the owner.

        Only once the soft cap is reached, so funds backing refunds never leave.
        """

        with self._engine._transition("withdraw_funds", caller) as now:
            state = self._require_owner(caller)
            if not state.soft_cap_reached():
                raise SoftCapNotReached()

            payments = self._engine.payment_ledger
            amount = payments.balance_of(state.config.sale_account)
            if amount <= 0:
                raise NothingToWithdraw()

            self._engine._move(payments, state.config.sale_account, state.config.owner, amount)
            self._engine._commit(state, [
                self._engine._event(SaleEventType.FUNDS_WITHDRAWN, now, caller, amount=plain(amount)),
            ])
            logger.info(f"Withdrew {amount} to owner")
            return amount


__all__ = ["AdminControl"]
