"""
Sale engine: serialized orchestration of every sale transition.

Handles:
- Purchases: admission -> pricing -> capacity reservation -> release split -> referral credit
- Claims: vested release, lockup unlock, staged distributions, referral bonus, refunds
- Read queries over the current state
- Event emission for committed transitions

Transition model:
- One lock serializes all transitions; the clock is read once per transition and
  the same `now` is passed to every component.
- Components return new immutable records; the engine checks external balances,
  moves them, persists the new SaleState (when a writer is configured) and only
  then swaps it in. Balance moves are journaled per transition and reversed if
  anything later in the transition raises, including a failed save, so a
  rejected transition never leaves any trace (all-or-nothing).
- Event listeners are notifications only; they run after the commit.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Deque, Iterator, List, Optional, Sequence, Tuple

from domain.admission import AdmissionGate
from domain.cap_ledger import CapLedger, Reservation
from domain.errors import InvalidAmount, SaleError, SupplyExceeded, UnsupportedOperation
from domain.events import SaleEvent, SaleEventType, plain
from domain.participant import ZERO, Distribution, ParticipantAccount, VestingSchedule
from domain.pricing import PricingEngine
from domain.referral import claim_bonus, credit_bonus, referral_bonus, set_referrer
from domain.refund import claim_refund
from domain.release import (
    StagedDistributionPolicy,
    VestingLockupPolicy,
    release_policy_for,
)
from domain.sale import SaleConfig, SaleMode, SaleState
from domain.tier import TimeWindowTier, replace_tier
from repositories.balance_ledger import BalanceLedger, InsufficientBalanceError
from services.admin_control import AdminControl

logger = logging.getLogger(__name__)

EventListener = Callable[[SaleEvent], None]
StateWriter = Callable[[SaleState], None]

# Recent events kept in memory for the API's event listing.
DEFAULT_EVENT_HISTORY = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PurchaseResult:
    """
    Result of a committed purchase.

    tokens = immediate + vested + locked + distributed
    """

    participant: str
    amount: Decimal
    tokens: Decimal
    price: Decimal
    discount_percent: Decimal
    immediate: Decimal
    vested: Decimal
    locked: Decimal
    distributed: Decimal
    referral_bonus: Decimal
    tier_index: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SaleStatus:
    is_active: bool
    paused: bool
    is_finalized: bool
    has_started: bool
    has_ended: bool
    remaining_time: timedelta
    soft_cap_reached: bool
    total_raised: Decimal
    total_tokens_sold: Decimal


def outstanding_tokens(state: SaleState) -> Decimal:
    """
    Tokens the sale account still owes participants.

    Pending releases of refunded participants are forfeited and not counted.
    """

    total = ZERO
    for account in state.accounts.values():
        total += account.referral_bonus_accrued
        if account.refunded:
            continue
        total += account.locked_tokens
        if account.vesting is not None:
            total += account.vesting.total_amount - account.vesting.released_amount
        total += sum((d.amount for d in account.distributions if not d.claimed), ZERO)
    return total


class SaleEngine:
    """
    The crowdsale settlement engine.

    Owner-only operations live on `engine.admin` (services.admin_control.AdminControl).
    """

    def __init__(
        self,
        config: SaleConfig,
        token_ledger: BalanceLedger,
        payment_ledger: BalanceLedger,
        *,
        clock: Callable[[], datetime] = utc_now,
        state: Optional[SaleState] = None,
        writer: Optional[StateWriter] = None,
        event_history: int = DEFAULT_EVENT_HISTORY,
    ) -> None:
        """
        Args:
            writer: called with every new SaleState before it is committed;
                an exception aborts the transition and is propagated
            event_history: how many recent events `events` keeps
        """

        if state is not None and state.config != config:
            raise ValueError("Restored state does not match the sale configuration")

        self._state = state if state is not None else SaleState(config=config)
        self._tokens = token_ledger
        self._payments = payment_ledger
        self._clock = clock
        self._writer = writer
        self._lock = threading.RLock()
        self._journal: Optional[List[Tuple[BalanceLedger, str, str, Decimal]]] = None
        self._events: Deque[SaleEvent] = deque(maxlen=event_history)
        self._listeners: List[EventListener] = []
        self._policy = release_policy_for(config)
        self.admin = AdminControl(self)

    # ------------------------------------------------------------------
    # Transition plumbing
    # ------------------------------------------------------------------

    @property
    def config(self) -> SaleConfig:
        return self._state.config

    @property
    def token_ledger(self) -> BalanceLedger:
        return self._tokens

    @property
    def payment_ledger(self) -> BalanceLedger:
        return self._payments

    def snapshot(self) -> SaleState:
        with self._lock:
            return self._state

    @property
    def events(self) -> tuple[SaleEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def subscribe(self, listener: EventListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    @contextmanager
    def _transition(self, operation: str, participant: Optional[str] = None) -> Iterator[datetime]:
        with self._lock:
            now = self._clock()
            self._journal = []
            try:
                yield now
            except SaleError as e:
                self._rollback(operation)
                logger.warning(
                    f"{operation} rejected: {e.code}",
                    extra={
                        "operation": operation,
                        "participant": participant,
                        "error_code": e.code,
                        "error_category": e.category,
                    },
                )
                raise
            except Exception as e:
                self._rollback(operation)
                logger.warning(f"{operation} failed: {e}", extra={"operation": operation, "participant": participant})
                raise
            finally:
                self._journal = None

    def _move(self, ledger: BalanceLedger, sender: str, recipient: str, amount: Decimal) -> None:
        """Transfer on `ledger` and journal it so a failed transition can reverse it."""

        if amount <= 0:
            return
        ledger.transfer(sender, recipient, amount)
        self._journal.append((ledger, sender, recipient, amount))

    def _rollback(self, operation: str) -> None:
        journal, self._journal = self._journal or [], []
        for ledger, sender, recipient, amount in reversed(journal):
            ledger.transfer(recipient, sender, amount)
        if journal:
            logger.warning(f"{operation}: reversed {len(journal)} balance transfer(s)")

    def _commit(self, state: SaleState, events: Sequence[SaleEvent]) -> None:
        if self._writer is not None:
            self._writer(state)
        self._state = state
        self._events.extend(events)
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception:
                    # The transition is already committed; a broken listener cannot undo it.
                    logger.exception(f"Event listener failed for {event.type.value}")

    def _event(
        self,
        event_type: SaleEventType,
        now: datetime,
        participant: Optional[str] = None,
        **data: object,
    ) -> SaleEvent:
        return SaleEvent(type=event_type, at=now, participant=participant, data=data)

    def _require_token_cover(self, state: SaleState, needed: Decimal) -> None:
        available = self._tokens.balance_of(state.config.sale_account) - outstanding_tokens(state)
        if needed > available:
            raise SupplyExceeded(needed, max(available, ZERO))

    def _require_payment_balance(self, participant: str, amount: Decimal) -> None:
        available = self._payments.balance_of(participant)
        if amount > available:
            raise InsufficientBalanceError(participant, amount, available)

    def _vesting_policy(self) -> VestingLockupPolicy:
        if not isinstance(self._policy, VestingLockupPolicy):
            raise UnsupportedOperation("Vesting and lockup are not used by staged-distribution sales")
        return self._policy

    def _staged_policy(self) -> StagedDistributionPolicy:
        if not isinstance(self._policy, StagedDistributionPolicy):
            raise UnsupportedOperation("Distributions are only used by staged-distribution sales")
        return self._policy

    def _deliver_tokens(self, recipient: str, amount: Decimal) -> None:
        self._move(self._tokens, self.config.sale_account, recipient, amount)

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def _reserve(self, state: SaleState, now: datetime, amount: Decimal,
                 token_amount: Optional[Decimal]) -> Reservation:
        pricing = PricingEngine(state.config)
        ledger = CapLedger(state.config, state.counters)

        if state.config.mode is SaleMode.STAGED_DISTRIBUTION:
            if token_amount is None:
                raise InvalidAmount("token_amount is required for staged-distribution sales")
            selection = pricing.tier_for(state.tiers, now, state.counters.current_tier_index)
            return ledger.reserve_tier(amount, token_amount, selection.index, selection.tier)

        price = pricing.current_price(now)
        band = pricing.band_for(state.bands, amount)
        return ledger.reserve_priced(amount, price, band)

    def buy_tokens(
        self,
        participant: str,
        amount: Decimal,
        token_amount: Optional[Decimal] = None,
    ) -> PurchaseResult:
        """
        Buy tokens for `amount` of the payment currency.

        Staged-distribution sales also take the requested `token_amount`; the
        payment must equal token_amount * tier price exactly.
        """

        with self._transition("buy_tokens", participant) as now:
            state = self._state
            config = state.config
            account = state.account(participant)

            AdmissionGate(state).admit(account, now, amount)
            reservation = self._reserve(state, now, amount, token_amount)

            purchased = account.with_purchase(amount=amount, tokens=reservation.tokens, now=now)
            allocation = self._policy.allocate(
                purchased,
                reservation.tokens,
                now,
                vesting_enabled=state.counters.vesting_enabled,
            )
            updated: List[ParticipantAccount] = [allocation.account]

            bonus = ZERO
            if account.referrer is not None:
                bonus = referral_bonus(reservation.tokens, config.referral_rate_percent)
                updated.append(credit_bonus(state.account(account.referrer), bonus))

            self._require_token_cover(state, reservation.tokens + bonus)
            self._require_payment_balance(participant, amount)

            new_state = replace(
                state,
                counters=reservation.counters,
                tiers=replace_tier(state.tiers, reservation.tier_index, reservation.tier)
                if reservation.tier_index is not None
                else state.tiers,
            ).with_accounts(*updated)

            self._move(self._payments, participant, config.sale_account, amount)
            self._deliver_tokens(participant, allocation.immediate)

            events = [
                self._event(
                    SaleEventType.TOKENS_PURCHASED,
                    now,
                    participant,
                    amount=plain(amount),
                    tokens=plain(reservation.tokens),
                    price=plain(reservation.price),
                ),
            ]
            if allocation.locked > 0:
                events.append(self._event(
                    SaleEventType.TOKENS_LOCKED,
                    now,
                    participant,
                    amount=plain(allocation.locked),
                    unlock_time=(now + config.lockup_duration).isoformat(),
                ))
            self._commit(new_state, events)

            logger.info(
                f"Purchase committed: {participant} paid {amount} for {reservation.tokens} tokens",
                extra={
                    "participant": participant,
                    "amount": plain(amount),
                    "tokens": plain(reservation.tokens),
                    "total_raised": plain(new_state.counters.total_raised),
                },
            )

            return PurchaseResult(
                participant=participant,
                amount=amount,
                tokens=reservation.tokens,
                price=reservation.price,
                discount_percent=reservation.discount_percent,
                immediate=allocation.immediate,
                vested=allocation.vested,
                locked=allocation.locked,
                distributed=allocation.distributed,
                referral_bonus=bonus,
                tier_index=reservation.tier_index,
            )

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def release_vested_tokens(self, participant: str) -> Decimal:
        """Release vested tokens; returns the amount released (possibly zero)."""

        with self._transition("release_vested_tokens", participant) as now:
            policy = self._vesting_policy()
            state = self._state
            release = policy.release_vested(state.account(participant), now)

            self._deliver_tokens(participant, release.amount)
            events = []
            if release.amount > 0:
                events.append(self._event(
                    SaleEventType.TOKENS_RELEASED, now, participant, amount=plain(release.amount)
                ))
            self._commit(state.with_accounts(release.account), events)
            logger.info(f"Released {release.amount} vested tokens to {participant}")
            return release.amount

    def unlock_tokens(self, participant: str) -> Decimal:
        with self._transition("unlock_tokens", participant) as now:
            policy = self._vesting_policy()
            state = self._state
            release = policy.unlock(state.account(participant), now)

            self._deliver_tokens(participant, release.amount)
            self._commit(
                state.with_accounts(release.account),
                [self._event(SaleEventType.TOKENS_UNLOCKED, now, participant, amount=plain(release.amount))],
            )
            logger.info(f"Unlocked {release.amount} tokens for {participant}")
            return release.amount

    def claim_distribution(self, participant: str, index: int) -> Decimal:
        with self._transition("claim_distribution", participant) as now:
            policy = self._staged_policy()
            state = self._state
            release = policy.claim(state.account(participant), index, now)

            self._deliver_tokens(participant, release.amount)
            self._commit(
                state.with_accounts(release.account),
                [self._event(
                    SaleEventType.DISTRIBUTION_CLAIMED,
                    now,
                    participant,
                    index=index,
                    amount=plain(release.amount),
                )],
            )
            logger.info(f"Distribution {index} claimed by {participant}: {release.amount}")
            return release.amount

    def set_referrer(self, participant: str, referrer: str) -> None:
        with self._transition("set_referrer", participant) as now:
            state = self._state
            account = set_referrer(state.account(participant), referrer)
            self._commit(
                state.with_accounts(account),
                [self._event(SaleEventType.REFERRER_SET, now, participant, referrer=referrer)],
            )

    def claim_referral_bonus(self, participant: str) -> Decimal:
        with self._transition("claim_referral_bonus", participant) as now:
            state = self._state
            release = claim_bonus(state.account(participant))

            self._deliver_tokens(participant, release.amount)
            self._commit(
                state.with_accounts(release.account),
                [self._event(
                    SaleEventType.REFERRAL_BONUS_CLAIMED, now, participant, amount=plain(release.amount)
                )],
            )
            logger.info(f"Referral bonus of {release.amount} claimed by {participant}")
            return release.amount

    def claim_refund(self, participant: str) -> Decimal:
        with self._transition("claim_refund", participant) as now:
            state = self._state
            release = claim_refund(state, state.account(participant), now)

            self._move(self._payments, state.config.sale_account, participant, release.amount)
            self._commit(
                state.with_accounts(release.account),
                [self._event(SaleEventType.REFUND_CLAIMED, now, participant, amount=plain(release.amount))],
            )
            logger.info(f"Refunded {release.amount} to {participant}")
            return release.amount

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def get_current_token_price(self) -> Decimal:
        """Ramp price for vesting sales; the active tier's price for staged sales."""

        with self._lock:
            state = self._state
            now = self._clock()
            pricing = PricingEngine(state.config)
            if state.config.mode is SaleMode.STAGED_DISTRIBUTION:
                return pricing.tier_for(state.tiers, now, state.counters.current_tier_index).tier.price
            return pricing.current_price(now)

    def get_tier(self, index: int):
        """Time-window tier (staged sales) or discount band (vesting sales) at `index`."""

        with self._lock:
            state = self._state
            tiers = state.tiers if state.config.mode is SaleMode.STAGED_DISTRIBUTION else state.bands
            if index < 0 or index >= len(tiers):
                raise IndexError(f"Tier {index} does not exist")
            return tiers[index]

    def get_tier_count(self) -> int:
        with self._lock:
            state = self._state
            if state.config.mode is SaleMode.STAGED_DISTRIBUTION:
                return len(state.tiers)
            return len(state.bands)

    def current_tier(self) -> Optional[TimeWindowTier]:
        with self._lock:
            state = self._state
            if state.counters.current_tier_index >= len(state.tiers):
                return None
            return state.tiers[state.counters.current_tier_index]

    def account(self, participant: str) -> ParticipantAccount:
        with self._lock:
            return self._state.account(participant)

    def is_whitelisted(self, participant: str) -> bool:
        return self.account(participant).whitelisted

    def locked_tokens(self, participant: str) -> Decimal:
        return self.account(participant).locked_tokens

    def vesting_schedule(self, participant: str) -> Optional[VestingSchedule]:
        return self.account(participant).vesting

    def distribution(self, participant: str, index: int) -> Distribution:
        distributions = self.account(participant).distributions
        if index < 0 or index >= len(distributions):
            raise IndexError(f"Distribution {index} does not exist")
        return distributions[index]

    def distributions_count(self, participant: str) -> int:
        return len(self.account(participant).distributions)

    def referral_bonus(self, participant: str) -> Decimal:
        return self.account(participant).referral_bonus_accrued

    def referrer_of(self, participant: str) -> Optional[str]:
        return self.account(participant).referrer

    def investment_of(self, participant: str) -> Decimal:
        return self.account(participant).total_invested

    def cooldown_time_left(self, participant: str) -> timedelta:
        with self._lock:
            state = self._state
            return AdmissionGate(state).cooldown_time_left(state.account(participant), self._clock())

    def total_raised(self) -> Decimal:
        return self.snapshot().counters.total_raised

    def total_tokens_sold(self) -> Decimal:
        return self.snapshot().counters.total_tokens_sold

    def is_active(self) -> bool:
        return self.snapshot().counters.is_active

    def cooldown_enabled(self) -> bool:
        return self.snapshot().counters.cooldown_enabled

    def vesting_enabled(self) -> bool:
        return self.snapshot().counters.vesting_enabled

    def is_paused(self) -> bool:
        return self.snapshot().counters.paused

    def is_finalized(self) -> bool:
        return self.snapshot().counters.is_finalized

    def sale_status(self) -> SaleStatus:
        with self._lock:
            state = self._state
            now = self._clock()
            end = state.final_sale_end_time
            counters = state.counters
            return SaleStatus(
                is_active=counters.accepting_purchases() and state.has_started(now) and not state.has_ended(now),
                paused=counters.paused,
                is_finalized=counters.is_finalized,
                has_started=state.has_started(now),
                has_ended=state.has_ended(now),
                remaining_time=max(end - now, timedelta(0)),
                soft_cap_reached=state.soft_cap_reached(),
                total_raised=counters.total_raised,
                total_tokens_sold=counters.total_tokens_sold,
            )


__all__ = [
    "EventListener",
    "PurchaseResult",
    "SaleEngine",
    "SaleStatus",
    "StateWriter",
    "outstanding_tokens",
    "utc_now",
]
