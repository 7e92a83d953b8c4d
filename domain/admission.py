"""
Domain: Purchase admission.

Checks run in a fixed priority order and stop at the first failure:
1. Sale inactive, paused, finalized or outside its window -> SaleInactive
2. Participant not whitelisted -> NotWhitelisted
3. Amount outside [min_purchase, max_purchase] -> OutOfRange
4. Cooldown enabled and the previous purchase is too recent -> CooldownActive

Admission never mutates anything. The purchase timestamp is recorded only when
the whole purchase commits.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from .errors import CooldownActive, NotWhitelisted, OutOfRange, SaleInactive
from .participant import ParticipantAccount
from .sale import SaleState


class AdmissionGate:
    def __init__(self, state: SaleState) -> None:
        self._state = state

    def admit(self, account: ParticipantAccount, now: datetime, amount: Decimal) -> None:
        state = self._state
        config = state.config

        if not state.counters.accepting_purchases():
            raise SaleInactive()
        if not state.has_started(now) or state.has_ended(now):
            raise SaleInactive("Sale window is closed")

        if not account.whitelisted:
            raise NotWhitelisted()

        if amount < config.min_purchase or amount > config.max_purchase:
            raise OutOfRange(amount, config.min_purchase, config.max_purchase)

        time_left = self.cooldown_time_left(account, now)
        if time_left > timedelta(0):
            raise CooldownActive(time_left)

    def cooldown_time_left(self, account: ParticipantAccount, now: datetime) -> timedelta:
        """Zero when cooldown is disabled or has elapsed."""

        if not self._state.counters.cooldown_enabled or account.last_purchase_time is None:
            return timedelta(0)
        ready_at = account.last_purchase_time + self._state.config.cooldown_interval
        return max(ready_at - now, timedelta(0))


__all__ = ["AdmissionGate"]
