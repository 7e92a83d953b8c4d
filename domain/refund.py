"""
Domain: Soft-cap refunds.

A refund is valid only when all hold:
- the sale window has closed (now > final_sale_end_time)
- total_raised < soft_cap
- the participant invested something
- the participant has not been refunded yet

The refund returns exactly total_invested in the payment currency and is
one-shot.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from .errors import AlreadyRefunded, NothingToRefund, RefundUnavailable, SaleNotEnded
from .participant import ParticipantAccount
from .release import Release
from .sale import SaleState


def claim_refund(state: SaleState, account: ParticipantAccount, now: datetime) -> Release:
    if not state.has_ended(now):
        raise SaleNotEnded()
    if state.soft_cap_reached():
        raise RefundUnavailable()
    if account.refunded:
        raise AlreadyRefunded()
    if account.total_invested <= 0:
        raise NothingToRefund()

    return Release(
        account=replace(account, refunded=True),
        amount=account.total_invested,
    )


__all__ = ["claim_refund"]
