"""
Domain: Referral bonuses.

- A participant may name a referrer once; self-referral is rejected.
- Each committed purchase by a referred participant credits the referrer with
  tokens * referral_rate_percent / 100, denominated in sale tokens.
- A referrer claims the whole accrued bonus at once; the accrual resets to zero.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from .errors import InvalidReferrer, NothingAccrued, ReferrerAlreadySet
from .participant import ZERO, ParticipantAccount
from .release import Release

HUNDRED = Decimal("100")


def set_referrer(account: ParticipantAccount, referrer: str) -> ParticipantAccount:
    if not referrer:
        raise InvalidReferrer("Referrer is required")
    if referrer == account.participant:
        raise InvalidReferrer("Cannot refer yourself")
    if account.referrer is not None:
        raise ReferrerAlreadySet()
    return replace(account, referrer=referrer)


def referral_bonus(tokens: Decimal, rate_percent: Decimal) -> Decimal:
    return tokens * rate_percent / HUNDRED


def credit_bonus(referrer_account: ParticipantAccount, bonus: Decimal) -> ParticipantAccount:
    return replace(
        referrer_account,
        referral_bonus_accrued=referrer_account.referral_bonus_accrued + bonus,
    )


def claim_bonus(account: ParticipantAccount) -> Release:
    if account.referral_bonus_accrued <= 0:
        raise NothingAccrued()
    return Release(
        account=replace(account, referral_bonus_accrued=ZERO),
        amount=account.referral_bonus_accrued,
    )


__all__ = [
    "set_referrer",
    "referral_bonus",
    "credit_bonus",
    "claim_bonus",
]
