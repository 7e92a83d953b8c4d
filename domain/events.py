"""
Domain: Sale notifications.

Every committed transition emits one or more SaleEvents. Events are consumed by
whatever presentation layer sits outside the engine; the engine itself never
reads them back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from decimal import Decimal
from typing import Any, Mapping, Optional

from .time import require_utc_timestamp


def plain(value: Decimal) -> str:
    """Fixed-point text for an amount (never exponent form such as 1E+3)."""
    return format(value, "f")


class SaleEventType(str, Enum):
    TOKENS_PURCHASED = "TokensPurchased"
    TOKENS_LOCKED = "TokensLocked"
    TOKENS_UNLOCKED = "TokensUnlocked"
    TOKENS_RELEASED = "TokensReleased"
    DISTRIBUTION_CLAIMED = "DistributionClaimed"
    REFERRER_SET = "ReferrerSet"
    REFERRAL_BONUS_CLAIMED = "ReferralBonusClaimed"
    REFUND_CLAIMED = "RefundClaimed"
    TIER_ADDED = "TierAdded"
    TIER_ADVANCED = "TierAdvanced"
    ICO_STATUS_UPDATED = "ICOStatusUpdated"
    COOLDOWN_TOGGLED = "CooldownToggled"
    VESTING_TOGGLED = "VestingToggled"
    WHITELIST_UPDATED = "WhitelistUpdated"
    FUNDS_WITHDRAWN = "FundsWithdrawn"
    SALE_FINALIZED = "SaleFinalized"


@dataclass(frozen=True, slots=True)
class SaleEvent:
    """
    Immutable record of a committed transition.

    `data` values are plain JSON-friendly scalars (str/bool/int); amounts are
    carried as strings to keep Decimal precision.
    """

    type: SaleEventType
    at: datetime
    participant: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("at", self.at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "at": self.at.isoformat(),
            "participant": self.participant,
            "data": dict(self.data),
        }


__all__ = [
    "SaleEventType",
    "SaleEvent",
    "plain",
]
