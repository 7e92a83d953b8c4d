"""
Domain: Sale error taxonomy.

Every rejected transition raises exactly one of these. A rejection always means
no state was mutated, so callers may retry safely.

Families:
- AdmissionError: the purchase was refused before pricing (inactive sale,
  whitelist, range, cooldown).
- CapacityError: pricing succeeded but the reservation did not fit.
- TimingError: a function of the clock only; retrying later can succeed.
- StateError: permanent for the record in question; retrying never succeeds.
- AuthorizationError: an owner-only operation was called by someone else.
- ValidationError: malformed input (also a ValueError).
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Optional


class SaleError(Exception):
    """Base class for every rejection surfaced by the sale engine."""

    code: str = "SALE_ERROR"
    category: str = "sale"
    default_message: str = "Sale operation rejected"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


# ============================================================================
# Admission
# ============================================================================

class AdmissionError(SaleError):
    category = "admission"


class SaleInactive(AdmissionError):
    code = "SALE_INACTIVE"
    default_message = "Sale is not active"


class NotWhitelisted(AdmissionError):
    code = "NOT_WHITELISTED"
    default_message = "Participant is not whitelisted"


class OutOfRange(AdmissionError):
    code = "OUT_OF_RANGE"

    def __init__(self, amount: Decimal, minimum: Decimal, maximum: Decimal) -> None:
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum
        super().__init__(f"Amount {amount} outside allowed range [{minimum}, {maximum}]")


class CooldownActive(AdmissionError):
    code = "COOLDOWN_ACTIVE"

    def __init__(self, time_left: timedelta) -> None:
        self.time_left = time_left
        super().__init__(f"Cooldown period not over ({int(time_left.total_seconds())}s left)")


# ============================================================================
# Capacity
# ============================================================================

class CapacityError(SaleError):
    category = "capacity"


class HardCapExceeded(CapacityError):
    code = "HARD_CAP_EXCEEDED"

    def __init__(self, requested: Decimal, remaining: Decimal) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"Purchase of {requested} exceeds hard cap (remaining: {remaining})")


class TierCapExceeded(CapacityError):
    code = "TIER_CAP_EXCEEDED"

    def __init__(self, requested: Decimal, remaining: Decimal) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"{requested} tokens exceed tier capacity (remaining: {remaining})")


class SupplyExceeded(CapacityError):
    code = "SUPPLY_EXCEEDED"

    def __init__(self, requested: Decimal, remaining: Decimal) -> None:
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"{requested} tokens exceed token supply (remaining: {remaining})")


class IncorrectPayment(CapacityError):
    code = "INCORRECT_PAYMENT"

    def __init__(self, paid: Decimal, expected: Decimal) -> None:
        self.paid = paid
        self.expected = expected
        super().__init__(f"Incorrect payment: sent {paid}, expected {expected}")


class NoActiveTier(CapacityError):
    code = "NO_ACTIVE_TIER"
    default_message = "No active tier"


# ============================================================================
# Timing
# ============================================================================

class TimingError(SaleError):
    category = "timing"


class CliffNotOver(TimingError):
    code = "CLIFF_NOT_OVER"
    default_message = "Cliff period not over"


class LockupNotOver(TimingError):
    code = "LOCKUP_NOT_OVER"
    default_message = "Lockup period not over"


class CurrentTierNotEnded(TimingError):
    code = "CURRENT_TIER_NOT_ENDED"
    default_message = "Current tier has not ended"


class DistributionNotYetReleasable(TimingError):
    code = "DISTRIBUTION_NOT_YET_RELEASABLE"
    default_message = "Distribution is not yet releasable"


class SaleNotEnded(TimingError):
    code = "SALE_NOT_ENDED"
    default_message = "Sale has not ended"


# ============================================================================
# State
# ============================================================================

class StateError(SaleError):
    category = "state"


class AlreadyClaimed(StateError):
    code = "ALREADY_CLAIMED"
    default_message = "Already claimed"


class AlreadyRefunded(StateError):
    code = "ALREADY_REFUNDED"
    default_message = "Already refunded"


class NothingLocked(StateError):
    code = "NOTHING_LOCKED"
    default_message = "No locked tokens"


class NothingAccrued(StateError):
    code = "NOTHING_ACCRUED"
    default_message = "No referral bonus to claim"


class NoVestingSchedule(StateError):
    code = "NO_VESTING_SCHEDULE"
    default_message = "No vesting schedule"


class DistributionNotFound(StateError):
    code = "DISTRIBUTION_NOT_FOUND"
    default_message = "Distribution does not exist"


class ReferrerAlreadySet(StateError):
    code = "REFERRER_ALREADY_SET"
    default_message = "Referrer already set"


class NothingToRefund(StateError):
    code = "NOTHING_TO_REFUND"
    default_message = "No investment to refund"


class RefundUnavailable(StateError):
    code = "REFUND_UNAVAILABLE"
    default_message = "Soft cap reached, refunds unavailable"


class NothingToWithdraw(StateError):
    code = "NOTHING_TO_WITHDRAW"
    default_message = "No funds to withdraw"


class SoftCapNotReached(StateError):
    code = "SOFT_CAP_NOT_REACHED"
    default_message = "Soft cap not reached"


class AlreadyFinalized(StateError):
    code = "ALREADY_FINALIZED"
    default_message = "Sale already finalized"


class InvalidSaleState(StateError):
    code = "INVALID_SALE_STATE"
    default_message = "Invalid sale state"


class UnsupportedOperation(StateError):
    """The operation belongs to the release policy this sale was not configured with."""

    code = "UNSUPPORTED_OPERATION"
    default_message = "Operation not available for this sale mode"


# ============================================================================
# Authorization / validation
# ============================================================================

class AuthorizationError(SaleError):
    category = "authorization"


class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"
    default_message = "Unauthorized action"


class ValidationError(SaleError, ValueError):
    category = "validation"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"
    default_message = "Invalid amount"


class InvalidReferrer(ValidationError):
    code = "INVALID_REFERRER"
    default_message = "Invalid referrer"


class InvalidTier(ValidationError):
    code = "INVALID_TIER"
    default_message = "Invalid tier"


__all__ = [
    "SaleError",
    "AdmissionError",
    "SaleInactive",
    "NotWhitelisted",
    "OutOfRange",
    "CooldownActive",
    "CapacityError",
    "HardCapExceeded",
    "TierCapExceeded",
    "SupplyExceeded",
    "IncorrectPayment",
    "NoActiveTier",
    "TimingError",
    "CliffNotOver",
    "LockupNotOver",
    "CurrentTierNotEnded",
    "DistributionNotYetReleasable",
    "SaleNotEnded",
    "StateError",
    "AlreadyClaimed",
    "AlreadyRefunded",
    "NothingLocked",
    "NothingAccrued",
    "NoVestingSchedule",
    "DistributionNotFound",
    "ReferrerAlreadySet",
    "NothingToRefund",
    "RefundUnavailable",
    "NothingToWithdraw",
    "SoftCapNotReached",
    "AlreadyFinalized",
    "InvalidSaleState",
    "UnsupportedOperation",
    "AuthorizationError",
    "Unauthorized",
    "ValidationError",
    "InvalidAmount",
    "InvalidReferrer",
    "InvalidTier",
]
