"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Amounts travel as decimal strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, Field, PlainSerializer

from domain.events import plain

# Serialized in fixed-point form ("1000", never "1E+3").
Amount = Annotated[Decimal, PlainSerializer(plain, return_type=str, when_used="json")]


# ============================================================================
# Sale Models
# ============================================================================

class SaleStatusResponse(BaseModel):
    """Current sale status."""
    mode: str
    is_active: bool
    paused: bool
    is_finalized: bool
    has_started: bool
    has_ended: bool
    remaining_seconds: int
    soft_cap_reached: bool
    total_raised: Amount
    total_tokens_sold: Amount
    cooldown_enabled: bool
    vesting_enabled: bool

    class Config:
        json_schema_extra = {
            "example": {
                "mode": "vesting_lockup",
                "is_active": True,
                "paused": False,
                "is_finalized": False,
                "has_started": True,
                "has_ended": False,
                "remaining_seconds": 2592000,
                "soft_cap_reached": False,
                "total_raised": "10",
                "total_tokens_sold": "1000",
                "cooldown_enabled": False,
                "vesting_enabled": True
            }
        }


class PriceResponse(BaseModel):
    """Current token price."""
    price: Amount


class TierResponse(BaseModel):
    """
    One pricing tier.

    Staged sales return time-window fields; vesting sales return discount band fields.
    """
    index: int
    price: Optional[Amount] = None
    max_tokens: Optional[Amount] = None
    tokens_sold: Optional[Amount] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    min_purchase: Optional[Amount] = None
    max_purchase: Optional[Amount] = None
    discount_percent: Optional[Amount] = None


class TierListResponse(BaseModel):
    items: List[TierResponse]
    total_count: int
    current_tier_index: int


# ============================================================================
# Participant Models
# ============================================================================

class VestingResponse(BaseModel):
    total_amount: Amount
    released_amount: Amount
    start_time: datetime
    cliff_end: datetime
    duration_seconds: int


class DistributionResponse(BaseModel):
    index: int
    amount: Amount
    release_time: datetime
    claimed: bool


class ParticipantResponse(BaseModel):
    """Everything the sale records for one participant."""
    participant: str
    whitelisted: bool
    total_invested: Amount
    tokens_purchased: Amount
    locked_tokens: Amount
    lock_start_time: Optional[datetime] = None
    vesting: Optional[VestingResponse] = None
    distributions: List[DistributionResponse]
    referrer: Optional[str] = None
    referral_bonus: Amount
    refunded: bool
    cooldown_seconds_left: int

    class Config:
        json_schema_extra = {
            "example": {
                "participant": "alice",
                "whitelisted": True,
                "total_invested": "10",
                "tokens_purchased": "1000",
                "locked_tokens": "0",
                "lock_start_time": None,
                "vesting": {
                    "total_amount": "1000",
                    "released_amount": "0",
                    "start_time": "2025-01-01T00:00:00Z",
                    "cliff_end": "2025-04-01T00:00:00Z",
                    "duration_seconds": 31536000
                },
                "distributions": [],
                "referrer": None,
                "referral_bonus": "0",
                "refunded": False,
                "cooldown_seconds_left": 0
            }
        }


# ============================================================================
# Purchase / Claim Models
# ============================================================================

class PurchaseRequest(BaseModel):
    """Request to buy tokens."""
    amount: Amount = Field(
        ...,
        gt=0,
        description="Payment amount"
    )
    token_amount: Optional[Amount] = Field(
        None,
        gt=0,
        description="Requested token amount (staged-distribution sales only)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "amount": "10",
                "token_amount": None
            }
        }


class PurchaseResponse(BaseModel):
    """Response after a committed purchase."""
    participant: str
    amount: Amount
    tokens: Amount
    price: Amount
    discount_percent: Amount
    immediate: Amount
    vested: Amount
    locked: Amount
    distributed: Amount
    referral_bonus: Amount
    tier_index: Optional[int] = None

    class Config:
        json_schema_extra = {
            "example": {
                "participant": "alice",
                "amount": "10",
                "tokens": "1000",
                "price": "0.01",
                "discount_percent": "0",
                "immediate": "0",
                "vested": "1000",
                "locked": "0",
                "distributed": "0",
                "referral_bonus": "0",
                "tier_index": None
            }
        }


class ClaimResponse(BaseModel):
    """Amount moved to the participant by a claim."""
    participant: str
    amount: Amount


class ReferrerRequest(BaseModel):
    referrer: str = Field(..., min_length=1)


# ============================================================================
# Admin Models
# ============================================================================

class FlagResponse(BaseModel):
    enabled: bool


class TierRequest(BaseModel):
    """New time-window tier (staged sales)."""
    price: Amount = Field(..., gt=0)
    max_tokens: Amount = Field(..., gt=0)
    start_time: datetime
    end_time: datetime


class BandRequest(BaseModel):
    """New discount band (vesting sales)."""
    min_purchase: Amount = Field(..., ge=0)
    max_purchase: Amount = Field(..., gt=0)
    discount_percent: Amount = Field(..., ge=0, le=100)

    class Config:
        json_schema_extra = {
            "example": {
                "min_purchase": "10",
                "max_purchase": "50",
                "discount_percent": "10"
            }
        }


class IndexResponse(BaseModel):
    index: int


class WhitelistRequest(BaseModel):
    participants: List[str] = Field(..., min_length=1)
    whitelisted: bool = True


class WithdrawResponse(BaseModel):
    amount: Amount


class EventResponse(BaseModel):
    type: str
    at: datetime
    participant: Optional[str] = None
    data: Dict[str, Any]


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    code: str
    category: str
    detail: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "HardCapExceeded",
                "code": "HARD_CAP_EXCEEDED",
                "category": "capacity",
                "detail": "Purchase of 5 exceeds remaining capacity 3"
            }
        }
