"""
Sale API Endpoints.

Read-only queries: status, price, tiers, participant records and the event log.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_engine
from api.models import (
    DistributionResponse,
    EventResponse,
    ParticipantResponse,
    PriceResponse,
    SaleStatusResponse,
    TierListResponse,
    TierResponse,
    VestingResponse,
)
from domain.tier import DiscountBand, TimeWindowTier
from services.sale_engine import SaleEngine

router = APIRouter()


def _tier_response(index: int, tier) -> TierResponse:
    if isinstance(tier, TimeWindowTier):
        return TierResponse(
            index=index,
            price=tier.price,
            max_tokens=tier.max_tokens,
            tokens_sold=tier.tokens_sold,
            start_time=tier.start_time,
            end_time=tier.end_time,
        )
    assert isinstance(tier, DiscountBand)
    return TierResponse(
        index=index,
        min_purchase=tier.min_purchase,
        max_purchase=tier.max_purchase,
        discount_percent=tier.discount_percent,
    )


@router.get(
    "/sale/status",
    response_model=SaleStatusResponse,
    summary="Sale Status",
)
def get_sale_status(engine: SaleEngine = Depends(get_engine)):
    """
    Whether the sale is open, how long it has left and how much it raised.
    """
    status = engine.sale_status()
    return SaleStatusResponse(
        mode=engine.config.mode.value,
        is_active=status.is_active,
        paused=status.paused,
        is_finalized=status.is_finalized,
        has_started=status.has_started,
        has_ended=status.has_ended,
        remaining_seconds=int(status.remaining_time.total_seconds()),
        soft_cap_reached=status.soft_cap_reached,
        total_raised=status.total_raised,
        total_tokens_sold=status.total_tokens_sold,
        cooldown_enabled=engine.cooldown_enabled(),
        vesting_enabled=engine.vesting_enabled(),
    )


@router.get("/sale/price", response_model=PriceResponse, summary="Current Token Price")
def get_price(engine: SaleEngine = Depends(get_engine)):
    return PriceResponse(price=engine.get_current_token_price())


@router.get("/sale/tiers", response_model=TierListResponse, summary="List Tiers")
def list_tiers(engine: SaleEngine = Depends(get_engine)):
    count = engine.get_tier_count()
    return TierListResponse(
        items=[_tier_response(i, engine.get_tier(i)) for i in range(count)],
        total_count=count,
        current_tier_index=engine.snapshot().counters.current_tier_index,
    )


@router.get("/sale/tiers/{index}", response_model=TierResponse, summary="Get Tier")
def get_tier(index: int, engine: SaleEngine = Depends(get_engine)):
    try:
        return _tier_response(index, engine.get_tier(index))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get(
    "/participants/{participant}",
    response_model=ParticipantResponse,
    summary="Participant Record",
)
def get_participant(participant: str, engine: SaleEngine = Depends(get_engine)):
    account = engine.account(participant)
    vesting = None
    if account.vesting is not None:
        vesting = VestingResponse(
            total_amount=account.vesting.total_amount,
            released_amount=account.vesting.released_amount,
            start_time=account.vesting.start_time,
            cliff_end=account.vesting.cliff_end,
            duration_seconds=int(account.vesting.duration.total_seconds()),
        )
    return ParticipantResponse(
        participant=participant,
        whitelisted=account.whitelisted,
        total_invested=account.total_invested,
        tokens_purchased=account.tokens_purchased,
        locked_tokens=account.locked_tokens,
        lock_start_time=account.lock_start_time,
        vesting=vesting,
        distributions=[
            DistributionResponse(index=i, amount=d.amount, release_time=d.release_time, claimed=d.claimed)
            for i, d in enumerate(account.distributions)
        ],
        referrer=account.referrer,
        referral_bonus=account.referral_bonus_accrued,
        refunded=account.refunded,
        cooldown_seconds_left=int(engine.cooldown_time_left(participant).total_seconds()),
    )


@router.get("/events", response_model=list[EventResponse], summary="Event Log")
def list_events(limit: int = 100, engine: SaleEngine = Depends(get_engine)):
    """
    Most recent committed events, oldest first.
    """
    events = engine.events[-limit:] if limit > 0 else ()
    return [EventResponse(**event.to_dict()) for event in events]
