"""
Admin API Endpoints.

Owner-only operations. Any other caller gets 403 (Unauthorized).
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_caller, get_engine
from api.models import (
    BandRequest,
    FlagResponse,
    IndexResponse,
    TierRequest,
    WhitelistRequest,
    WithdrawResponse,
)
from services.sale_engine import SaleEngine

router = APIRouter(prefix="/admin")


@router.post("/toggle-active", response_model=FlagResponse, summary="Toggle Sale Active")
def toggle_active(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    return FlagResponse(enabled=engine.admin.toggle_active(caller))


@router.post("/toggle-cooldown", response_model=FlagResponse, summary="Toggle Purchase Cooldown")
def toggle_cooldown(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    return FlagResponse(enabled=engine.admin.toggle_cooldown(caller))


@router.post("/toggle-vesting", response_model=FlagResponse, summary="Toggle Vesting")
def toggle_vesting(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    """
    While vesting is off, new purchases lock their remainder for the lockup period instead.
    """
    return FlagResponse(enabled=engine.admin.toggle_vesting(caller))


@router.post("/pause", status_code=204, summary="Pause Sale")
def pause(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    engine.admin.pause(caller)


@router.post("/unpause", status_code=204, summary="Unpause Sale")
def unpause(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    engine.admin.unpause(caller)


@router.post("/finalize", status_code=204, summary="Finalize Sale")
def finalize(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    engine.admin.finalize(caller)


@router.post("/tiers", response_model=IndexResponse, summary="Add Time-Window Tier")
def add_tier(
    request: TierRequest,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    """
    Append a tier. Tiers must not overlap and are sold strictly in order.
    """
    index = engine.admin.add_tier(
        caller,
        request.price,
        request.max_tokens,
        request.start_time,
        request.end_time,
    )
    return IndexResponse(index=index)


@router.post("/tiers/advance", response_model=IndexResponse, summary="Advance Tier")
def advance_tier(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    return IndexResponse(index=engine.admin.advance_tier(caller))


@router.post("/bands", response_model=IndexResponse, summary="Add Discount Band")
def add_band(
    request: BandRequest,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    index = engine.admin.add_band(
        caller,
        request.min_purchase,
        request.max_purchase,
        request.discount_percent,
    )
    return IndexResponse(index=index)


@router.put("/whitelist", status_code=204, summary="Update Whitelist")
def update_whitelist(
    request: WhitelistRequest,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    engine.admin.update_whitelist(caller, request.participants, request.whitelisted)


@router.post("/withdraw", response_model=WithdrawResponse, summary="Withdraw Funds")
def withdraw(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    """
    Move collected payments to the owner. Requires the soft cap to be reached.
    """
    return WithdrawResponse(amount=engine.admin.withdraw_funds(caller))
