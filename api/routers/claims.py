"""
Claims API Endpoints.

Participant-side releases: vested tokens, lockup, staged distributions,
referral bonus and refunds. The caller is always the beneficiary.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_caller, get_engine
from api.models import ClaimResponse, ReferrerRequest
from services.sale_engine import SaleEngine

router = APIRouter()


@router.post("/claims/vested", response_model=ClaimResponse, summary="Release Vested Tokens")
def release_vested(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    """
    Release everything vested since the last release. May release zero.
    """
    return ClaimResponse(participant=caller, amount=engine.release_vested_tokens(caller))


@router.post("/claims/unlock", response_model=ClaimResponse, summary="Unlock Tokens")
def unlock(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    return ClaimResponse(participant=caller, amount=engine.unlock_tokens(caller))


@router.post(
    "/claims/distributions/{index}",
    response_model=ClaimResponse,
    summary="Claim Distribution",
)
def claim_distribution(
    index: int,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    return ClaimResponse(participant=caller, amount=engine.claim_distribution(caller, index))


@router.post("/claims/referral-bonus", response_model=ClaimResponse, summary="Claim Referral Bonus")
def claim_referral_bonus(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    return ClaimResponse(participant=caller, amount=engine.claim_referral_bonus(caller))


@router.post("/claims/refund", response_model=ClaimResponse, summary="Claim Refund")
def claim_refund(caller: str = Depends(get_caller), engine: SaleEngine = Depends(get_engine)):
    """
    Refund the caller's whole investment after a sale that missed its soft cap.
    """
    return ClaimResponse(participant=caller, amount=engine.claim_refund(caller))


@router.put("/referrer", status_code=204, summary="Set Referrer")
def set_referrer(
    request: ReferrerRequest,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    """
    Record who referred the caller. Can be set once.
    """
    engine.set_referrer(caller, request.referrer)
