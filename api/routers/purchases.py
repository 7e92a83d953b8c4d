"""
Purchases API Endpoints.

Endpoint for buying tokens.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_caller, get_engine
from api.models import PurchaseRequest, PurchaseResponse
from services.sale_engine import SaleEngine

router = APIRouter()


@router.post(
    "/purchases",
    response_model=PurchaseResponse,
    summary="Buy Tokens",
    description="Buy tokens for the caller. All-or-nothing: a rejected purchase changes nothing."
)
def buy_tokens(
    request: PurchaseRequest,
    caller: str = Depends(get_caller),
    engine: SaleEngine = Depends(get_engine),
):
    """
    Buy tokens with `amount` of the payment currency.

    **Process:**
    1. Admission: sale open, caller whitelisted, amount in range, cooldown over
    2. Pricing: ramp price + discount band, or the active tier's price
    3. Capacity: hard cap, tier cap and token supply
    4. Release split: immediate / vested / locked / staged tranches
    5. Referral bonus credited to the caller's referrer, if any

    Staged-distribution sales require `token_amount`, and `amount` must equal
    `token_amount * tier price` exactly.

    **Example request:**
    ```json
    {
      "amount": "10"
    }
    ```
    """
    result = engine.buy_tokens(caller, request.amount, request.token_amount)

    return PurchaseResponse(
        participant=result.participant,
        amount=result.amount,
        tokens=result.tokens,
        price=result.price,
        discount_percent=result.discount_percent,
        immediate=result.immediate,
        vested=result.vested,
        locked=result.locked,
        distributed=result.distributed,
        referral_bonus=result.referral_bonus,
        tier_index=result.tier_index,
    )
