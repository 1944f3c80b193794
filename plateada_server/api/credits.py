"""Credits API - balance, simulated purchases and ledger history."""
from fastapi import APIRouter, Depends

from plateada_server.auth.jwt import get_current_claims, TokenClaims
from plateada_server.config import get_settings
from plateada_server.db import ledger
from plateada_server.db.models import CamelModel, CreditTransaction


router = APIRouter(prefix="/credits", tags=["credits"])


class CreditBalance(CamelModel):
    """Credit balance response."""
    credits: int


class PurchaseRequest(CamelModel):
    """Simulated purchase. No payment is taken."""
    amount: int


class CreditHistory(CamelModel):
    credits: int
    ledger_total: int
    transactions: list[CreditTransaction]


@router.get("", response_model=CreditBalance)
async def get_balance(claims: TokenClaims = Depends(get_current_claims)):
    """Get current credit balance."""
    return CreditBalance(credits=await ledger.get_balance(claims.user_id))


@router.post("", response_model=CreditBalance)
async def purchase_credits(
    payload: PurchaseRequest,
    claims: TokenClaims = Depends(get_current_claims),
):
    """Add between min and max purchase credits to the caller's balance."""
    settings = get_settings()
    credits = await ledger.purchase_credits(
        claims.user_id,
        payload.amount,
        min_amount=settings.min_purchase_credits,
        max_amount=settings.max_purchase_credits,
    )
    return CreditBalance(credits=credits)


@router.get("/history", response_model=CreditHistory)
async def get_history(claims: TokenClaims = Depends(get_current_claims)):
    """Ledger entries in insertion order with the reconstructed total."""
    return CreditHistory(
        credits=await ledger.get_balance(claims.user_id),
        ledger_total=await ledger.get_ledger_total(claims.user_id),
        transactions=await ledger.get_transactions(claims.user_id),
    )
