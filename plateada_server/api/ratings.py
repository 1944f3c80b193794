"""Ratings API - multi-dimensional ratings of completed sessions."""
from fastapi import APIRouter, Depends, Query
from pydantic import Field

from plateada_server.auth.jwt import get_current_claims, TokenClaims
from plateada_server.db import ratings as aggregator
from plateada_server.db.models import Rating, RatingScores, CamelModel


router = APIRouter(prefix="/ratings", tags=["ratings"])


class RatingCreate(RatingScores):
    session_id: str = Field(..., min_length=1)
    rated_id: str = Field(..., min_length=1)
    comment: str = ""


class RatingResponse(CamelModel):
    rating: Rating


class RatingList(CamelModel):
    ratings: list[Rating]


@router.post("", response_model=RatingResponse)
async def submit_rating(
    payload: RatingCreate,
    claims: TokenClaims = Depends(get_current_claims),
):
    """Rate a completed session. Refreshes the expert's average rating."""
    rating = await aggregator.submit_rating(
        session_id=payload.session_id,
        rater_id=claims.user_id,
        rated_id=payload.rated_id,
        scores=payload,
        comment=payload.comment,
    )
    return RatingResponse(rating=rating)


@router.get("", response_model=RatingList)
async def list_ratings(
    rated_id: str = Query(..., alias="ratedId"),
    claims: TokenClaims = Depends(get_current_claims),
):
    """Ratings received by a user, newest first."""
    return RatingList(ratings=await aggregator.list_ratings_for(rated_id))
