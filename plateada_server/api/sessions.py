"""Sessions API - request, list and transition session requests."""
from fastapi import APIRouter, Depends
from pydantic import Field

from plateada_server.auth.jwt import get_current_user
from plateada_server.config import get_settings
from plateada_server.db import sessions as lifecycle
from plateada_server.db.models import CamelModel, SessionCreate, SessionRequest, User


router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
    responses={402: {"description": "Insufficient credits"}},
)


class SessionCreated(CamelModel):
    session: SessionRequest
    credits: int


class SessionList(CamelModel):
    sessions: list[SessionRequest]
    expert_sessions: list[SessionRequest]


class SessionTransition(CamelModel):
    session_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)


class SessionResponse(CamelModel):
    session: SessionRequest


@router.post("", response_model=SessionCreated)
async def create_session(
    payload: SessionCreate,
    current_user: User = Depends(get_current_user),
):
    """Request a session with an expert. Costs the flat session price.

    Answers 402 with the current balance when the caller cannot pay.
    """
    settings = get_settings()
    session, credits = await lifecycle.create_session(
        current_user,
        payload,
        credits_cost=settings.session_credit_cost,
    )
    return SessionCreated(session=session, credits=credits)


@router.get("", response_model=SessionList)
async def list_sessions(current_user: User = Depends(get_current_user)):
    """List the caller's sessions as client and, for experts, as provider."""
    return SessionList(
        sessions=await lifecycle.list_client_sessions(current_user.id),
        expert_sessions=await lifecycle.list_expert_sessions(current_user.id),
    )


@router.patch("", response_model=SessionResponse)
async def transition_session(
    payload: SessionTransition,
    current_user: User = Depends(get_current_user),
):
    """Accept, reject, complete or dispute a session."""
    session = await lifecycle.transition_session(
        payload.session_id,
        payload.status,
        actor_id=current_user.id,
    )
    return SessionResponse(session=session)
