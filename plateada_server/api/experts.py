"""Experts API - discovery listing and profile management."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from plateada_server.auth.jwt import get_current_user
from plateada_server.config import get_settings
from plateada_server.db import experts as directory
from plateada_server.db.models import CamelModel, Expert, ExpertCreate, User
from plateada_server.errors import NotFoundError


router = APIRouter(prefix="/experts", tags=["experts"])


class ExpertList(CamelModel):
    experts: list[Expert]


class ExpertResponse(CamelModel):
    expert: Expert


class FieldUpdate(CamelModel):
    """Single-field profile update."""
    field: str = Field(..., min_length=1)
    value: str


class FieldUpdateResponse(CamelModel):
    success: bool = True
    updated_field: str


class StatusUpdate(CamelModel):
    status: str


class StatusResponse(CamelModel):
    success: bool = True
    status: str


class MembershipUpdate(CamelModel):
    membership_type: str


class MembershipResponse(CamelModel):
    success: bool = True
    membership_type: str
    is_featured: bool


class ExpertDashboard(CamelModel):
    """Own profile with session counters."""
    expert: Optional[Expert]
    pending_sessions: int
    urgent_sessions: int
    confirmed_sessions: int


@router.get("", response_model=ExpertList)
async def list_experts(
    zone: Optional[str] = None,
    modality: Optional[str] = None,
    service_category: Optional[str] = None,
):
    """List bookable experts: featured first, then available, then by rating."""
    experts = await directory.list_available(
        zone=zone,
        modality=modality,
        service_category=service_category,
    )
    return ExpertList(experts=experts)


@router.post("", response_model=ExpertResponse)
async def create_expert_profile(
    payload: ExpertCreate,
    current_user: User = Depends(get_current_user),
):
    """Create the caller's expert profile."""
    settings = get_settings()
    expert = await directory.create_profile(current_user, payload, min_age=settings.min_expert_age)
    return ExpertResponse(expert=expert)


@router.get("/me", response_model=ExpertDashboard)
async def get_my_expert_profile(current_user: User = Depends(get_current_user)):
    """Get the caller's expert profile and pending/urgent/confirmed counts."""
    settings = get_settings()
    dashboard = await directory.get_dashboard(
        current_user.id,
        urgent_window_days=settings.urgent_window_days,
    )
    return ExpertDashboard(
        expert=dashboard["expert"],
        pending_sessions=dashboard["pending"],
        urgent_sessions=dashboard["urgent"],
        confirmed_sessions=dashboard["confirmed"],
    )


@router.put("/profile", response_model=FieldUpdateResponse)
async def update_profile_field(
    payload: FieldUpdate,
    current_user: User = Depends(get_current_user),
):
    """Update one editable field of the caller's profile."""
    await directory.update_field(current_user.id, payload.field, payload.value)
    return FieldUpdateResponse(updated_field=payload.field)


@router.put("/status", response_model=StatusResponse)
async def update_status(
    payload: StatusUpdate,
    current_user: User = Depends(get_current_user),
):
    """Set availability: available, busy or unavailable."""
    status = await directory.set_status(current_user.id, payload.status)
    return StatusResponse(status=status)


@router.put("/membership", response_model=MembershipResponse)
async def update_membership(
    payload: MembershipUpdate,
    current_user: User = Depends(get_current_user),
):
    """Switch between free and premium. Premium experts are featured."""
    membership_type, is_featured = await directory.set_membership(
        current_user.id, payload.membership_type
    )
    return MembershipResponse(membership_type=membership_type, is_featured=is_featured)


@router.get("/{expert_id}", response_model=ExpertResponse)
async def get_expert(expert_id: str):
    """Get a public expert profile."""
    expert = await directory.get_expert_by_id(expert_id)
    if expert is None:
        raise NotFoundError("Expert not found")
    return ExpertResponse(expert=expert)
