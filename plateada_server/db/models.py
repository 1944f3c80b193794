"""Database models (Pydantic schemas for the marketplace tables).

Fields are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


UserRole = Literal["client", "expert"]
TransactionType = Literal["welcome", "purchase", "session_charge", "session_refund"]
Modality = Literal["presencial", "remoto", "ambos"]
ExpertStatus = Literal["available", "busy", "unavailable"]
MembershipType = Literal["free", "premium"]
SessionStatus = Literal["pending", "accepted", "rejected", "completed", "disputed", "expired"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class User(CamelModel):
    """User model."""
    id: str  # UUID
    email: EmailStr
    display_name: str
    role: UserRole
    credits: int = 0
    created_at: datetime
    updated_at: datetime


class UserCreate(CamelModel):
    """Registration payload."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)
    display_name: str = Field(..., min_length=1)
    role: UserRole


class CreditTransaction(CamelModel):
    """Credit ledger entry. Never updated or deleted."""
    id: str
    user_id: str
    amount: int  # Positive = credit, negative = debit
    transaction_type: TransactionType
    session_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class Expert(CamelModel):
    """Expert profile."""
    id: str
    user_id: str
    name: str
    age: int
    service: str
    service_category: str
    experience: str
    modality: Modality
    zone: str
    schedule: str
    contact: str = ""
    status: ExpertStatus = "available"
    avatar: str = ""
    rating: float = 0.0
    total_ratings: int = 0
    membership_type: MembershipType = "free"
    is_featured: bool = False
    created_at: datetime


class ExpertCreate(CamelModel):
    """Expert profile creation payload."""
    name: str = Field(..., min_length=1)
    age: int
    service: str = Field(..., min_length=1)
    service_category: str = "otro"
    experience: str = Field(..., min_length=1)
    modality: Modality
    zone: str = Field(..., min_length=1)
    schedule: str = Field(..., min_length=1)
    contact: str = ""


class SessionRequest(CamelModel):
    """Session request between a client and an expert."""
    id: str
    client_id: str
    expert_id: str
    status: SessionStatus
    requested_date: str
    requested_time: str = ""
    requested_duration: str = "1 hora"
    credits_cost: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    # Present on listings only
    expert_name: Optional[str] = None
    expert_service: Optional[str] = None
    client_name: Optional[str] = None


class SessionCreate(CamelModel):
    """Session request payload."""
    expert_id: str = Field(..., min_length=1)
    requested_date: str = Field(..., min_length=1)
    requested_time: str = ""
    requested_duration: str = "1 hora"


class RatingScores(CamelModel):
    """The four 1-5 rating dimensions."""
    quality: int = Field(..., ge=1, le=5)
    clarity: int = Field(..., ge=1, le=5)
    punctuality: int = Field(..., ge=1, le=5)
    overall: int = Field(..., ge=1, le=5)


class Rating(RatingScores):
    """Rating left after a completed session."""
    id: str
    session_id: str
    rater_id: str
    rated_id: str
    comment: str = ""
    created_at: datetime
