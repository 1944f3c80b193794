"""Expert directory: profiles, narrow mutators and the discovery ranking."""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from plateada_server.errors import (
    DuplicateProfileError,
    InvalidMembershipError,
    InvalidStatusError,
    NonEditableFieldError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .connection import IntegrityError, atomic
from .models import Expert, ExpertCreate, User


logger = logging.getLogger(__name__)


MODALITIES = ("presencial", "remoto", "ambos")
EXPERT_STATUSES = ("available", "busy", "unavailable")
MEMBERSHIP_TYPES = ("free", "premium")
REQUIRED_FIELDS = ("name", "age", "service", "experience", "modality", "zone", "schedule")
EDITABLE_FIELDS = ("service", "experience", "schedule", "contact", "zone", "modality")

# Featured first, then availability (unavailable is filtered out), then rating.
RANKING_ORDER = """
    ORDER BY is_featured DESC,
        CASE status WHEN 'available' THEN 0 WHEN 'busy' THEN 1 ELSE 2 END,
        rating DESC,
        created_at ASC,
        id ASC
"""


def avatar_initials(name: str) -> str:
    """Initials of the first two words, upper-cased."""
    return "".join(word[0] for word in name.split() if word)[:2].upper()


def _row_to_expert(row: dict) -> Expert:
    return Expert(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        age=int(row["age"]),
        service=row["service"],
        service_category=row["service_category"],
        experience=row["experience"],
        modality=row["modality"],
        zone=row["zone"],
        schedule=row["schedule"],
        contact=row.get("contact") or "",
        status=row["status"],
        avatar=row.get("avatar") or "",
        rating=round(float(row.get("rating") or 0), 1),
        total_ratings=int(row.get("total_ratings") or 0),
        membership_type=row.get("membership_type") or "free",
        is_featured=bool(row.get("is_featured")),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


async def list_available(
    zone: Optional[str] = None,
    modality: Optional[str] = None,
    service_category: Optional[str] = None,
) -> list[Expert]:
    """List experts that can be booked, ranked for discovery.

    Every supplied filter must match. An expert offering `ambos` matches any
    modality filter, and a filter of `ambos` does not restrict modality.
    """
    conditions = ["status != 'unavailable'"]
    args: list = []

    if zone:
        conditions.append("zone = ?")
        args.append(zone)
    if modality and modality != "ambos":
        conditions.append("(modality = ? OR modality = 'ambos')")
        args.append(modality)
    if service_category:
        conditions.append("service_category = ?")
        args.append(service_category)

    sql = f"SELECT * FROM experts WHERE {' AND '.join(conditions)} {RANKING_ORDER}"
    with atomic() as tx:
        rows = tx.execute(sql, args)
    return [_row_to_expert(row) for row in rows]


async def get_expert_by_id(expert_id: str) -> Optional[Expert]:
    with atomic() as tx:
        rows = tx.execute("SELECT * FROM experts WHERE id = ?", [expert_id])
    if rows:
        return _row_to_expert(rows[0])
    return None


async def get_expert_by_user_id(user_id: str) -> Optional[Expert]:
    with atomic() as tx:
        rows = tx.execute("SELECT * FROM experts WHERE user_id = ?", [user_id])
    if rows:
        return _row_to_expert(rows[0])
    return None


async def create_profile(owner: User, data: ExpertCreate, min_age: int = 50) -> Expert:
    """Create the expert profile of `owner`.

    Raises:
        PermissionDeniedError: owner is not an expert account
        ValidationError: missing required fields or age below `min_age`
        DuplicateProfileError: owner already has a profile
    """
    if owner.role != "expert":
        raise PermissionDeniedError("Only expert accounts can create a profile")

    missing = [
        field for field in REQUIRED_FIELDS
        if not str(getattr(data, field, "") or "").strip()
    ]
    if missing:
        raise ValidationError("Missing required fields", fields=missing)

    if data.age < min_age:
        raise ValidationError(
            f"Experts must be at least {min_age} years old",
            fields=["age"],
        )

    now = datetime.now(timezone.utc).isoformat()
    expert_id = str(uuid.uuid4())
    name = data.name.strip()

    try:
        with atomic() as tx:
            tx.execute(
                """
                INSERT INTO experts (id, user_id, name, age, service, service_category, experience,
                                     modality, zone, schedule, contact, avatar, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [expert_id, owner.id, name, data.age, data.service.strip(),
                 data.service_category or "otro", data.experience.strip(), data.modality,
                 data.zone.strip(), data.schedule.strip(), data.contact, avatar_initials(name),
                 now, now],
            )
    except IntegrityError:
        raise DuplicateProfileError("An expert profile already exists for this account")

    logger.info(f"Expert profile {expert_id} created for user {owner.id}")
    return await get_expert_by_id(expert_id)


async def update_field(owner_id: str, field: str, value: str) -> None:
    """Update one editable profile field.

    Raises:
        NonEditableFieldError: field outside the allow-list
        ValidationError: invalid modality value
        NotFoundError: owner has no profile
    """
    if field not in EDITABLE_FIELDS:
        raise NonEditableFieldError(field, EDITABLE_FIELDS)
    if field == "modality" and value not in MODALITIES:
        raise ValidationError(
            f"Invalid modality. Options: {', '.join(MODALITIES)}",
            fields=["value"],
        )

    now = datetime.now(timezone.utc).isoformat()
    with atomic() as tx:
        # field is from EDITABLE_FIELDS, never from the caller directly
        tx.execute(
            f"UPDATE experts SET {field} = ?, updated_at = ? WHERE user_id = ?",
            [value, now, owner_id],
        )
        if tx.changes == 0:
            raise NotFoundError("Expert profile not found")


async def set_status(owner_id: str, status: str) -> str:
    """Set the availability status of the owner's profile."""
    if status not in EXPERT_STATUSES:
        raise InvalidStatusError(
            f"Invalid status. Options: {', '.join(EXPERT_STATUSES)}"
        )

    now = datetime.now(timezone.utc).isoformat()
    with atomic() as tx:
        tx.execute(
            "UPDATE experts SET status = ?, updated_at = ? WHERE user_id = ?",
            [status, now, owner_id],
        )
        if tx.changes == 0:
            raise NotFoundError("Expert profile not found")

    logger.info(f"Expert owned by {owner_id} is now {status}")
    return status


async def set_membership(owner_id: str, membership_type: str) -> tuple[str, bool]:
    """Set the membership tier. is_featured follows the tier in the same write."""
    if membership_type not in MEMBERSHIP_TYPES:
        raise InvalidMembershipError(
            f"Invalid membership type. Options: {', '.join(MEMBERSHIP_TYPES)}"
        )

    is_featured = membership_type == "premium"
    now = datetime.now(timezone.utc).isoformat()
    with atomic() as tx:
        tx.execute(
            """
            UPDATE experts SET membership_type = ?, is_featured = ?, updated_at = ?
            WHERE user_id = ?
            """,
            [membership_type, int(is_featured), now, owner_id],
        )
        if tx.changes == 0:
            raise NotFoundError("Expert profile not found")

    logger.info(f"Expert owned by {owner_id} membership set to {membership_type}")
    return membership_type, is_featured


def _is_urgent(requested_date: str, horizon: date) -> bool:
    """Pending requests dated on or before the horizon are urgent.

    Free-text dates ("A convenir") are never urgent.
    """
    try:
        return date.fromisoformat(requested_date.strip()[:10]) <= horizon
    except ValueError:
        return False


async def get_dashboard(owner_id: str, urgent_window_days: int = 1) -> dict:
    """Own profile plus pending, urgent and confirmed session counts."""
    expert = await get_expert_by_user_id(owner_id)
    if expert is None:
        return {"expert": None, "pending": 0, "urgent": 0, "confirmed": 0}

    with atomic() as tx:
        rows = tx.execute(
            """
            SELECT status, requested_date FROM sessions
            WHERE expert_id = ? AND status IN ('pending', 'accepted')
            """,
            [expert.id],
        )

    horizon = datetime.now(timezone.utc).date() + timedelta(days=urgent_window_days)
    pending = [row for row in rows if row["status"] == "pending"]

    return {
        "expert": expert,
        "pending": len(pending),
        "urgent": sum(1 for row in pending if _is_urgent(row["requested_date"], horizon)),
        "confirmed": sum(1 for row in rows if row["status"] == "accepted"),
    }
