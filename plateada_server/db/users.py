"""User accounts."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from plateada_server.errors import DuplicateEmailError
from .connection import IntegrityError, atomic
from .ledger import apply_entry
from .models import User, UserCreate


logger = logging.getLogger(__name__)


USER_COLUMNS = "id, email, display_name, role, credits, created_at, updated_at"


def _row_to_user(row: dict) -> User:
    """Convert row dict to User model."""
    return User(
        id=row["id"],
        email=row["email"],
        display_name=row["display_name"],
        role=row["role"],
        credits=int(row.get("credits") or 0),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


async def get_user_by_id(user_id: str) -> Optional[User]:
    """Get user by ID."""
    with atomic() as tx:
        rows = tx.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", [user_id])
    if rows:
        return _row_to_user(rows[0])
    return None


async def get_user_by_email(email: str) -> Optional[User]:
    """Get user by email (case-insensitive)."""
    with atomic() as tx:
        rows = tx.execute(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = ?",
            [email.strip().lower()],
        )
    if rows:
        return _row_to_user(rows[0])
    return None


async def get_user_credentials(email: str) -> Optional[tuple[User, str]]:
    """Get a user together with the stored password hash."""
    with atomic() as tx:
        rows = tx.execute(
            f"SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = ?",
            [email.strip().lower()],
        )
    if rows:
        return _row_to_user(rows[0]), rows[0]["password_hash"]
    return None


async def create_user(user_data: UserCreate, password_hash: str, welcome_credits: int = 3) -> User:
    """Create a new user.

    Clients receive `welcome_credits` through the ledger; experts start at 0.
    """
    now = datetime.now(timezone.utc).isoformat()
    user_id = str(uuid.uuid4())
    email = user_data.email.lower()
    grant = welcome_credits if user_data.role == "client" else 0

    try:
        with atomic() as tx:
            tx.execute(
                """
                INSERT INTO users (id, email, password_hash, display_name, role, credits, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                [user_id, email, password_hash, user_data.display_name.strip(),
                 user_data.role, now, now],
            )

            if grant > 0:
                apply_entry(tx, user_id, grant, "welcome", description="Welcome credits")
    except IntegrityError:
        raise DuplicateEmailError("An account with that email already exists")

    logger.info(f"Registered {user_data.role} {user_id}")
    return await get_user_by_id(user_id)
