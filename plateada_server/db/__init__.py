"""Database module."""
from .connection import get_db, atomic, DatabaseError, IntegrityError
from .schema import init_db
from .users import get_user_by_id, get_user_by_email, get_user_credentials, create_user
from .models import (
    User, UserCreate, CreditTransaction, Expert, ExpertCreate,
    SessionRequest, SessionCreate, Rating, RatingScores,
)

__all__ = [
    "get_db", "atomic", "DatabaseError", "IntegrityError", "init_db",
    "get_user_by_id", "get_user_by_email", "get_user_credentials", "create_user",
    "User", "UserCreate", "CreditTransaction", "Expert", "ExpertCreate",
    "SessionRequest", "SessionCreate", "Rating", "RatingScores",
]
