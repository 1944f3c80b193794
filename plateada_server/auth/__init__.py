"""Authentication module."""
from .jwt import TokenClaims, create_access_token, verify_token, get_current_claims, get_current_user
from .passwords import hash_password, verify_password

__all__ = [
    "TokenClaims",
    "create_access_token",
    "verify_token",
    "get_current_claims",
    "get_current_user",
    "hash_password",
    "verify_password",
]
