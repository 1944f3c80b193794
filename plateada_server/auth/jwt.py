"""JWT token handling.

Tokens carry the identity claim {sub, email, role, display_name}.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

from plateada_server.config import get_settings
from plateada_server.db import get_user_by_id
from plateada_server.db.models import User
from plateada_server.errors import AuthError, NotFoundError


ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


class TokenClaims(BaseModel):
    """Identity claim carried by an access token."""
    user_id: str
    email: str
    role: str
    display_name: str


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    settings = get_settings()
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(days=settings.access_token_expire_days)

    to_encode = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "display_name": user.display_name,
        "exp": expire,
        "iat": now,
    }

    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[TokenClaims]:
    """Verify JWT token and return its claims, or None if invalid/expired."""
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if user_id is None:
        return None

    return TokenClaims(
        user_id=user_id,
        email=payload.get("email", ""),
        role=payload.get("role", ""),
        display_name=payload.get("display_name", ""),
    )


async def get_current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> TokenClaims:
    """Get the identity claim of the bearer token."""
    if credentials is None:
        raise AuthError("Not authenticated")

    claims = verify_token(credentials.credentials)
    if claims is None:
        raise AuthError("Invalid or expired token")

    return claims


async def get_current_user(claims: TokenClaims = Depends(get_current_claims)) -> User:
    """Get current authenticated user from JWT token."""
    user = await get_user_by_id(claims.user_id)
    if user is None:
        raise NotFoundError("User not found")

    return user
