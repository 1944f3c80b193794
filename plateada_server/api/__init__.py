"""API routes module."""
from .experts import router as experts_router
from .credits import router as credits_router
from .sessions import router as sessions_router
from .ratings import router as ratings_router

__all__ = ["experts_router", "credits_router", "sessions_router", "ratings_router"]
