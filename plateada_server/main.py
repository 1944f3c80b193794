"""Magia Plateada Server - FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import Field

from plateada_server.config import get_settings
from plateada_server.db import init_db, create_user, get_user_credentials
from plateada_server.db.models import CamelModel, User, UserCreate
from plateada_server.auth import create_access_token, get_current_user, hash_password, verify_password
from plateada_server.api import experts_router, credits_router, sessions_router, ratings_router
from plateada_server.errors import AuthError, NotFoundError, setup_exception_handlers


logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
health_router = APIRouter(tags=["health"])


# ============= Auth Endpoints =============

class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AuthResponse(CamelModel):
    """Token response after successful auth."""
    token: str
    user: User


class CurrentUser(CamelModel):
    user: User


@auth_router.post("/register", response_model=AuthResponse)
async def register(payload: UserCreate):
    """Create a client or expert account.

    Clients start with the welcome credits; experts start with none.
    """
    settings = get_settings()
    user = await create_user(
        payload,
        password_hash=hash_password(payload.password),
        welcome_credits=settings.welcome_credits,
    )
    return AuthResponse(token=create_access_token(user), user=user)


@auth_router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest):
    """Exchange email and password for a bearer token."""
    found = await get_user_credentials(payload.email)
    if found is None:
        raise NotFoundError("No account exists with that email")

    user, password_hash = found
    if not verify_password(payload.password, password_hash):
        raise AuthError("Incorrect password")

    logger.info(f"User {user.id} logged in")
    return AuthResponse(token=create_access_token(user), user=user)


@auth_router.get("/me", response_model=CurrentUser)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the authenticated user with a fresh credit balance."""
    return CurrentUser(user=current_user)


# ============= Health Endpoints =============

@health_router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "magia-plateada-api"}


@health_router.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Magia Plateada API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============= Application =============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - initialize database on startup."""
    await init_db()
    yield


def create_app() -> FastAPI:
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Expert marketplace with prepaid session credits",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    setup_exception_handlers(app)

    # Include routers
    app.include_router(auth_router)
    app.include_router(experts_router)
    app.include_router(credits_router)
    app.include_router(sessions_router)
    app.include_router(ratings_router)
    app.include_router(health_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
