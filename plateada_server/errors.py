"""Domain errors and their translation into JSON responses."""
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    status_code = 500
    kind = "internal"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message, **self.details}


class ValidationError(MarketplaceError):
    """Missing or malformed input the caller can correct."""

    status_code = 400
    kind = "validation"


class InvalidStatusError(ValidationError):
    kind = "invalid_status"


class InvalidMembershipError(ValidationError):
    kind = "invalid_type"


class SessionNotEligibleError(ValidationError):
    """Raised when a rating targets a session that is not completed."""

    kind = "session_not_eligible"


class AuthError(MarketplaceError):
    """Missing, invalid or expired credential."""

    status_code = 401
    kind = "unauthorized"


class PermissionDeniedError(AuthError):
    status_code = 403
    kind = "forbidden"


class NotFoundError(MarketplaceError):
    status_code = 404
    kind = "not_found"


class ConflictError(MarketplaceError):
    status_code = 409
    kind = "conflict"


class DuplicateEmailError(ConflictError):
    kind = "duplicate_email"


class DuplicateProfileError(ConflictError):
    kind = "duplicate_profile"


class NonEditableFieldError(ConflictError):
    kind = "non_editable_field"

    def __init__(self, field: str, editable: tuple[str, ...]):
        self.field = field
        super().__init__(
            f"Field '{field}' is not editable",
            field=field,
            editable_fields=list(editable),
        )


class IllegalTransitionError(ConflictError):
    kind = "illegal_transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move session from '{current}' to '{target}'",
            current_status=current,
            requested_status=target,
        )


class DuplicateRatingError(ConflictError):
    kind = "duplicate_rating"


class InsufficientCreditsError(MarketplaceError):
    """Raised when a debit exceeds the balance.

    Carries the current balance so the caller can offer a top-up.
    """

    status_code = 402
    kind = "insufficient_credits"

    def __init__(self, credits: int, credits_needed: int):
        self.credits = credits
        self.credits_needed = credits_needed
        super().__init__(
            "Insufficient credits",
            credits=credits,
            credits_needed=credits_needed,
        )


class InternalError(MarketplaceError):
    """Storage or unexpected failure. Details stay in the server log."""


def setup_exception_handlers(app: FastAPI) -> None:
    """Register handlers mapping every failure to a structured response."""

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if isinstance(exc, InternalError) or exc.status_code >= 500:
            logger.error(f"Internal error for {request.url.path}: {exc}", exc_info=exc)
            return JSONResponse(
                status_code=500,
                content={"error": "internal", "detail": "Internal server error"},
            )

        logger.warning(f"{exc.kind} for {request.method} {request.url.path}: {exc.message}")
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        fields = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
            fields.append({"field": ".".join(loc), "message": error.get("msg", "")})

        logger.warning(f"Validation error for {request.url.path}: {fields}")
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation",
                "detail": "Missing or invalid fields",
                "fields": fields,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error for {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "internal", "detail": "Internal server error"},
        )
